"""Triage engine: one poll of the mailbox per cycle.

Each cycle lists unread mail addressed to the triage mailbox, fetches the
messages concurrently, admits the ones that belong to triage, and runs each
admitted email through the clarification state machine.

Thread states (see ThreadStateStore):
- Untracked -> Clarification -> awaiting clarification (record created)
- Awaiting clarification -> Clarification -> awaiting clarification
  (last_processed_email_id refreshed)
- Either -> Instruction -> resolved (record deleted)

Pipeline per admitted email, strictly in this order:
1. Skip if the subject lacks the "Analysis:" prefix (no state change, stays unread)
2. Classify the body
3. Clarification: reply in-thread, then track the thread
   Instruction: log it for downstream processing, then untrack the thread
4. Mark the email read

Failures are scoped: a listing failure abandons the cycle, a fetch failure
skips one email, a classify/send/mark-read failure leaves that email unread
and its thread state untouched. None of them affect sibling emails.

Usage:
    from mailtriage.engine.triage import TriageEngine

    engine = TriageEngine(
        gateway=gmail_gateway,
        classifier=intent_classifier,
        store=ThreadStateStore(),
        config=app_config,
    )
    result = await engine.run_cycle()
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from mailtriage.classifier.intent import Clarification
from mailtriage.config_schema import MAX_FETCH_PER_CYCLE
from mailtriage.core.errors import ClassificationError, MailboxError, MailboxFetchError
from mailtriage.core.logging import get_logger, set_correlation_id
from mailtriage.mailbox.extractor import MessageExtractor, find_header

if TYPE_CHECKING:
    from mailtriage.classifier.intent import Instruction, IntentClassifier
    from mailtriage.config_schema import AppConfig
    from mailtriage.engine.state import ThreadStateStore
    from mailtriage.mailbox.extractor import Email
    from mailtriage.mailbox.gateway import MailboxGateway, MessageSummary

logger = get_logger(__name__)

# Subject prefix that admits a fresh email into triage
SUBJECT_PREFIX = "Analysis:"

REPLY_SUBJECT_PREFIX = "Re: "

# Outcome of one email -> TriageCycleResult counter
_OUTCOME_FIELDS = {
    "ignored": "ignored",
    "fetch_failed": "fetch_failed",
    "skipped": "skipped",
    "in_flight": "in_flight",
    "clarification": "clarifications",
    "instruction": "instructions",
    "failed": "failed",
}


@dataclass
class TriageCycleResult:
    """Result of a single triage cycle."""

    cycle_id: str
    duration_ms: int = 0
    listed: int = 0
    fetched: int = 0
    fetch_failed: int = 0
    ignored: int = 0
    skipped: int = 0
    in_flight: int = 0
    clarifications: int = 0
    instructions: int = 0
    failed: int = 0
    aborted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class TriageEngine:
    """Polls the mailbox and drives threads through the clarification loop.

    Each cycle generates a UUID4 triage_cycle_id for log correlation.

    Attributes:
        _gateway: Mailbox operations (list, fetch, reply, mark read)
        _classifier: Turns an email body into Clarification or Instruction
        _store: Threads awaiting clarification
        _extractor: Raw message -> Email normalization
        _config: Application configuration
        _in_flight: Message IDs currently between classify and mark-read
        _recently_read: Message IDs this engine marked read that a concurrent
            cycle may still have fetched while they were unread
        _active_cycles: Number of run_cycle calls currently executing
        _cycle_lock: Serializes cycles when max_overlapping_cycles is 1
        _limiter: Bounds concurrent mailbox fetches and email processing
        last_cycle: Result of the most recent completed cycle
        last_cycle_at: When the most recent cycle finished (UTC)
    """

    def __init__(
        self,
        gateway: MailboxGateway,
        classifier: IntentClassifier,
        store: ThreadStateStore,
        config: AppConfig,
        extractor: MessageExtractor | None = None,
    ):
        self._gateway = gateway
        self._classifier = classifier
        self._store = store
        self._config = config
        self._extractor = extractor or MessageExtractor(gateway)
        self._in_flight: set[str] = set()
        self._recently_read: set[str] = set()
        self._active_cycles = 0
        self._cycle_lock = asyncio.Lock()
        self._limiter = asyncio.Semaphore(config.triage.max_concurrency)
        self.last_cycle: TriageCycleResult | None = None
        self.last_cycle_at: datetime | None = None

    @property
    def store(self) -> ThreadStateStore:
        """The thread state store this engine mutates."""
        return self._store

    def update_config(self, config: AppConfig) -> None:
        """Update the config reference for hot-reload support.

        Args:
            config: New AppConfig instance
        """
        if config.triage.max_concurrency != self._config.triage.max_concurrency:
            self._limiter = asyncio.Semaphore(config.triage.max_concurrency)
        self._config = config
        self._classifier.update_config(config)

    def is_admitted(self, subject: str, thread_id: str) -> bool:
        """Whether an email enters processing at all.

        Fresh mail needs the subject prefix; mail in a thread awaiting
        clarification is admitted regardless of subject.
        """
        return subject.startswith(SUBJECT_PREFIX) or self._store.has(thread_id)

    async def run_cycle(self) -> TriageCycleResult:
        """Execute a single triage cycle.

        With max_overlapping_cycles at 1, a cycle started while another is
        running (a manual trigger during a scheduled run) waits for it.
        Otherwise cycles may overlap; an email is then handled by only one
        of them (see process_email).

        Steps:
        1. Generate triage_cycle_id and set as correlation ID
        2. List unread messages (capped at MAX_FETCH_PER_CYCLE)
        3. Fetch full messages concurrently
        4. Admit, extract and process each message concurrently
        5. Log cycle summary

        Returns:
            TriageCycleResult with counts and timing
        """
        if self._config.triage.max_overlapping_cycles == 1:
            async with self._cycle_lock:
                return await self._run_tracked_cycle()
        return await self._run_tracked_cycle()

    async def _run_tracked_cycle(self) -> TriageCycleResult:
        self._active_cycles += 1
        try:
            return await self._run_cycle()
        finally:
            self._active_cycles -= 1

    async def _run_cycle(self) -> TriageCycleResult:
        cycle_id = str(uuid.uuid4())
        set_correlation_id(cycle_id)
        start_time = time.monotonic()

        result = TriageCycleResult(cycle_id=cycle_id)
        limit = min(self._config.triage.fetch_limit, MAX_FETCH_PER_CYCLE)

        logger.info(
            "triage_cycle_start",
            tracked_threads=len(self._store),
            limit=limit,
        )

        try:
            summaries = await self._gateway.list_unread(self._config.mailbox.poll_query, limit)
            result.listed = len(summaries)

            if self._active_cycles == 1:
                # Listed after every earlier mark-read and no other cycle holds a
                # stale fetch, so the listing alone is authoritative
                self._recently_read.clear()

            if not summaries:
                logger.info("triage_cycle_no_unread")
            else:
                raw_messages = await asyncio.gather(
                    *(self._fetch_message(summary) for summary in summaries)
                )
                fetched = [raw for raw in raw_messages if raw is not None]
                result.fetched = len(fetched)
                result.fetch_failed = len(raw_messages) - len(fetched)

                outcomes = await asyncio.gather(
                    *(self._triage_message(raw) for raw in fetched),
                    return_exceptions=True,
                )
                for outcome in outcomes:
                    if isinstance(outcome, BaseException):
                        logger.error(
                            "email_processing_crashed",
                            error=str(outcome),
                            error_type=type(outcome).__name__,
                        )
                        outcome = "failed"
                    field_name = _OUTCOME_FIELDS[outcome]
                    setattr(result, field_name, getattr(result, field_name) + 1)

        except MailboxError as e:
            result.aborted = True
            logger.error("triage_cycle_aborted", error=str(e), error_type=type(e).__name__)
        finally:
            result.duration_ms = int((time.monotonic() - start_time) * 1000)
            self.last_cycle = result
            self.last_cycle_at = datetime.now(UTC)

            logger.info(
                "triage_cycle_complete",
                duration_ms=result.duration_ms,
                listed=result.listed,
                fetched=result.fetched,
                fetch_failed=result.fetch_failed,
                ignored=result.ignored,
                skipped=result.skipped,
                in_flight=result.in_flight,
                clarifications=result.clarifications,
                instructions=result.instructions,
                failed=result.failed,
                aborted=result.aborted,
                tracked_threads=len(self._store),
            )

            set_correlation_id(None)

        return result

    async def _fetch_message(self, summary: MessageSummary) -> dict[str, Any] | None:
        """Fetch one full message; None if the fetch failed."""
        async with self._limiter:
            try:
                return await self._gateway.get_message(summary.id)
            except MailboxError as e:
                logger.warning(
                    "message_fetch_failed",
                    email_id=summary.id,
                    thread_id=summary.thread_id,
                    error=str(e),
                )
                return None

    async def _triage_message(self, raw_msg: dict[str, Any]) -> str:
        """Admit, extract and process one fetched message.

        Returns:
            Outcome name (a key of _OUTCOME_FIELDS)
        """
        msg_id = raw_msg.get("id", "")
        thread_id = raw_msg.get("threadId", "")
        subject = find_header(raw_msg, "Subject") or ""

        if not self.is_admitted(subject, thread_id):
            logger.debug("email_not_admitted", email_id=msg_id)
            return "ignored"

        async with self._limiter:
            try:
                email = await self._extractor.extract(raw_msg)
            except MailboxFetchError as e:
                logger.warning("email_extraction_failed", email_id=msg_id, error=str(e))
                return "fetch_failed"

            return await self.process_email(email)

    async def process_email(self, email: Email) -> str:
        """Run one admitted email through the state machine.

        Args:
            email: Extracted email

        Returns:
            'skipped', 'in_flight', 'clarification', 'instruction' or 'failed'
        """
        if email.id in self._in_flight or email.id in self._recently_read:
            # An overlapping cycle is handling, or already handled, this message
            logger.warning("email_already_in_flight", email_id=email.id, thread_id=email.thread_id)
            return "in_flight"

        if not email.subject.startswith(SUBJECT_PREFIX) and not self._advances_thread(email):
            logger.info(
                "email_skipped_no_prefix",
                email_id=email.id,
                thread_id=email.thread_id,
                subject=email.subject[:80],
            )
            return "skipped"

        self._in_flight.add(email.id)
        try:
            interpretation = await self._classifier.classify(email.body, email_id=email.id)

            if isinstance(interpretation, Clarification):
                await self._request_clarification(email, interpretation)
                outcome = "clarification"
            else:
                self._accept_instruction(email, interpretation)
                outcome = "instruction"

            await self._gateway.mark_read(email.id)
            self._recently_read.add(email.id)
            return outcome

        except (ClassificationError, MailboxError) as e:
            logger.error(
                "email_processing_failed",
                email_id=email.id,
                thread_id=email.thread_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return "failed"
        finally:
            self._in_flight.discard(email.id)

    def _advances_thread(self, email: Email) -> bool:
        """Whether a non-prefixed email may continue its tracked thread."""
        return self._config.triage.advance_tracked_replies and self._store.has(email.thread_id)

    async def _request_clarification(self, email: Email, clarification: Clarification) -> None:
        """Reply in-thread with the question, then track the thread."""
        await self._gateway.send_reply(
            to=email.sender,
            subject=REPLY_SUBJECT_PREFIX + email.subject,
            body=clarification.text,
            thread_id=email.thread_id,
            in_reply_to=email.message_id_header,
        )
        record = self._store.upsert(email.thread_id, email.id)

        logger.info(
            "clarification_sent",
            email_id=email.id,
            thread_id=email.thread_id,
            rounds=record.clarification_rounds,
        )

    def _accept_instruction(self, email: Email, instruction: Instruction) -> None:
        """Hand off an understood instruction and untrack the thread."""
        # TODO: pass instruction.text and email.attachments to the downstream processor
        logger.info(
            "instruction_received",
            email_id=email.id,
            thread_id=email.thread_id,
            instruction=instruction.text,
            attachments=[attachment.filename for attachment in email.attachments],
        )

        if self._store.delete(email.thread_id):
            logger.info("thread_resolved", thread_id=email.thread_id)
