"""In-memory record of threads awaiting clarification.

A thread is in the "awaiting clarification" state exactly when it has a
record here. No record means the thread is untracked: never seen, or
resolved. Records live for the process lifetime only.

All access happens on the event loop thread, so no locking is needed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(slots=True)
class ThreadRecord:
    """A thread waiting for the sender to answer a clarification.

    Attributes:
        thread_id: Provider conversation ID
        last_processed_email_id: Email that triggered the latest clarification
        clarification_rounds: Clarifications sent in this thread so far
        updated_at: When the record last changed (UTC)
    """

    thread_id: str
    last_processed_email_id: str
    clarification_rounds: int = 1
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class ThreadStateStore:
    """Map from thread ID to ThreadRecord; at most one record per thread."""

    def __init__(self) -> None:
        self._records: dict[str, ThreadRecord] = {}

    def has(self, thread_id: str) -> bool:
        return thread_id in self._records

    def get(self, thread_id: str) -> ThreadRecord | None:
        return self._records.get(thread_id)

    def upsert(self, thread_id: str, last_processed_email_id: str) -> ThreadRecord:
        """Track a thread, or refresh it for another clarification round."""
        record = self._records.get(thread_id)
        if record is None:
            record = ThreadRecord(thread_id=thread_id, last_processed_email_id=last_processed_email_id)
            self._records[thread_id] = record
        else:
            record.last_processed_email_id = last_processed_email_id
            record.clarification_rounds += 1
            record.updated_at = datetime.now(UTC)
        return record

    def delete(self, thread_id: str) -> bool:
        """Stop tracking a thread. Returns False if it was not tracked."""
        return self._records.pop(thread_id, None) is not None

    def records(self) -> list[ThreadRecord]:
        """Snapshot of all tracked threads."""
        return list(self._records.values())

    def __contains__(self, thread_id: object) -> bool:
        return thread_id in self._records

    def __len__(self) -> int:
        return len(self._records)
