"""Mailbox capability consumed by the triage engine.

The engine never talks to a provider SDK directly; it goes through this
protocol. GmailGateway is the production implementation, tests use mocks.

Raw messages follow the Gmail API "full" format: a dict with "id",
"threadId" and a "payload" holding "headers", "mimeType", "body" and an
optional list of "parts".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class MessageSummary:
    """Listing entry for an unread message (no content yet)."""

    id: str
    thread_id: str


class MailboxGateway(Protocol):
    """Provider operations needed for one triage cycle.

    Every method is a suspension point. Implementations raise the
    MailboxError subclass matching the failed operation.
    """

    async def list_unread(self, query: str, limit: int) -> list[MessageSummary]:
        """List at most `limit` messages matching `query`.

        Raises:
            CycleAbortError: If the listing call fails
        """
        ...

    async def get_message(self, message_id: str) -> dict[str, Any]:
        """Fetch a full raw message.

        Raises:
            MailboxFetchError: If the message cannot be fetched
        """
        ...

    async def get_attachment(self, message_id: str, attachment_id: str) -> bytes:
        """Fetch decoded attachment bytes.

        Raises:
            MailboxFetchError: If the attachment cannot be fetched
        """
        ...

    async def send_reply(
        self,
        to: str,
        subject: str,
        body: str,
        thread_id: str,
        in_reply_to: str | None = None,
    ) -> dict[str, Any]:
        """Send a plain-text reply into an existing thread.

        Raises:
            SendError: If the provider rejects the message
        """
        ...

    async def mark_read(self, message_id: str) -> None:
        """Remove the UNREAD label. Marking an already-read message is a no-op.

        Raises:
            MarkReadError: If the label change fails
        """
        ...
