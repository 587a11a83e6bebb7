"""Normalization of raw provider messages into Email records.

Usage:
    from mailtriage.mailbox.extractor import MessageExtractor

    extractor = MessageExtractor(gateway)
    email = await extractor.extract(raw_message)
    print(email.subject, len(email.attachments))
"""

from __future__ import annotations

import asyncio
import base64
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mailtriage.core.errors import MailboxError, MailboxFetchError
from mailtriage.core.logging import get_logger

if TYPE_CHECKING:
    from mailtriage.mailbox.gateway import MailboxGateway

logger = get_logger(__name__)

# Only these headers survive extraction
RECOGNIZED_HEADERS = ("From", "To", "Subject", "Date")

# Part media types whose content makes up the body
BODY_MIME_TYPES = frozenset({"text/plain", "text/html"})

_CANONICAL_HEADERS = {name.lower(): name for name in RECOGNIZED_HEADERS}


@dataclass(frozen=True, slots=True)
class Attachment:
    """A fetched attachment."""

    filename: str
    mime_type: str
    data: bytes


@dataclass(slots=True)
class Email:
    """Normalized email, rebuilt from the mailbox on every cycle.

    Attributes:
        id: Provider message ID (unique across the mailbox)
        thread_id: Provider conversation ID shared by replies
        headers: From/To/Subject/Date values present on the message
        body: Decoded text/plain and text/html content, in part order
        attachments: Fetched attachments, in part order
        message_id_header: RFC 5322 Message-ID, used for reply threading
    """

    id: str
    thread_id: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""
    attachments: list[Attachment] = field(default_factory=list)
    message_id_header: str | None = None

    @property
    def subject(self) -> str:
        return self.headers.get("Subject", "")

    @property
    def sender(self) -> str:
        return self.headers.get("From", "")


def decode_base64url(data: str | None) -> bytes:
    """Decode provider base64url data, tolerating missing padding."""
    if not data:
        return b""
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def decode_text(data: str | None) -> str:
    """Decode a base64url text body as UTF-8."""
    return decode_base64url(data).decode("utf-8", errors="replace")


def find_header(raw_message: dict[str, Any], name: str) -> str | None:
    """Look up a header on a raw message, ignoring case.

    Args:
        raw_message: Raw provider message
        name: Header name (e.g. "Subject", "Message-ID")

    Returns:
        The first matching header value, or None
    """
    wanted = name.lower()
    for header in raw_message.get("payload", {}).get("headers", []):
        if header.get("name", "").lower() == wanted:
            return header.get("value", "")
    return None


def extract_headers(payload: dict[str, Any]) -> dict[str, str]:
    """Copy the recognized headers from a payload, dropping everything else."""
    headers: dict[str, str] = {}
    for header in payload.get("headers", []):
        canonical = _CANONICAL_HEADERS.get(header.get("name", "").lower())
        if canonical:
            headers[canonical] = header.get("value", "")
    return headers


def _walk_parts(payload: dict[str, Any]) -> Iterator[dict[str, Any]]:
    """Yield leaf parts depth-first, in document order."""
    for part in payload.get("parts") or []:
        if part.get("parts"):
            yield from _walk_parts(part)
        else:
            yield part


def extract_body(payload: dict[str, Any]) -> str:
    """Concatenate the decoded text content of a payload.

    Multipart payloads contribute every text/plain and text/html part in
    order, without deduplicating alternatives. Single-part payloads decode
    their one body.
    """
    if not payload.get("parts"):
        return decode_text(payload.get("body", {}).get("data"))

    chunks = [
        decode_text(part.get("body", {}).get("data"))
        for part in _walk_parts(payload)
        if part.get("mimeType") in BODY_MIME_TYPES
    ]
    return "".join(chunks)


def attachment_parts(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """Return the parts that reference a downloadable attachment."""
    return [
        part
        for part in _walk_parts(payload)
        if part.get("filename") and part.get("body", {}).get("attachmentId")
    ]


class MessageExtractor:
    """Turns raw provider messages into Email records.

    Attachment bytes are fetched through the gateway, concurrently per
    part. Either every attachment is fetched or extraction fails.
    """

    def __init__(self, gateway: MailboxGateway):
        self._gateway = gateway

    async def extract(self, raw_message: dict[str, Any]) -> Email:
        """Build an Email from a raw provider message.

        Args:
            raw_message: Raw message in provider "full" format

        Returns:
            Email with headers, body and all attachments

        Raises:
            MailboxFetchError: If any attachment fetch fails
        """
        message_id = raw_message.get("id", "")
        payload = raw_message.get("payload", {})

        attachments = await self._fetch_attachments(message_id, attachment_parts(payload))

        return Email(
            id=message_id,
            thread_id=raw_message.get("threadId", ""),
            headers=extract_headers(payload),
            body=extract_body(payload),
            attachments=attachments,
            message_id_header=find_header(raw_message, "Message-ID"),
        )

    async def _fetch_attachments(
        self,
        message_id: str,
        parts: list[dict[str, Any]],
    ) -> list[Attachment]:
        """Fetch all attachment parts concurrently, keeping part order."""
        if not parts:
            return []

        try:
            payloads = await asyncio.gather(
                *(
                    self._gateway.get_attachment(message_id, part["body"]["attachmentId"])
                    for part in parts
                )
            )
        except MailboxFetchError:
            raise
        except MailboxError as e:
            raise MailboxFetchError(
                f"Attachment fetch failed for message {message_id}: {e}",
                message_id=message_id,
                status_code=e.status_code,
            ) from e

        logger.debug("attachments_fetched", email_id=message_id, count=len(payloads))

        return [
            Attachment(
                filename=part["filename"],
                mime_type=part.get("mimeType", "application/octet-stream"),
                data=data,
            )
            for part, data in zip(parts, payloads, strict=True)
        ]
