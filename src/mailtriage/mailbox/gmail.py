"""Gmail API implementation of the mailbox gateway.

The Google client library is synchronous. Each call is executed in a worker
thread with its own authorized HTTP transport (httplib2 connections are not
thread-safe), so the event loop stays free while requests are in flight.

Credentials come from the environment (loaded from .env at startup):
    GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_REFRESH_TOKEN

Usage:
    from mailtriage.mailbox.gmail import create_gmail_gateway

    gateway = create_gmail_gateway(config)
    summaries = await gateway.list_unread("to:triage@example.com is:unread", 50)
"""

from __future__ import annotations

import asyncio
import base64
import os
from email.message import EmailMessage
from typing import TYPE_CHECKING, Any

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from mailtriage.config_schema import MAX_FETCH_PER_CYCLE
from mailtriage.core.errors import (
    ConfigLoadError,
    CycleAbortError,
    MailboxError,
    MailboxFetchError,
    MarkReadError,
    SendError,
)
from mailtriage.core.logging import get_logger
from mailtriage.mailbox.extractor import decode_base64url
from mailtriage.mailbox.gateway import MessageSummary

if TYPE_CHECKING:
    from googleapiclient.http import HttpRequest

    from mailtriage.config_schema import AppConfig

logger = get_logger(__name__)

# Read, send and relabel; nothing broader
GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.modify"]
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Library-level retries for 5xx / 429 responses
DEFAULT_NUM_RETRIES = 2

_TRANSPORT_ERRORS = (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError)


def credentials_from_env() -> Credentials:
    """Build OAuth2 user credentials from environment variables.

    Raises:
        ConfigLoadError: If any required variable is missing
    """
    names = ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REFRESH_TOKEN")
    values = {name: os.environ.get(name, "") for name in names}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ConfigLoadError(
            f"Missing Gmail credentials: {', '.join(missing)}. "
            "Set them in the environment or in .env."
        )

    return Credentials(
        token=None,
        refresh_token=values["GOOGLE_REFRESH_TOKEN"],
        client_id=values["GOOGLE_CLIENT_ID"],
        client_secret=values["GOOGLE_CLIENT_SECRET"],
        token_uri=GOOGLE_TOKEN_URI,
        scopes=GMAIL_SCOPES,
    )


def build_reply_message(
    to: str,
    subject: str,
    body: str,
    in_reply_to: str | None = None,
    from_address: str | None = None,
) -> EmailMessage:
    """Compose a plain-text reply.

    In-Reply-To and References are only set when the original Message-ID
    is known.
    """
    msg = EmailMessage()
    if from_address:
        msg["From"] = from_address
    msg["To"] = to
    msg["Subject"] = subject
    if in_reply_to:
        msg["In-Reply-To"] = in_reply_to
        msg["References"] = in_reply_to
    msg.set_content(body)
    return msg


def encode_raw_message(msg: EmailMessage) -> str:
    """Encode a message for the Gmail send API (unpadded base64url)."""
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")


def _status_code(error: Exception) -> int | None:
    if isinstance(error, HttpError) and error.resp is not None:
        return int(error.resp.status)
    return None


class GmailGateway:
    """MailboxGateway backed by the Gmail v1 REST API.

    Attributes:
        user_id: Gmail user ID ("me" for the authenticated account)
        from_address: From header used on replies (optional)
    """

    def __init__(
        self,
        credentials: Credentials,
        user_id: str = "me",
        from_address: str | None = None,
        num_retries: int = DEFAULT_NUM_RETRIES,
        service: Any | None = None,
    ):
        """Initialize the gateway.

        Args:
            credentials: Google OAuth2 credentials with Gmail modify scope
            user_id: Gmail user ID
            from_address: From header for replies
            num_retries: Retries for transient HTTP errors per request
            service: Prebuilt Gmail service (built from credentials if omitted)
        """
        self._credentials = credentials
        self.user_id = user_id
        self.from_address = from_address
        self._num_retries = num_retries
        self._service = service or build(
            "gmail", "v1", credentials=credentials, cache_discovery=False
        )

    def _execute_blocking(self, request: HttpRequest) -> dict[str, Any]:
        http = AuthorizedHttp(self._credentials, http=httplib2.Http())
        return request.execute(http=http, num_retries=self._num_retries) or {}

    async def _execute(self, request: HttpRequest) -> dict[str, Any]:
        return await asyncio.to_thread(self._execute_blocking, request)

    def _messages(self) -> Any:
        return self._service.users().messages()

    async def list_unread(self, query: str, limit: int) -> list[MessageSummary]:
        """List unread messages matching a Gmail search query."""
        request = self._messages().list(
            userId=self.user_id,
            q=query,
            maxResults=min(limit, MAX_FETCH_PER_CYCLE),
            includeSpamTrash=False,
        )
        try:
            response = await self._execute(request)
        except _TRANSPORT_ERRORS as e:
            status = _status_code(e)
            logger.error("gmail_list_failed", query=query, status_code=status, error=str(e))
            raise CycleAbortError(
                f"Listing unread messages failed ({status}): {e}", status_code=status
            ) from e

        return [
            MessageSummary(id=msg["id"], thread_id=msg.get("threadId", ""))
            for msg in response.get("messages", [])
        ]

    async def get_message(self, message_id: str) -> dict[str, Any]:
        """Fetch a message in "full" format."""
        request = self._messages().get(userId=self.user_id, id=message_id, format="full")
        try:
            return await self._execute(request)
        except _TRANSPORT_ERRORS as e:
            status = _status_code(e)
            raise MailboxFetchError(
                f"Fetching message {message_id} failed ({status}): {e}",
                message_id=message_id,
                status_code=status,
            ) from e

    async def get_attachment(self, message_id: str, attachment_id: str) -> bytes:
        """Fetch and decode one attachment body."""
        request = self._messages().attachments().get(
            userId=self.user_id,
            messageId=message_id,
            id=attachment_id,
        )
        try:
            response = await self._execute(request)
        except _TRANSPORT_ERRORS as e:
            status = _status_code(e)
            raise MailboxFetchError(
                f"Fetching attachment {attachment_id} of message {message_id} "
                f"failed ({status}): {e}",
                message_id=message_id,
                status_code=status,
            ) from e

        return decode_base64url(response.get("data"))

    async def send_reply(
        self,
        to: str,
        subject: str,
        body: str,
        thread_id: str,
        in_reply_to: str | None = None,
    ) -> dict[str, Any]:
        """Send a reply; Gmail files it into `thread_id`."""
        if not to:
            raise SendError(f"Cannot reply in thread {thread_id}: original sender is unknown")

        msg = build_reply_message(
            to=to,
            subject=subject,
            body=body,
            in_reply_to=in_reply_to,
            from_address=self.from_address,
        )
        request = self._messages().send(
            userId=self.user_id,
            body={"raw": encode_raw_message(msg), "threadId": thread_id},
        )
        try:
            return await self._execute(request)
        except _TRANSPORT_ERRORS as e:
            status = _status_code(e)
            raise SendError(
                f"Sending reply in thread {thread_id} failed ({status}): {e}",
                status_code=status,
            ) from e

    async def mark_read(self, message_id: str) -> None:
        """Remove the UNREAD label (no-op when already read)."""
        request = self._messages().modify(
            userId=self.user_id,
            id=message_id,
            body={"removeLabelIds": ["UNREAD"]},
        )
        try:
            await self._execute(request)
        except _TRANSPORT_ERRORS as e:
            status = _status_code(e)
            raise MarkReadError(
                f"Marking message {message_id} read failed ({status}): {e}",
                status_code=status,
            ) from e


def create_gmail_gateway(config: AppConfig) -> GmailGateway:
    """Create a GmailGateway from config and environment credentials.

    Raises:
        ConfigLoadError: If credentials are missing
        MailboxError: If the Gmail service cannot be built
    """
    credentials = credentials_from_env()
    try:
        return GmailGateway(
            credentials=credentials,
            user_id=config.mailbox.user_id,
            from_address=config.mailbox.reply_from,
        )
    except _TRANSPORT_ERRORS as e:
        raise MailboxError(f"Failed to initialize Gmail service: {e}") from e
