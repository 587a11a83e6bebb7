"""Custom exception types for the mail triage service.

Error messages should say what failed, where, and why, so that a log line
alone is enough to act on.

Failure scope is encoded in the type:
- MailboxFetchError: one message or attachment could not be fetched; that
  email is skipped for this cycle
- CycleAbortError: listing unread mail failed; the whole cycle is abandoned
- ClassificationError, SendError, MarkReadError: a step of per-email
  processing failed; the email stays unread and is retried next cycle
"""


class TriageError(Exception):
    """Base exception for all mail triage errors."""

    pass


class ConfigValidationError(TriageError):
    """Raised when config.yaml fails Pydantic validation.

    Includes specific field errors with actionable messages.
    """

    pass


class ConfigLoadError(TriageError):
    """Raised when config.yaml cannot be loaded (file not found, YAML parse error)."""

    pass


class MailboxError(TriageError):
    """Raised when the mailbox provider returns an error.

    Attributes:
        status_code: HTTP status code from the provider (if available)
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MailboxFetchError(MailboxError):
    """Raised when a single message or attachment cannot be fetched.

    Transient by nature: the message is still unread, so the next
    cycle picks it up again.

    Attributes:
        message_id: Provider message ID whose fetch failed
    """

    def __init__(
        self,
        message: str,
        message_id: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, status_code=status_code)
        self.message_id = message_id


class CycleAbortError(MailboxError):
    """Raised when listing unread messages fails and the cycle cannot start."""

    pass


class SendError(MailboxError):
    """Raised when a threaded reply cannot be sent."""

    pass


class MarkReadError(MailboxError):
    """Raised when the UNREAD label cannot be removed from a message."""

    pass


class ClassificationError(TriageError):
    """Raised when the intent classifier cannot produce a result.

    Attributes:
        email_id: The message ID being classified (if known)
    """

    def __init__(self, message: str, email_id: str | None = None):
        super().__init__(message)
        self.email_id = email_id
