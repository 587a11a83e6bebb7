"""Mailbox access for the triage engine.

This package provides:
- The MailboxGateway protocol the engine consumes
- Normalization of raw provider messages into Email records
- A Gmail API implementation of the gateway
"""

from mailtriage.mailbox.extractor import Attachment, Email, MessageExtractor
from mailtriage.mailbox.gateway import MailboxGateway, MessageSummary

__all__ = [
    "Attachment",
    "Email",
    "MailboxGateway",
    "MessageExtractor",
    "MessageSummary",
]
