"""
auth/mailer.py -- Outbound mail seam.

The core decides WHEN a mail goes out and WHAT it carries (recipient, kind,
token). Rendering and delivery belong to whatever Mailer the application
plugs in -- an SMTP client, a job queue, a test recorder.

Delivery is fire-and-forget from the core's point of view: AuthService logs a
failing send() and keeps the issued token.

send() must only enqueue. forgot_password() and request_magic_link() call it
only when the email is registered, so a send() that blocks on SMTP makes
those calls slower for known accounts and leaks which emails exist. Hand the
message to a queue or background worker and return.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

logger = logging.getLogger("credkeep.auth.mailer")


class MailKind(str, Enum):
    WELCOME = "welcome"  # sent on registration, carries the verification token
    VERIFICATION = "verification"  # resend of the verification link
    FORGOT_PASSWORD = "forgot_password"
    MAGIC_LINK = "magic_link"


class Mailer(Protocol):
    def send(self, recipient: str, kind: MailKind, token: str) -> None:
        """Queue one mail for delivery. Must not block on the transport."""
        ...


class LoggingMailer:
    """Default mailer: records that a mail would be sent. Token values are never logged."""

    def send(self, recipient: str, kind: MailKind, token: str) -> None:
        logger.info("Mail queued: kind=%s recipient=%s", kind.value, recipient)
