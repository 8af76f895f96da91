"""
core/notifier.py -- Outbound email for account notifications.

The auth layer depends only on the Notifier protocol: two calls, each of
which either returns or raises NotificationError. SmtpNotifier is the
production implementation; tests substitute a recording fake.

Messages are plain text. Reset links contain a live secret, so this module
never logs message bodies or URLs -- only the recipient and the outcome.

Layer rule: core/ is the kernel. Notifier accepts any object with `name`
and `email` attributes, so it does not need to import auth/.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from core.config import Settings

logger = logging.getLogger("gatehouse.notifier")


class NotificationError(Exception):
    """Raised when a message could not be handed to the mail transport."""


class Recipient(Protocol):
    name: str
    email: str


class Notifier(Protocol):
    def send_welcome(self, user: Recipient, profile_url: str) -> None: ...

    def send_password_reset(self, user: Recipient, reset_url: str, message: str) -> None: ...


class SmtpNotifier:
    """Send notifications through an SMTP relay configured in Settings.

    Usage:
        notifier = SmtpNotifier.from_settings(get_settings())
        notifier.send_welcome(user, "https://example.com/me")
    """

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
        app_name: str = "Gatehouse",
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.app_name = app_name

    @classmethod
    def from_settings(cls, settings: Settings) -> SmtpNotifier:
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.smtp_from,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
            app_name=settings.app_name,
        )

    def send_welcome(self, user: Recipient, profile_url: str) -> None:
        body = (
            f"Hi {user.name},\n\n"
            f"Welcome to {self.app_name}! Your account is ready.\n\n"
            f"You can review your profile here:\n{profile_url}\n\n"
            f"The {self.app_name} Team\n"
        )
        self._send(user.email, f"Welcome to {self.app_name}!", body)

    def send_password_reset(self, user: Recipient, reset_url: str, message: str) -> None:
        self._send(user.email, "Your password reset token (valid for 10 minutes)", message)

    def _send(self, to_email: str, subject: str, body: str) -> None:
        if not self.host:
            raise NotificationError("SMTP is not configured (SMTP_HOST is empty).")

        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Email to %s failed: %s", to_email, type(exc).__name__)
            raise NotificationError(str(exc)) from exc

        logger.info("Email '%s' sent to %s", subject, to_email)
