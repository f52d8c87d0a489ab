"""
auth/notifier.py -- Password-reset email delivery.

Two implementations of the Notifier contract:
  SmtpNotifier -- sends a multipart (text + HTML) message via smtplib. The
                  blocking SMTP conversation runs in a worker thread.
  LogNotifier  -- fallback when SMTP_HOST is unset. Logs that a reset email
                  was not sent and to whom. The link is a credential and
                  is never written to the log.

AuthService dispatches send_reset_email() as a background task and does not
wait for delivery. Exceptions raised here are logged by that task's done
callback; they never reach the forgot-password caller.
"""

from __future__ import annotations

import asyncio
import html
import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from core.config import Settings

logger = logging.getLogger("threadline.auth.notifier")

RESET_SUBJECT = "Reset password"


class Notifier(Protocol):
    async def send_reset_email(self, to_address: str, reset_link: str, recipient_name: str) -> None: ...


def render_reset_email(reset_link: str, recipient_name: str) -> tuple[str, str]:
    """Return (plain_text, html) bodies for the reset email."""
    text = (
        f"Hi {recipient_name}.\n\n"
        "Please follow the link below to reset your password!\n\n"
        f"{reset_link}\n"
    )
    body = (
        f"<h2>Hi {html.escape(recipient_name)}.</h2>\n"
        "<p>Please click the link below to reset your password!</p>\n"
        f'<a href="{html.escape(reset_link, quote=True)}">Reset Your Password</a>'
    )
    return text, body


class SmtpNotifier:
    def __init__(
        self,
        host: str,
        port: int = 587,
        *,
        username: str = "",
        password: str = "",
        starttls: bool = True,
        sender: str,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.starttls = starttls
        self.sender = sender
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> SmtpNotifier:
        return cls(
            settings.smtp_host,
            settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            starttls=settings.smtp_starttls,
            sender=settings.mail_from,
        )

    def build_message(self, to_address: str, reset_link: str, recipient_name: str) -> EmailMessage:
        text, body = render_reset_email(reset_link, recipient_name)
        msg = EmailMessage()
        msg["Subject"] = RESET_SUBJECT
        msg["From"] = self.sender
        msg["To"] = to_address
        msg.set_content(text)
        msg.add_alternative(body, subtype="html")
        return msg

    async def send_reset_email(self, to_address: str, reset_link: str, recipient_name: str) -> None:
        msg = self.build_message(to_address, reset_link, recipient_name)
        await asyncio.to_thread(self._send, msg)
        logger.info("Reset email sent to %s", to_address)

    def _send(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.starttls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.send_message(msg)


class LogNotifier:
    async def send_reset_email(self, to_address: str, reset_link: str, recipient_name: str) -> None:
        logger.warning("SMTP not configured; reset email for %s was not sent", to_address)


def build_notifier(settings: Settings) -> Notifier:
    if settings.smtp_host:
        return SmtpNotifier.from_settings(settings)
    return LogNotifier()
