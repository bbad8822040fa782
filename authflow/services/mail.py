"""
Outgoing email.

The auth service only depends on the ``EmailSender`` protocol. SMTP
delivery runs in a worker thread so it never blocks the event loop.
"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional, Protocol

from starlette.concurrency import run_in_threadpool

from authflow.core.config import Settings

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, body: str) -> None:
        ...


class SMTPEmailSender:
    """Deliver mail through an SMTP relay, upgrading with STARTTLS."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: str = "no-reply@authflow.local",
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.timeout = timeout

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as conn:
            conn.ehlo()
            if conn.has_extn("starttls"):
                conn.starttls()
                conn.ehlo()
            if self.username and self.password:
                conn.login(self.username, self.password)
            conn.send_message(message)

    async def send(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        await run_in_threadpool(self._deliver, message)
        logger.info("Sent '%s' email", subject)


class LoggingEmailSender:
    """Development sender: writes messages to the log instead of sending them."""

    async def send(self, to: str, subject: str, body: str) -> None:
        logger.info("Email to %s: %s\n%s", to, subject, body)


def build_mailer(settings: Settings) -> EmailSender:
    if not settings.email_host:
        logger.warning("EMAIL_HOST not set; outgoing email will only be logged")
        return LoggingEmailSender()
    return SMTPEmailSender(
        host=settings.email_host,
        port=settings.email_port,
        username=settings.email_user,
        password=settings.email_pass.get_secret_value() if settings.email_pass else None,
        sender=settings.email_from,
    )


def verification_message(name: str, code: str, client_url: str, minutes: int) -> tuple[str, str]:
    subject = "Verify your email address"
    body = f"""Hello {name},

Your verification code is: {code}

Enter it at {client_url.rstrip('/')}/verify-email to activate your account.
The code expires in {minutes} minutes.

If you did not create an account, you can ignore this message.
"""
    return subject, body


def reset_message(name: str, code: str, client_url: str, minutes: int) -> tuple[str, str]:
    subject = "Reset your password"
    body = f"""Hello {name},

Your password reset code is: {code}

Enter it at {client_url.rstrip('/')}/reset-password to choose a new password.
The code expires in {minutes} minutes.

If you did not request a reset, you can ignore this message; your password
has not been changed.
"""
    return subject, body
