"""Outgoing email: SMTP delivery and a background outbox.

Request handlers never talk to the SMTP server themselves. They build an
``OutgoingEmail`` and put it on the ``MailOutbox``; a single background
worker sends queued messages in a thread so a slow or failing mail server
never delays or fails the request.
"""

import asyncio
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from helpdesk.core.config import Settings
from helpdesk.core.logging import get_logger

logger = get_logger("email")


@dataclass(frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    text_body: str
    html_body: str | None = None


def redact_email(email: str) -> str:
    """Redact an address for logging."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailService:
    """Synchronous SMTP sender.

    When no SMTP host is configured (development) messages are written to
    the log instead of being sent.
    """

    def __init__(
        self,
        *,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        smtp_use_tls: bool = True,
        from_email: str = "",
        from_name: str = "Helpdesk",
        timeout: int = 30,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailService":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            smtp_use_tls=settings.smtp_use_tls,
            from_email=settings.smtp_from_email,
            from_name=settings.smtp_from_name,
            timeout=settings.smtp_timeout,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send(self, message: OutgoingEmail) -> bool:
        """Send one message. Returns True on success, False otherwise."""
        if not self.is_configured:
            preview = message.text_body[:200].replace("\n", " ")
            logger.info(
                f"Email (dev mode) to={redact_email(message.to)} "
                f"subject={message.subject!r} body={preview!r}"
            )
            return True

        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = message.to
        msg.attach(MIMEText(message.text_body, "plain", "utf-8"))
        if message.html_body:
            msg.attach(MIMEText(message.html_body, "html", "utf-8"))

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, message.to, msg.as_string())
            else:
                with smtplib.SMTP_SSL(
                    self.smtp_host, self.smtp_port, context=context, timeout=self.timeout
                ) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, message.to, msg.as_string())
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed for {self.smtp_user} on {self.smtp_host}: {e}")
            return False
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(f"SMTP recipient refused {redact_email(message.to)}: {e}")
            return False
        except smtplib.SMTPException as e:
            logger.error(
                f"SMTP error sending to {redact_email(message.to)}: {type(e).__name__}: {e}"
            )
            return False
        except (OSError, TimeoutError) as e:
            # Connection refused, TLS failure, timeout
            logger.error(f"Could not reach SMTP server {self.smtp_host}:{self.smtp_port}: {e}")
            return False

        logger.info(f"Email sent to={redact_email(message.to)} subject={message.subject!r}")
        return True


class MailOutbox:
    """Queue of messages waiting to be sent by the background worker."""

    def __init__(self, email_service: EmailService):
        self.email_service = email_service
        self._queue: asyncio.Queue[OutgoingEmail] = asyncio.Queue()

    def enqueue(self, message: OutgoingEmail) -> None:
        self._queue.put_nowait(message)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def _deliver(self, message: OutgoingEmail) -> bool:
        try:
            return await asyncio.to_thread(self.email_service.send, message)
        except Exception:
            logger.exception(f"Unexpected error sending email to {redact_email(message.to)}")
            return False

    async def process_pending(self) -> int:
        """Send everything currently queued. Returns the number delivered."""
        delivered = 0
        while True:
            try:
                message = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return delivered
            if await self._deliver(message):
                delivered += 1
            self._queue.task_done()

    async def run(self) -> None:
        """Worker loop; runs until cancelled."""
        while True:
            message = await self._queue.get()
            try:
                await self._deliver(message)
            finally:
                self._queue.task_done()


# Message builders


def _wrap_html(heading: str, paragraphs: list[str]) -> str:
    body = "".join(f"<p>{escape(p)}</p>" for p in paragraphs)
    return (
        "<!DOCTYPE html><html><body style=\"font-family: sans-serif; color: #1f2933;\">"
        f"<h2>{escape(heading)}</h2>{body}</body></html>"
    )


def verification_email(to: str, name: str, code: str, ttl_minutes: int) -> OutgoingEmail:
    lines = [
        f"Hello {name},",
        f"Your verification code is {code}.",
        f"The code expires in {ttl_minutes} minutes.",
    ]
    return OutgoingEmail(
        to=to,
        subject="Verify your helpdesk account",
        text_body="\n\n".join(lines),
        html_body=_wrap_html("Verify your account", lines),
    )


def password_reset_email(to: str, name: str, code: str, ttl_minutes: int) -> OutgoingEmail:
    lines = [
        f"Hello {name},",
        f"Your password reset code is {code}.",
        f"The code expires in {ttl_minutes} minutes. "
        "If you did not request a reset you can ignore this message.",
    ]
    return OutgoingEmail(
        to=to,
        subject="Reset your helpdesk password",
        text_body="\n\n".join(lines),
        html_body=_wrap_html("Password reset", lines),
    )


def ticket_created_email(to: str, ticket_id: int, title: str, for_admin: bool) -> OutgoingEmail:
    if for_admin:
        subject = f"New ticket #{ticket_id}: {title}"
        lines = [f"A new ticket #{ticket_id} was submitted: {title}."]
    else:
        subject = f"We received your ticket #{ticket_id}"
        lines = [
            f"Your ticket #{ticket_id} ({title}) was created.",
            "Our support team will get back to you shortly.",
        ]
    return OutgoingEmail(
        to=to,
        subject=subject,
        text_body="\n\n".join(lines),
        html_body=_wrap_html(subject, lines),
    )


def late_ticket_email(to: str, ticket_id: int, title: str, hours: int) -> OutgoingEmail:
    subject = f"Reminder: ticket #{ticket_id} has had no activity"
    lines = [
        f"Ticket #{ticket_id} ({title}) has not been updated for more than {hours} hours.",
        "Please follow up with the customer.",
    ]
    return OutgoingEmail(
        to=to,
        subject=subject,
        text_body="\n\n".join(lines),
        html_body=_wrap_html(subject, lines),
    )
