"""Tests for the SMTP sender, the outbox and the message builders."""

import asyncio
import logging
import smtplib
from unittest.mock import patch

import pytest

from helpdesk.services.email import (
    EmailService,
    MailOutbox,
    OutgoingEmail,
    late_ticket_email,
    password_reset_email,
    redact_email,
    ticket_created_email,
    verification_email,
)

MESSAGE = OutgoingEmail(
    to="alice@example.com", subject="Hi", text_body="Hello", html_body="<p>Hello</p>"
)


def _smtp_service(**kwargs) -> EmailService:
    defaults = {
        "smtp_host": "mail.example.com",
        "smtp_user": "mailer",
        "smtp_password": "secret",
        "from_email": "helpdesk@example.com",
    }
    defaults.update(kwargs)
    return EmailService(**defaults)


class TestRedact:
    def test_keeps_domain(self):
        assert redact_email("alice@example.com") == "al***@example.com"

    def test_without_at_sign(self):
        assert redact_email("nonsense") == "redacted"


class TestEmailService:
    def test_dev_mode_logs_instead_of_sending(self, caplog):
        service = EmailService()
        assert not service.is_configured
        with caplog.at_level(logging.INFO, logger="helpdesk.email"):
            with patch("helpdesk.services.email.smtplib.SMTP") as smtp:
                assert service.send(MESSAGE) is True
        smtp.assert_not_called()
        assert "dev mode" in caplog.text
        assert "alice@example.com" not in caplog.text

    def test_sends_with_starttls(self):
        with patch("helpdesk.services.email.smtplib.SMTP") as smtp:
            assert _smtp_service().send(MESSAGE) is True

        smtp.assert_called_once_with("mail.example.com", 587, timeout=30)
        server = smtp.return_value.__enter__.return_value
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer", "secret")
        from_addr, to_addr, body = server.sendmail.call_args.args
        assert (from_addr, to_addr) == ("helpdesk@example.com", "alice@example.com")
        assert "Subject: Hi" in body

    def test_ssl_without_login(self):
        with patch("helpdesk.services.email.smtplib.SMTP_SSL") as smtp_ssl:
            service = _smtp_service(smtp_use_tls=False, smtp_port=465, smtp_password="")
            assert service.send(MESSAGE) is True
        server = smtp_ssl.return_value.__enter__.return_value
        server.login.assert_not_called()
        server.sendmail.assert_called_once()

    def test_from_address_defaults_to_user(self):
        service = EmailService(smtp_host="mail.example.com", smtp_user="mailer@example.com")
        assert service.from_email == "mailer@example.com"
        assert service.is_configured

    @pytest.mark.parametrize(
        "error",
        [
            smtplib.SMTPAuthenticationError(535, b"bad credentials"),
            smtplib.SMTPRecipientsRefused({"alice@example.com": (550, b"no such user")}),
            smtplib.SMTPServerDisconnected("gone"),
        ],
    )
    def test_smtp_errors_return_false(self, error):
        with patch("helpdesk.services.email.smtplib.SMTP") as smtp:
            smtp.return_value.__enter__.return_value.sendmail.side_effect = error
            assert _smtp_service().send(MESSAGE) is False

    def test_unreachable_server_returns_false(self):
        with patch("helpdesk.services.email.smtplib.SMTP", side_effect=ConnectionRefusedError()):
            assert _smtp_service().send(MESSAGE) is False


class FlakyEmailService:
    def __init__(self, fail_for: set[str]):
        self.fail_for = fail_for
        self.sent: list[OutgoingEmail] = []

    def send(self, message: OutgoingEmail) -> bool:
        if message.to in self.fail_for:
            raise RuntimeError("boom")
        self.sent.append(message)
        return True


class TestMailOutbox:
    @pytest.mark.asyncio
    async def test_process_pending_delivers_in_order(self, mail_outbox, email_service):
        mail_outbox.enqueue(MESSAGE)
        mail_outbox.enqueue(OutgoingEmail(to="bob@example.com", subject="Two", text_body="2"))
        assert mail_outbox.pending == 2

        assert await mail_outbox.process_pending() == 2
        assert mail_outbox.pending == 0
        assert [m.to for m in email_service.sent] == ["alice@example.com", "bob@example.com"]

    @pytest.mark.asyncio
    async def test_failed_delivery_does_not_stop_the_queue(self):
        service = FlakyEmailService({"alice@example.com"})
        outbox = MailOutbox(service)
        outbox.enqueue(MESSAGE)
        outbox.enqueue(OutgoingEmail(to="bob@example.com", subject="Two", text_body="2"))

        assert await outbox.process_pending() == 1
        assert [m.to for m in service.sent] == ["bob@example.com"]
        assert outbox.pending == 0

    @pytest.mark.asyncio
    async def test_worker_sends_until_cancelled(self, mail_outbox, email_service):
        worker = asyncio.create_task(mail_outbox.run())
        mail_outbox.enqueue(MESSAGE)

        for _ in range(100):
            if email_service.sent:
                break
            await asyncio.sleep(0.01)
        assert email_service.sent == [MESSAGE]

        worker.cancel()
        with pytest.raises(asyncio.CancelledError):
            await worker


class TestBuilders:
    def test_verification_email(self):
        message = verification_email("alice@example.com", "Alice", "123456", 30)
        assert message.to == "alice@example.com"
        assert "123456" in message.text_body
        assert "30 minutes" in message.text_body
        assert "123456" in message.html_body

    def test_password_reset_email(self):
        message = password_reset_email("alice@example.com", "Alice", "654321", 15)
        assert message.subject == "Reset your helpdesk password"
        assert "654321" in message.text_body

    def test_ticket_created_for_owner_and_admin(self):
        owner = ticket_created_email("alice@example.com", 7, "VPN down", for_admin=False)
        admin = ticket_created_email("ada@example.com", 7, "VPN down", for_admin=True)
        assert owner.subject == "We received your ticket #7"
        assert admin.subject == "New ticket #7: VPN down"

    def test_html_is_escaped(self):
        message = ticket_created_email("ada@example.com", 1, "<script>x</script>", for_admin=True)
        assert "<script>" not in message.html_body
        assert "&lt;script&gt;" in message.html_body

    def test_late_ticket_email(self):
        message = late_ticket_email("sam@example.com", 3, "Printer", 24)
        assert "#3" in message.subject
        assert "24 hours" in message.text_body
