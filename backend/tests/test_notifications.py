"""
Tests for passcode message rendering and SMTP delivery.
"""
import smtplib
import pytest
from unittest.mock import MagicMock, patch

from core.config import settings
from core.errors import TransportError
from db.models.passcode import PasscodePurpose
from services.notification_service import EmailDispatcher, render_passcode_message, render_welcome_message
from utils.email import build_message, send_email


@pytest.fixture
def smtp_settings(monkeypatch):
    monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.com")
    monkeypatch.setattr(settings, "SMTP_PORT", 587)
    monkeypatch.setattr(settings, "SMTP_FROM_EMAIL", "no-reply@example.com")
    monkeypatch.setattr(settings, "SMTP_USERNAME", "mailer")
    monkeypatch.setattr(settings, "SMTP_PASSWORD", "mailer-password")
    monkeypatch.setattr(settings, "SMTP_USE_SSL", False)
    monkeypatch.setattr(settings, "SMTP_USE_TLS", True)


@pytest.mark.unit
class TestRendering:
    def test_reset_and_verification_differ(self):
        reset = render_passcode_message(PasscodePurpose.PASSWORD_RESET, "123456", 10, "Acme")
        verify = render_passcode_message(PasscodePurpose.EMAIL_VERIFICATION, "123456", 10, "Acme")

        assert reset.subject == "Password Reset - OTP Code"
        assert verify.subject == "Email Verification - OTP Code"
        for message in (reset, verify):
            assert "123456" in message.text and "123456" in message.html
            assert "10 minutes" in message.text

    def test_welcome_mentions_user(self):
        message = render_welcome_message("alice", "Acme")
        assert message.subject == "Welcome to Acme!"
        assert "alice" in message.html

    def test_build_message_has_text_and_html(self):
        msg = build_message("Subject", "alice@example.com", "<p>hi</p>", "hi")
        assert msg["To"] == "alice@example.com"
        assert msg.is_multipart()


@pytest.mark.unit
class TestDelivery:
    def test_unconfigured_smtp_is_transport_error(self, monkeypatch):
        monkeypatch.setattr(settings, "SMTP_HOST", None)
        with pytest.raises(TransportError) as exc_info:
            send_email("Subject", "alice@example.com", "<p>hi</p>")
        assert exc_info.value.message == "Failed to send email"

    def test_starttls_delivery(self, smtp_settings):
        with patch("utils.email.smtplib.SMTP") as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            send_email("Subject", "alice@example.com", "<p>hi</p>", "hi")

        smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=settings.SMTP_TIMEOUT)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer", "mailer-password")
        server.send_message.assert_called_once()

    def test_smtp_failure_is_transport_error(self, smtp_settings):
        with patch("utils.email.smtplib.SMTP") as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            server.send_message.side_effect = smtplib.SMTPRecipientsRefused({"alice@example.com": (550, b"no such user")})
            with pytest.raises(TransportError) as exc_info:
                send_email("Subject", "alice@example.com", "<p>hi</p>")

        assert "alice@example.com" in exc_info.value.detail

    def test_connection_failure_is_transport_error(self, smtp_settings):
        with patch("utils.email.smtplib.SMTP", side_effect=OSError("connection refused")):
            with pytest.raises(TransportError):
                send_email("Subject", "alice@example.com", "<p>hi</p>")

    def test_dispatcher_renders_by_purpose(self):
        dispatcher = EmailDispatcher(validity_minutes=10, app_name="Acme")
        with patch("services.notification_service.send_email", MagicMock()) as send:
            dispatcher.send("alice@example.com", PasscodePurpose.PASSWORD_RESET, "654321")

        subject, to_email, html, text = send.call_args[0]
        assert subject == "Password Reset - OTP Code"
        assert to_email == "alice@example.com"
        assert "654321" in html and "654321" in text
