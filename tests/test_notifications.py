"""
Tests for outbound email and the notification dispatcher.
"""
import logging
import threading
from unittest.mock import patch

import pytest

from booking_auth.notifications import (EmailService, NotificationDispatcher,
                                        redact_email)


def test_redact_email():
    assert redact_email("client@example.com") == "cl***@example.com"
    assert redact_email("not-an-email") == "redacted"


def test_unconfigured_service_only_logs(caplog):
    """Without an SMTP host nothing is sent."""
    service = EmailService()

    with patch("booking_auth.notifications.smtplib.SMTP") as smtp:
        with caplog.at_level(logging.INFO, logger="booking_auth.notifications"):
            service.send_verification_email("client@example.com", "Asha", "tok")

    assert not service.is_configured
    smtp.assert_not_called()
    assert any("SMTP not configured" in r.getMessage() for r in caplog.records)
    # Verify the address is not logged in full
    assert not any("client@example.com" in r.getMessage() for r in caplog.records)


def test_send_over_starttls():
    service = EmailService(
        smtp_host="smtp.example.com",
        smtp_user="mailer@example.com",
        smtp_password="hunter2",
        from_email="noreply@example.com",
        frontend_url="https://booking.example.com/",
    )

    with patch("booking_auth.notifications.smtplib.SMTP") as smtp:
        service.send_password_reset_email("client@example.com", "Asha", "tok-123")

    smtp.assert_called_once_with("smtp.example.com", 587, timeout=30)
    server = smtp.return_value.__enter__.return_value
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer@example.com", "hunter2")
    from_addr, to_addrs, body = server.sendmail.call_args[0]
    assert from_addr == "noreply@example.com"
    assert to_addrs == ["client@example.com"]
    assert "https://booking.example.com/reset-password?token=tok-123" in body


def test_send_over_ssl():
    service = EmailService(smtp_host="smtp.example.com", smtp_port=465, smtp_use_tls=False,
                           from_email="noreply@example.com")

    with patch("booking_auth.notifications.smtplib.SMTP_SSL") as smtp_ssl:
        service.send_welcome_email("client@example.com", "Asha")

    server = smtp_ssl.return_value.__enter__.return_value
    server.login.assert_not_called()
    server.sendmail.assert_called_once()


def test_send_failure_propagates():
    service = EmailService(smtp_host="smtp.example.com", from_email="noreply@example.com")

    with patch("booking_auth.notifications.smtplib.SMTP", side_effect=ConnectionRefusedError("down")):
        with pytest.raises(ConnectionRefusedError):
            service.send_welcome_email("client@example.com", "Asha")


def test_from_settings(settings):
    service = EmailService.from_settings(settings)

    assert service.smtp_port == settings.SMTP_PORT
    assert service.frontend_url == settings.FRONTEND_URL.rstrip("/")


class TestNotificationDispatcher:

    def test_dispatch_runs_in_background(self):
        dispatcher = NotificationDispatcher(max_workers=1)
        ran = threading.Event()

        future = dispatcher.dispatch("test email", ran.set)
        dispatcher.shutdown(wait=True)

        assert future is not None
        assert ran.is_set()

    def test_failure_is_logged(self, caplog):
        """A failing send is logged with its traceback and never raised."""
        dispatcher = NotificationDispatcher(max_workers=1)

        def fail():
            raise RuntimeError("smtp exploded")

        with caplog.at_level(logging.ERROR, logger="booking_auth.notifications"):
            dispatcher.dispatch("test email", fail)
            dispatcher.shutdown(wait=True)

        records = [r for r in caplog.records if "Failed to send test email" in r.getMessage()]
        assert len(records) == 1
        assert records[0].exc_info[1].args == ("smtp exploded",)

    def test_dispatch_after_shutdown(self, caplog):
        dispatcher = NotificationDispatcher(max_workers=1)
        dispatcher.shutdown(wait=True)

        with caplog.at_level(logging.ERROR, logger="booking_auth.notifications"):
            assert dispatcher.dispatch("test email", lambda: None) is None

        assert any("dispatcher is shut down" in r.getMessage() for r in caplog.records)
