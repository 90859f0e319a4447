"""
EntomoGuide Backend: Notification Dispatcher Tests
===================================================

What:  SMTP message building, delivery, and the never-raises contract.
How:   smtplib.SMTP is patched; no network access.
"""

from unittest.mock import MagicMock, patch

import pytest

from entomoguide.services.notification import (
    NotConfiguredError,
    NotificationKind,
    SMTPNotificationDispatcher,
)


def _dispatcher(**overrides) -> SMTPNotificationDispatcher:
    options = dict(
        host="smtp.example.org",
        port=587,
        user="mailer",
        password="app-password",
        mail_from="EntomoGuide <no-reply@example.org>",
        admin_email="admin@example.org",
        approval_page_url="https://guide.example.org/solicitacoes",
    )
    options.update(overrides)
    return SMTPNotificationDispatcher(**options)


class TestMessageBuilding:
    def setup_method(self):
        self.dispatcher = _dispatcher()

    def test_admin_message_goes_to_admin_with_review_link(self):
        msg = self.dispatcher.build_message(
            NotificationKind.ADMIN_NEW_REGISTRATION, {"name": "Ana", "email": "ana@x.org"}
        )
        assert msg["To"] == "admin@example.org"
        assert msg["From"] == "EntomoGuide <no-reply@example.org>"
        assert "registration" in msg["Subject"]
        html_part = msg.get_body(preferencelist=("html",)).get_content()
        assert "https://guide.example.org/solicitacoes" in html_part
        assert "ana@x.org" in html_part

    def test_approval_message_goes_to_account_holder(self):
        msg = self.dispatcher.build_message(
            NotificationKind.USER_APPROVED, {"name": "Ana", "email": "ana@x.org"}
        )
        assert msg["To"] == "ana@x.org"
        assert "approved" in msg["Subject"]

    def test_names_are_escaped_in_html(self):
        msg = self.dispatcher.build_message(
            NotificationKind.USER_APPROVED, {"name": "<script>alert(1)</script>", "email": "x@x.org"}
        )
        html_part = msg.get_body(preferencelist=("html",)).get_content()
        assert "<script>" not in html_part
        assert "&lt;script&gt;" in html_part

    def test_admin_message_needs_admin_address(self):
        dispatcher = _dispatcher(admin_email="")
        with pytest.raises(NotConfiguredError):
            dispatcher.build_message(NotificationKind.ADMIN_NEW_REGISTRATION, {"name": "Ana", "email": "ana@x.org"})


class TestDelivery:
    @pytest.mark.asyncio
    async def test_successful_delivery(self):
        dispatcher = _dispatcher()
        with patch("entomoguide.services.notification.smtplib.SMTP") as smtp_cls:
            result = await dispatcher.notify(
                NotificationKind.USER_APPROVED, {"name": "Ana", "email": "ana@x.org"}
            )

        assert result.succeeded is True
        smtp_cls.assert_called_once_with("smtp.example.org", 587, timeout=10)
        server = smtp_cls.return_value.__enter__.return_value
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer", "app-password")
        server.send_message.assert_called_once()

    @pytest.mark.asyncio
    async def test_smtp_failure_becomes_a_result(self):
        dispatcher = _dispatcher()
        server = MagicMock()
        server.send_message.side_effect = OSError("connection reset")
        with patch("entomoguide.services.notification.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value = server
            result = await dispatcher.notify(
                NotificationKind.USER_APPROVED, {"name": "Ana", "email": "ana@x.org"}
            )

        assert result.succeeded is False
        assert not result
        assert "connection reset" in result.reason

    @pytest.mark.asyncio
    async def test_unconfigured_dispatcher_fails_without_network(self):
        dispatcher = _dispatcher(host="")
        with patch("entomoguide.services.notification.smtplib.SMTP") as smtp_cls:
            result = await dispatcher.notify(
                NotificationKind.ADMIN_NEW_REGISTRATION, {"name": "Ana", "email": "ana@x.org"}
            )

        assert result.succeeded is False
        assert result.reason == "smtp not configured"
        smtp_cls.assert_not_called()
        assert await dispatcher.health_check() is False

    @pytest.mark.asyncio
    async def test_missing_recipient_fails(self):
        dispatcher = _dispatcher()
        with patch("entomoguide.services.notification.smtplib.SMTP"):
            result = await dispatcher.notify(NotificationKind.USER_APPROVED, {"name": "Ana"})
        assert result.succeeded is False
