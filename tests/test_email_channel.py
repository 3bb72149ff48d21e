import smtplib
import time
import pytest
from datetime import timedelta
from unittest.mock import patch

from app.db.models import NotificationStatus, NotificationType, ScheduledNotification
from app.services.notifications.email_channel import (
    DeliveryOutcome,
    EmailDeliveryChannel,
    SkipReason,
    format_due_date,
)
from app.utils.errors import DeliveryError

from factories import NOW, naive

SMTP_PATH = "app.services.notifications.email_channel.smtplib.SMTP"


def make_channel(**overrides) -> EmailDeliveryChannel:
    values = {
        "email_user": "bot@taskpulse.dev",
        "app_password": "app-password",
        "smtp_host": "smtp.test",
        "smtp_port": 2525,
        "base_url": "https://taskpulse.dev/",
    }
    values.update(overrides)
    return EmailDeliveryChannel(**values)


def make_record(**overrides) -> ScheduledNotification:
    values = {
        "task_id": "task-1",
        "user_id": "user-1",
        "user_email": "ada@example.com",
        "user_name": "Ada",
        "task_title": "Write quarterly report",
        "due_date": naive(NOW),
        "notification_type": NotificationType.REMINDER,
        "scheduled_for": naive(NOW - timedelta(minutes=15)),
        "status": NotificationStatus.PENDING,
        "offset_minutes": -15,
        "attempts": 0,
    }
    values.update(overrides)
    return ScheduledNotification(**values)


class TestMessageRendering:
    """Test reminder and overdue email content."""

    def test_format_due_date(self):
        assert format_due_date(naive(NOW)) == "Mon, 02 Mar 2026 09:00 UTC"

    def test_reminder_message(self):
        message = make_channel().build_message(make_record())

        assert message["Subject"] == "Reminder: Write quarterly report is due soon"
        assert message["To"] == "ada@example.com"
        assert "bot@taskpulse.dev" in message["From"]

        text = message.get_body(preferencelist=("plain",)).get_content()
        assert "Hello Ada," in text
        assert "is due at Mon, 02 Mar 2026 09:00 UTC" in text

        html = message.get_body(preferencelist=("html",)).get_content()
        assert "https://taskpulse.dev/tasks" in html
        assert "https://taskpulse.dev/settings" in html

    def test_overdue_message(self):
        message = make_channel().build_message(
            make_record(notification_type=NotificationType.OVERDUE, offset_minutes=15)
        )

        assert message["Subject"] == "Overdue: Write quarterly report needs attention"
        text = message.get_body(preferencelist=("plain",)).get_content()
        assert "is now overdue" in text

    def test_html_escapes_task_title(self):
        message = make_channel().build_message(
            make_record(task_title="<script>alert(1)</script>")
        )
        html = message.get_body(preferencelist=("html",)).get_content()

        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_missing_user_name_uses_greeting_fallback(self):
        message = make_channel().build_message(make_record(user_name=None))
        text = message.get_body(preferencelist=("plain",)).get_content()
        assert "Hello there," in text


class TestDelivery:
    """Test SMTP outcomes."""

    @pytest.mark.asyncio
    async def test_unconfigured_channel_skips_without_connecting(self):
        channel = make_channel(app_password="")

        with patch(SMTP_PATH) as smtp_class:
            result = await channel.send(make_record())

        assert channel.configured is False
        assert result.outcome == DeliveryOutcome.SKIPPED
        assert result.reason == SkipReason.NOT_CONFIGURED
        smtp_class.assert_not_called()

    @pytest.mark.asyncio
    async def test_successful_send(self):
        with patch(SMTP_PATH) as smtp_class:
            smtp = smtp_class.return_value.__enter__.return_value
            result = await make_channel().send(make_record())

        assert result.is_sent
        smtp_class.assert_called_once_with(host="smtp.test", port=2525, timeout=15.0)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("bot@taskpulse.dev", "app-password")
        sent_message = smtp.send_message.call_args.args[0]
        assert sent_message["To"] == "ada@example.com"

    @pytest.mark.asyncio
    async def test_plain_connection_skips_starttls(self):
        with patch(SMTP_PATH) as smtp_class:
            smtp = smtp_class.return_value.__enter__.return_value
            await make_channel(starttls=False).send(make_record())

        smtp.starttls.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_credentials_are_a_skip(self):
        with patch(SMTP_PATH) as smtp_class:
            smtp = smtp_class.return_value.__enter__.return_value
            smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad creds")
            result = await make_channel().send(make_record())

        assert result.reason == SkipReason.AUTH_FAILED
        smtp.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_535_reply_is_treated_as_auth_failure(self):
        with patch(SMTP_PATH) as smtp_class:
            smtp = smtp_class.return_value.__enter__.return_value
            smtp.send_message.side_effect = smtplib.SMTPResponseException(
                535, b"5.7.8 Username and Password not accepted"
            )
            result = await make_channel().send(make_record())

        assert result.reason == SkipReason.AUTH_FAILED

    @pytest.mark.asyncio
    async def test_other_smtp_errors_raise_delivery_error(self):
        with patch(SMTP_PATH) as smtp_class:
            smtp = smtp_class.return_value.__enter__.return_value
            smtp.send_message.side_effect = smtplib.SMTPServerDisconnected("gone")

            with pytest.raises(DeliveryError) as exc_info:
                await make_channel().send(make_record())

        assert exc_info.value.error_code == "DELIVERY_ERROR"
        assert "gone" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_exchange_past_deadline_never_sends_data(self):
        with patch(SMTP_PATH) as smtp_class:
            smtp = smtp_class.return_value.__enter__.return_value
            smtp.login.side_effect = lambda *args: time.sleep(0.1)

            with pytest.raises(DeliveryError) as exc_info:
                await make_channel(send_timeout=0.05).send(make_record())

        assert exc_info.value.error_code == "DELIVERY_TIMEOUT"
        smtp.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_socket_timeout_is_capped_by_send_deadline(self):
        with patch(SMTP_PATH) as smtp_class:
            smtp = smtp_class.return_value.__enter__.return_value
            await make_channel(send_timeout=5.0).send(make_record())

        assert smtp_class.call_args.kwargs["timeout"] <= 5.0
        assert 0 < smtp.sock.settimeout.call_args.args[0] <= 5.0

    @pytest.mark.asyncio
    async def test_connection_failure_raises_delivery_error(self):
        with patch(SMTP_PATH, side_effect=ConnectionRefusedError("refused")):
            with pytest.raises(DeliveryError) as exc_info:
                await make_channel().send(make_record())

        assert exc_info.value.error_code == "DELIVERY_CONNECTION_ERROR"

    @pytest.mark.asyncio
    async def test_test_email(self):
        with patch(SMTP_PATH) as smtp_class:
            smtp = smtp_class.return_value.__enter__.return_value
            result = await make_channel().send_test_email(
                "grace@example.com", "Hello", "Checking <delivery>"
            )

        assert result.is_sent
        sent_message = smtp.send_message.call_args.args[0]
        assert sent_message["To"] == "grace@example.com"
        assert sent_message["Subject"] == "Hello"
        html = sent_message.get_body(preferencelist=("html",)).get_content()
        assert "Checking &lt;delivery&gt;" in html

    def test_from_settings_without_credentials_is_unconfigured(self):
        assert EmailDeliveryChannel.from_settings().configured is False
