import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from app.db.models import NotificationType
from app.services.notifications.email_channel import DeliveryResult
from app.services.notifications.record_store import NotificationDraft
from app.utils.errors import DeliveryError

# Monday 2 March 2026, 09:00 UTC
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def naive(dt: datetime) -> datetime:
    """Stored form of an aware UTC datetime."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


class FakeChannel:
    """Delivery channel double recording every send."""

    def __init__(
        self,
        result: Optional[DeliveryResult] = None,
        error: Optional[Exception] = None,
        delay: float = 0,
        fail_for_task_ids: Optional[set] = None,
        configured: bool = True,
    ):
        self.result = result or DeliveryResult.sent()
        self.error = error
        self.delay = delay
        self.fail_for_task_ids = fail_for_task_ids or set()
        self.configured = configured
        self.sent: List[dict] = []
        self.test_emails: List[dict] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, record) -> DeliveryResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            if record.task_id in self.fail_for_task_ids:
                raise DeliveryError(f"Mailbox unavailable for task {record.task_id}")
            self.sent.append(
                {
                    "task_id": record.task_id,
                    "notification_type": record.notification_type,
                    "scheduled_for": record.scheduled_for,
                    "user_email": record.user_email,
                }
            )
            return self.result
        finally:
            self.in_flight -= 1

    async def send_test_email(self, to: str, subject: str, message: str) -> DeliveryResult:
        self.test_emails.append({"to": to, "subject": subject, "message": message})
        return self.result


def make_draft(
    task_id: str = "task-1",
    scheduled_for: datetime = NOW - timedelta(minutes=1),
    notification_type: NotificationType = NotificationType.REMINDER,
    user_email: Optional[str] = "ada@example.com",
    offset_minutes: int = -5,
) -> NotificationDraft:
    return NotificationDraft(
        task_id=task_id,
        user_id="user-1",
        user_email=user_email,
        user_name="Ada",
        task_title="Write quarterly report",
        due_date=scheduled_for - timedelta(minutes=offset_minutes),
        notification_type=notification_type,
        scheduled_for=scheduled_for,
        offset_minutes=offset_minutes,
    )
