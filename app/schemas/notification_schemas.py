
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import EmailStr, Field

from app.db.models import ScheduledNotification
from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel
from app.utils.datetime_utils import isoformat_utc


class ScheduleTaskNotificationsRequest(BaseModel):
    task_id: str = Field(..., min_length=1, description="ID of the task to (re)plan")


class CancelTaskNotificationsRequest(BaseModel):
    task_id: str = Field(
        ..., min_length=1, description="ID of the task whose pending notifications are removed"
    )


class SchedulerAction(str, Enum):
    START = "start"
    STOP = "stop"
    CHECK = "check"


class SchedulerActionRequest(BaseModel):
    action: str = Field(..., description="One of: start, stop, check")


class SendTestEmailRequest(BaseModel):
    to: EmailStr = Field(..., description="Recipient address")
    subject: str = Field(
        default="Test notification", max_length=200, description="Email subject"
    )
    message: str = Field(
        default="This is a test notification.",
        max_length=5000,
        description="Plain-text message body",
    )


class ScheduledNotificationItem(BaseModel):
    id: str = Field(..., description="Notification record ID")
    task_id: str = Field(..., description="Owning task ID")
    user_id: str = Field(..., description="Recipient user ID")
    user_email: Optional[str] = Field(default=None, description="Recipient email")
    user_name: Optional[str] = Field(default=None, description="Recipient name")
    task_title: str = Field(..., description="Task title at schedule time")
    due_date: str = Field(..., description="Occurrence the record belongs to (ISO)")
    notification_type: str = Field(..., description="reminder or overdue")
    scheduled_for: str = Field(..., description="Instant the record becomes due (ISO)")
    status: str = Field(..., description="pending, sent, cancelled or failed")
    offset_minutes: int = Field(..., description="Signed offset from the due date")
    attempts: int = Field(..., description="Failed delivery attempts")
    last_error: Optional[str] = Field(default=None, description="Last delivery error")
    sent_at: Optional[str] = Field(default=None, description="Delivery time (ISO)")
    created_at: Optional[str] = Field(default=None, description="Creation timestamp (ISO)")

    @classmethod
    def from_record(cls, record: ScheduledNotification) -> "ScheduledNotificationItem":
        return cls(
            id=record.id,
            task_id=record.task_id,
            user_id=record.user_id,
            user_email=record.user_email,
            user_name=record.user_name,
            task_title=record.task_title,
            due_date=isoformat_utc(record.due_date),
            notification_type=record.notification_type.value,
            scheduled_for=isoformat_utc(record.scheduled_for),
            status=record.status.value,
            offset_minutes=record.offset_minutes,
            attempts=record.attempts,
            last_error=record.last_error,
            sent_at=isoformat_utc(record.sent_at),
            created_at=isoformat_utc(record.created_at),
        )


class ScheduleTaskNotificationsResponse(BaseModel):
    task_id: str
    cancelled_count: int
    scheduled_count: int
    notifications: List[Dict[str, Any]]
    sweep: Optional[Dict[str, Any]] = None


class NotificationStatsResponse(BaseModel):
    total_tasks: int = Field(..., description="Incomplete tasks")
    valid_email_tasks: int = Field(
        ..., description="Incomplete tasks with a deliverable email address"
    )
    pending_notifications: int = Field(..., description="Pending notification records")
    email_configured: bool = Field(..., description="Whether email delivery is enabled")


class SweepReportItem(BaseModel):
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    due_found: int = 0
    sent: int = 0
    skipped: int = 0
    cancelled: int = 0
    failed: int = 0
    dead_lettered: int = 0
    overdue_candidates: int = 0
    overdue_sent: int = 0
    overdue_suppressed: int = 0
    errors: int = 0


class SchedulerStatusResponse(BaseModel):
    running: bool
    interval_seconds: float
    last_run_at: Optional[str] = None
    last_error: Optional[str] = None
    last_report: Optional[Dict[str, Any]] = None
    report: Optional[Dict[str, Any]] = None
