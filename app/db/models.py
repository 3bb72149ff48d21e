from typing import List, Optional
from datetime import datetime
import uuid
from sqlalchemy import (
    String,
    Boolean,
    Integer,
    Text,
    Enum,
    Index,
    JSON,
    DateTime,
    text as sql_text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import enum

from app.utils.datetime_utils import naive_utc_now


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# Enums
class NotificationType(enum.Enum):
    REMINDER = "reminder"
    OVERDUE = "overdue"


class NotificationStatus(enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_NOTIFICATION_STATUSES = (
    NotificationStatus.SENT,
    NotificationStatus.CANCELLED,
    NotificationStatus.FAILED,
)


class AuditMixin:
    """Mixin for common audit fields"""

    # Python-side defaults keep the values loaded after flush under AsyncSession
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, onupdate=naive_utc_now, nullable=False
    )


# Models
class Task(Base, AuditMixin):
    """
    Read-only view of a user's task. Owned by the task application; this service
    only queries it when planning and sweeping notifications.
    """

    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Weekday schedule: 0 = Sunday ... 6 = Saturday, time as "HH:mm"
    available_days: Mapped[Optional[List[int]]] = mapped_column(
        JSON(none_as_null=True), nullable=True
    )
    available_days_time: Mapped[Optional[str]] = mapped_column(
        String(5), nullable=True
    )
    repeat_weeks: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    repeat_start_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    user_timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    user_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    __table_args__ = (
        Index("idx_tasks_completed_due_date", "completed", "due_date"),
        Index("idx_tasks_user_id", "user_id"),
    )

    @property
    def has_weekday_schedule(self) -> bool:
        return bool(self.available_days)


class ScheduledNotification(Base, AuditMixin):
    """
    One planned (or already delivered) reminder/overdue email for a task.

    Task fields are denormalised at schedule time so delivery never has to
    read the task again. A due-date change cancels and recreates records.
    """

    __tablename__ = "scheduled_notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    task_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    user_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    task_title: Mapped[str] = mapped_column(Text, nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    notification_type: Mapped[NotificationType] = mapped_column(
        Enum(
            NotificationType,
            values_callable=_enum_values,
            native_enum=False,
            length=16,
        ),
        nullable=False,
    )
    scheduled_for: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[NotificationStatus] = mapped_column(
        Enum(
            NotificationStatus,
            values_callable=_enum_values,
            native_enum=False,
            length=16,
        ),
        default=NotificationStatus.PENDING,
        nullable=False,
    )
    # Signed distance from due_date in minutes (negative = before)
    offset_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index(
            "uq_scheduled_notifications_pending_slot",
            "task_id",
            "notification_type",
            "scheduled_for",
            unique=True,
            sqlite_where=sql_text("status = 'pending'"),
            postgresql_where=sql_text("status = 'pending'"),
            mssql_where=sql_text("status = 'pending'"),
        ),
        Index(
            "idx_scheduled_notifications_status_scheduled_for",
            "status",
            "scheduled_for",
        ),
        Index(
            "idx_scheduled_notifications_task_type_status",
            "task_id",
            "notification_type",
            "status",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ScheduledNotification {self.id} task={self.task_id} "
            f"type={self.notification_type.value} at={self.scheduled_for} "
            f"status={self.status.value}>"
        )
