from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import (
    NotificationStatus,
    NotificationType,
    ScheduledNotification,
    TERMINAL_NOTIFICATION_STATUSES,
)
from app.utils.datetime_utils import to_naive_utc
from app.utils.errors import DatabaseError
from app.utils.logging import get_logger

logger = get_logger()


@dataclass(frozen=True)
class NotificationDraft:
    """Everything needed to create one pending notification record."""

    task_id: str
    user_id: str
    user_email: Optional[str]
    user_name: Optional[str]
    task_title: str
    due_date: datetime
    notification_type: NotificationType
    scheduled_for: datetime
    offset_minutes: int


class NotificationRecordStore:
    """
    Persistence for notification records.

    Methods flush but never commit; the calling service owns the transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, record_id: str) -> Optional[ScheduledNotification]:
        return await self.db.get(ScheduledNotification, record_id)

    async def find_pending(
        self,
        task_id: str,
        notification_type: NotificationType,
        scheduled_for: datetime,
    ) -> Optional[ScheduledNotification]:
        result = await self.db.execute(
            select(ScheduledNotification).where(
                ScheduledNotification.task_id == task_id,
                ScheduledNotification.notification_type == notification_type,
                ScheduledNotification.scheduled_for == to_naive_utc(scheduled_for),
                ScheduledNotification.status == NotificationStatus.PENDING,
            )
        )
        return result.scalars().first()

    async def create_idempotent(
        self, draft: NotificationDraft
    ) -> Tuple[ScheduledNotification, bool]:
        """
        Create a pending record unless one already exists for the same
        (task, type, scheduled_for) slot.

        Returns the record and whether it was created. A concurrent insert that
        wins the race is detected through the partial unique index and the
        surviving record is returned instead.
        """
        existing = await self.find_pending(
            draft.task_id, draft.notification_type, draft.scheduled_for
        )
        if existing is not None:
            return existing, False

        record = ScheduledNotification(
            task_id=draft.task_id,
            user_id=draft.user_id,
            user_email=draft.user_email,
            user_name=draft.user_name,
            task_title=draft.task_title,
            due_date=to_naive_utc(draft.due_date),
            notification_type=draft.notification_type,
            scheduled_for=to_naive_utc(draft.scheduled_for),
            status=NotificationStatus.PENDING,
            offset_minutes=draft.offset_minutes,
            attempts=0,
        )

        try:
            async with self.db.begin_nested():
                self.db.add(record)
        except IntegrityError as e:
            existing = await self.find_pending(
                draft.task_id, draft.notification_type, draft.scheduled_for
            )
            if existing is None:
                raise DatabaseError(
                    f"Could not insert {draft.notification_type.value} notification "
                    f"for task {draft.task_id} at {draft.scheduled_for}"
                ) from e
            logger.info(
                f"Pending {draft.notification_type.value} notification for task "
                f"{draft.task_id} at {draft.scheduled_for} created concurrently"
            )
            return existing, False

        return record, True

    async def list_due(self, now: datetime) -> List[ScheduledNotification]:
        result = await self.db.execute(
            select(ScheduledNotification)
            .where(
                ScheduledNotification.status == NotificationStatus.PENDING,
                ScheduledNotification.scheduled_for <= to_naive_utc(now),
            )
            .order_by(ScheduledNotification.scheduled_for)
        )
        return list(result.scalars().all())

    async def list_pending_for_task(self, task_id: str) -> List[ScheduledNotification]:
        result = await self.db.execute(
            select(ScheduledNotification)
            .where(
                ScheduledNotification.task_id == task_id,
                ScheduledNotification.status == NotificationStatus.PENDING,
            )
            .order_by(ScheduledNotification.scheduled_for)
        )
        return list(result.scalars().all())

    async def _list_overdue_for_task(
        self, task_id: str, status: NotificationStatus
    ) -> List[ScheduledNotification]:
        result = await self.db.execute(
            select(ScheduledNotification).where(
                ScheduledNotification.task_id == task_id,
                ScheduledNotification.notification_type == NotificationType.OVERDUE,
                ScheduledNotification.status == status,
            )
        )
        return list(result.scalars().all())

    async def list_sent_overdue_for_task(
        self, task_id: str
    ) -> List[ScheduledNotification]:
        return await self._list_overdue_for_task(task_id, NotificationStatus.SENT)

    async def list_pending_overdue_for_task(
        self, task_id: str
    ) -> List[ScheduledNotification]:
        """Planned overdue notices Pass A has yet to deliver."""
        return await self._list_overdue_for_task(task_id, NotificationStatus.PENDING)

    async def delete_pending_for_task(self, task_id: str) -> int:
        result = await self.db.execute(
            delete(ScheduledNotification)
            .where(
                ScheduledNotification.task_id == task_id,
                ScheduledNotification.status == NotificationStatus.PENDING,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    async def delete(self, record: ScheduledNotification) -> None:
        await self.db.delete(record)
        await self.db.flush()

    async def mark_sent(
        self, record: ScheduledNotification, sent_at: datetime
    ) -> ScheduledNotification:
        record.status = NotificationStatus.SENT
        record.sent_at = to_naive_utc(sent_at)
        record.last_error = None
        await self.db.flush()
        return record

    async def mark_cancelled(
        self, record: ScheduledNotification, reason: Optional[str] = None
    ) -> ScheduledNotification:
        record.status = NotificationStatus.CANCELLED
        record.last_error = reason
        await self.db.flush()
        return record

    async def record_failure(
        self, record: ScheduledNotification, error: str, max_attempts: int
    ) -> ScheduledNotification:
        """Count a failed delivery; the record is dead-lettered as failed at max_attempts."""
        record.attempts = (record.attempts or 0) + 1
        record.last_error = error
        if record.attempts >= max_attempts:
            record.status = NotificationStatus.FAILED
        await self.db.flush()
        return record

    async def add_sent_overdue(
        self,
        task_id: str,
        user_id: str,
        user_email: Optional[str],
        user_name: Optional[str],
        task_title: str,
        due_date: datetime,
        sent_at: datetime,
        offset_minutes: int,
    ) -> ScheduledNotification:
        """Record an overdue email delivered without a pre-planned record."""
        record = ScheduledNotification(
            task_id=task_id,
            user_id=user_id,
            user_email=user_email,
            user_name=user_name,
            task_title=task_title,
            due_date=to_naive_utc(due_date),
            notification_type=NotificationType.OVERDUE,
            scheduled_for=to_naive_utc(sent_at),
            status=NotificationStatus.SENT,
            offset_minutes=offset_minutes,
            attempts=0,
            sent_at=to_naive_utc(sent_at),
        )
        self.db.add(record)
        await self.db.flush()
        return record

    async def count_pending(self) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(ScheduledNotification)
            .where(ScheduledNotification.status == NotificationStatus.PENDING)
        )
        return int(result.scalar_one())

    async def purge_terminal(
        self,
        older_than: datetime,
        statuses: Sequence[NotificationStatus] = TERMINAL_NOTIFICATION_STATUSES,
    ) -> int:
        result = await self.db.execute(
            delete(ScheduledNotification)
            .where(
                ScheduledNotification.status.in_(list(statuses)),
                ScheduledNotification.updated_at < to_naive_utc(older_than),
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0
