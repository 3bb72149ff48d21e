from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from .occurrences import bounded_occurrences
from .record_store import NotificationDraft, NotificationRecordStore
from .task_store import TaskStore
from app.db.models import NotificationType, ScheduledNotification, Task
from app.utils.datetime_utils import to_utc, utc_now
from app.utils.logging import get_logger

logger = get_logger()

# Offsets in minutes relative to the due instant; escalating before, decaying after
ONE_OFF_REMINDER_OFFSETS = (105, 30, 15, 5)
ONE_OFF_OVERDUE_OFFSETS = (15, 30, 60)
RECURRING_REMINDER_OFFSETS = (60, 30, 15, 10, 5, 0)
RECURRING_OVERDUE_OFFSETS = (10, 30, 60, 90)


@dataclass
class RescheduleSummary:
    tasks_processed: int = 0
    notifications_created: int = 0
    notifications_cancelled: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)


def _offset_plan(
    reminder_offsets: Iterable[int], overdue_offsets: Iterable[int]
) -> List[Tuple[NotificationType, int]]:
    plan = [(NotificationType.REMINDER, -minutes) for minutes in reminder_offsets]
    plan.extend((NotificationType.OVERDUE, minutes) for minutes in overdue_offsets)
    return plan


ONE_OFF_PLAN = _offset_plan(ONE_OFF_REMINDER_OFFSETS, ONE_OFF_OVERDUE_OFFSETS)
RECURRING_PLAN = _offset_plan(RECURRING_REMINDER_OFFSETS, RECURRING_OVERDUE_OFFSETS)


class NotificationPlanner:
    """Turns a task into its reminder/overdue notification records and tears them down."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.records = NotificationRecordStore(db)
        self.tasks = TaskStore(db)

    def build_drafts(self, task: Task, now: datetime) -> List[NotificationDraft]:
        """
        Compute every record the task should have, keeping only those whose
        scheduled instant is strictly after now.
        """
        now = to_utc(now)

        if task.has_weekday_schedule:
            occurrences = list(bounded_occurrences(task, now))
            plan = RECURRING_PLAN
        elif task.due_date is not None:
            if task.completed:
                return []
            occurrences = [to_utc(task.due_date)]
            plan = ONE_OFF_PLAN
        else:
            return []

        drafts = []
        for occurrence in occurrences:
            for notification_type, offset_minutes in plan:
                scheduled_for = occurrence + timedelta(minutes=offset_minutes)
                if scheduled_for <= now:
                    continue
                drafts.append(
                    NotificationDraft(
                        task_id=task.id,
                        user_id=task.user_id,
                        user_email=task.user_email,
                        user_name=task.user_name,
                        task_title=task.text,
                        due_date=occurrence,
                        notification_type=notification_type,
                        scheduled_for=scheduled_for,
                        offset_minutes=offset_minutes,
                    )
                )
        return drafts

    async def schedule_for_task(
        self, task: Task, now: Optional[datetime] = None
    ) -> List[ScheduledNotification]:
        """Idempotently create the task's future notification records."""
        now = now or utc_now()
        task_id = task.id
        drafts = self.build_drafts(task, now)

        records = []
        created = 0
        try:
            for draft in drafts:
                record, was_created = await self.records.create_idempotent(draft)
                records.append(record)
                created += int(was_created)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Scheduled notifications for task {task_id}: "
            f"{created} created, {len(records) - created} already pending"
        )
        return records

    async def cancel_for_task(self, task_id: str) -> int:
        """Delete every pending record of the task; returns how many were removed."""
        try:
            deleted = await self.records.delete_pending_for_task(task_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if deleted:
            logger.info(f"Cancelled {deleted} pending notifications for task {task_id}")
        return deleted

    async def reschedule_for_task(
        self, task: Task, now: Optional[datetime] = None
    ) -> Tuple[int, List[ScheduledNotification]]:
        """Cancel stale pending records, then plan the task again."""
        task_id = task.id
        cancelled = await self.cancel_for_task(task_id)
        task = await self.tasks.get(task_id)
        if task is None:
            return cancelled, []
        return cancelled, await self.schedule_for_task(task, now)

    async def reschedule_all(self, now: Optional[datetime] = None) -> RescheduleSummary:
        """Reschedule every incomplete task that has a due date or weekday schedule."""
        now = now or utc_now()
        summary = RescheduleSummary()
        task_ids = [task.id for task in await self.tasks.list_schedulable()]

        for task_id in task_ids:
            try:
                task = await self.tasks.get(task_id)
                if task is None:
                    continue
                cancelled, records = await self.reschedule_for_task(task, now)
                summary.tasks_processed += 1
                summary.notifications_cancelled += cancelled
                summary.notifications_created += len(records)
            except Exception as e:
                await self.db.rollback()
                logger.error(f"Failed to reschedule notifications for task {task_id}: {e}")
                summary.failures.append({"task_id": task_id, "error": str(e)})

        logger.info(
            f"Rescheduled {summary.tasks_processed} tasks: "
            f"{summary.notifications_created} notifications planned, "
            f"{len(summary.failures)} failures"
        )
        return summary
