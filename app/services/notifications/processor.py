import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.ext.asyncio import AsyncSession

from .email_channel import DeliveryChannel, DeliveryResult
from .recipients import is_deliverable_email
from .record_store import NotificationRecordStore
from .task_store import TaskStore
from app.config.settings import settings
from app.db.models import (
    NotificationStatus,
    NotificationType,
    ScheduledNotification,
    Task,
)
from app.utils.datetime_utils import (
    isoformat_utc,
    to_naive_utc,
    utc_now,
    whole_minutes_between,
)
from app.utils.errors import DeliveryError
from app.utils.logging import get_logger

logger = get_logger()

# Minutes after the due instant at which a live overdue email may go out
OVERDUE_TARGETS = (15, 30, 60)
# Sweeps are not guaranteed to land on the target minute
OVERDUE_TARGET_TOLERANCE = 5
# A prior overdue send this close to the target counts as the same notice
OVERDUE_DEDUP_WINDOW = 10


@dataclass
class SweepReport:
    """Counters for one sweep. failed counts every transport failure, dead_lettered the subset that gave up."""

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

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def select_overdue_target(minutes_overdue: int) -> Optional[int]:
    """First overdue target whose tolerance window contains minutes_overdue."""
    for target in OVERDUE_TARGETS:
        if (
            target - OVERDUE_TARGET_TOLERANCE
            <= minutes_overdue
            <= target + OVERDUE_TARGET_TOLERANCE
        ):
            return target
    return None


def matches_prior_overdue_send(
    due_date: datetime, sent_at: Optional[datetime], target: int
) -> bool:
    """
    Approximate match of an overdue email, sent or planned at sent_at, against
    the current target.

    Compares how late that email went (or goes) out against the target, so it
    can misfire when the task's due date moved after that email was sent.
    """
    if sent_at is None:
        return False
    minutes_after_due = whole_minutes_between(due_date, sent_at)
    return abs(minutes_after_due - target) < OVERDUE_DEDUP_WINDOW


class DueNotificationProcessor:
    """
    The periodic sweep.

    Pass A delivers pending records whose time has come. Pass B re-derives
    overdue tasks straight from the task table to catch tasks that were never
    planned (or whose due date moved) and sends a live overdue notice when
    the task is near one of the overdue targets.

    Every record and task is handled in its own transaction; a failure in one
    never aborts the sweep.
    """

    def __init__(
        self,
        db: AsyncSession,
        channel: DeliveryChannel,
        max_attempts: Optional[int] = None,
        send_timeout_seconds: Optional[float] = None,
    ):
        self.db = db
        self.channel = channel
        self.records = NotificationRecordStore(db)
        self.tasks = TaskStore(db)
        self.max_attempts = max_attempts or settings.NOTIFICATION_MAX_ATTEMPTS
        self.send_timeout_seconds = (
            send_timeout_seconds or settings.NOTIFICATION_SEND_TIMEOUT_SECONDS
        )

    async def run(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or utc_now()
        report = SweepReport(started_at=isoformat_utc(now))

        await self._process_due_records(now, report)
        await self._reconcile_overdue_tasks(now, report)

        report.finished_at = isoformat_utc(utc_now())
        logger.info(
            f"Notification sweep completed: {report.due_found} due, {report.sent} sent, "
            f"{report.skipped} skipped, {report.cancelled} cancelled, "
            f"{report.failed} failed ({report.dead_lettered} dead-lettered), "
            f"{report.overdue_sent} live overdue sent, {report.errors} errors"
        )
        return report

    async def _send(self, record: ScheduledNotification) -> DeliveryResult:
        delivery = asyncio.ensure_future(self.channel.send(record))
        done, _ = await asyncio.wait({delivery}, timeout=self.send_timeout_seconds)
        if done:
            return delivery.result()

        # A channel that cannot abort its transport settles on the real outcome
        delivery.cancel()
        await asyncio.wait({delivery})
        if delivery.cancelled():
            raise DeliveryError(
                f"Delivery timed out after {self.send_timeout_seconds}s",
                error_code="DELIVERY_TIMEOUT",
            )
        result = delivery.result()
        logger.warning(
            f"Delivery for task {record.task_id} finished after the "
            f"{self.send_timeout_seconds}s timeout ({result.outcome.value})"
        )
        return result

    # Pass A

    async def _process_due_records(self, now: datetime, report: SweepReport) -> None:
        due_ids = [record.id for record in await self.records.list_due(now)]
        report.due_found = len(due_ids)

        for record_id in due_ids:
            try:
                await self._process_record(record_id, now, report)
            except Exception as e:
                await self.db.rollback()
                report.errors += 1
                logger.error(f"Failed to process scheduled notification {record_id}: {e}")

    async def _process_record(
        self, record_id: str, now: datetime, report: SweepReport
    ) -> None:
        record = await self.records.get(record_id)
        # Cancelled or handled by an overlapping sweep since the query
        if record is None or record.status != NotificationStatus.PENDING:
            return

        if not is_deliverable_email(record.user_email):
            await self.records.mark_cancelled(record, "undeliverable recipient address")
            await self.db.commit()
            report.cancelled += 1
            logger.debug(
                f"Cancelled notification {record_id}: no deliverable address for user {record.user_id}"
            )
            return

        try:
            result = await self._send(record)
        except DeliveryError as e:
            await self.records.record_failure(record, e.message, self.max_attempts)
            await self.db.commit()
            report.failed += 1
            if record.status == NotificationStatus.FAILED:
                report.dead_lettered += 1
                logger.error(
                    f"Notification {record_id} failed after {record.attempts} attempts, giving up: {e.message}"
                )
            else:
                logger.error(
                    f"Notification {record_id} failed (attempt {record.attempts}/{self.max_attempts}): {e.message}"
                )
            return

        if result.is_sent:
            await self.records.mark_sent(record, now)
            report.sent += 1
        else:
            # Best effort: an unconfigured or misconfigured transport must not build a backlog
            await self.records.delete(record)
            report.skipped += 1
        await self.db.commit()

    # Pass B

    async def _reconcile_overdue_tasks(self, now: datetime, report: SweepReport) -> None:
        cutoff = to_naive_utc(now)
        candidate_ids = [
            task.id
            for task in await self.tasks.list_incomplete_with_due_date()
            if task.due_date < cutoff
        ]

        for task_id in candidate_ids:
            try:
                await self._reconcile_task(task_id, now, report)
            except Exception as e:
                await self.db.rollback()
                report.errors += 1
                logger.error(f"Failed to reconcile overdue task {task_id}: {e}")

    async def _reconcile_task(self, task_id: str, now: datetime, report: SweepReport) -> None:
        task = await self.tasks.get(task_id)
        if task is None or task.completed or task.due_date is None:
            return
        if task.due_date >= to_naive_utc(now):
            return

        minutes_overdue = whole_minutes_between(task.due_date, now)
        target = select_overdue_target(minutes_overdue)
        if target is None:
            return
        report.overdue_candidates += 1

        if not is_deliverable_email(task.user_email):
            report.skipped += 1
            return

        prior_sends = await self.records.list_sent_overdue_for_task(task.id)
        if any(
            matches_prior_overdue_send(task.due_date, prior.sent_at, target)
            for prior in prior_sends
        ):
            report.overdue_suppressed += 1
            return

        # The planned record for this target is still to come from the due-record pass
        planned = await self.records.list_pending_overdue_for_task(task.id)
        if any(
            matches_prior_overdue_send(task.due_date, record.scheduled_for, target)
            for record in planned
        ):
            report.overdue_suppressed += 1
            return

        notice = self._overdue_notice(task, target, now)
        try:
            result = await self._send(notice)
        except DeliveryError as e:
            report.failed += 1
            logger.error(f"Live overdue notification for task {task.id} failed: {e.message}")
            return

        if not result.is_sent:
            report.skipped += 1
            return

        await self.records.add_sent_overdue(
            task_id=task.id,
            user_id=task.user_id,
            user_email=task.user_email,
            user_name=task.user_name,
            task_title=task.text,
            due_date=task.due_date,
            sent_at=now,
            offset_minutes=target,
        )
        await self.db.commit()
        report.overdue_sent += 1
        logger.info(
            f"Sent live overdue notification for task {task.id} ({minutes_overdue} minutes overdue)"
        )

    @staticmethod
    def _overdue_notice(task: Task, target: int, now: datetime) -> ScheduledNotification:
        # Transient record handed to the channel; never added to the session
        return ScheduledNotification(
            task_id=task.id,
            user_id=task.user_id,
            user_email=task.user_email,
            user_name=task.user_name,
            task_title=task.text,
            due_date=task.due_date,
            notification_type=NotificationType.OVERDUE,
            scheduled_for=now,
            status=NotificationStatus.PENDING,
            offset_minutes=target,
            attempts=0,
        )

    # Maintenance

    async def get_notification_stats(self) -> Dict[str, int]:
        incomplete = await self.tasks.list_incomplete()
        return {
            "total_tasks": len(incomplete),
            "valid_email_tasks": sum(
                1 for task in incomplete if is_deliverable_email(task.user_email)
            ),
            "pending_notifications": await self.records.count_pending(),
        }

    async def purge_terminal_records(self, older_than: Optional[datetime] = None) -> int:
        """Delete sent, cancelled and failed records last touched before older_than."""
        if older_than is None:
            older_than = utc_now() - relativedelta(days=settings.NOTIFICATION_RETENTION_DAYS)
        try:
            purged = await self.records.purge_terminal(older_than)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info(f"Purged {purged} terminal notification records")
        return purged
