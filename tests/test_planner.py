import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, patch

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import NotificationStatus, NotificationType, ScheduledNotification
from app.services.notifications.planner import NotificationPlanner
from app.services.notifications.record_store import NotificationRecordStore
from app.utils.errors import DatabaseError

from factories import NOW, make_draft, naive

MONDAY, WEDNESDAY = 1, 3


async def _pending(db_session: AsyncSession, task_id: str):
    return await NotificationRecordStore(db_session).list_pending_for_task(task_id)


def _offsets(records, notification_type):
    return sorted(
        record.offset_minutes
        for record in records
        if record.notification_type == notification_type
    )


class TestOneOffTasks:
    """Test planning for tasks with a single due date."""

    @pytest.mark.asyncio
    async def test_full_offset_table(self, db_session: AsyncSession, make_task):
        due = NOW + timedelta(hours=3)
        task = await make_task(due_date=due)

        records = await NotificationPlanner(db_session).schedule_for_task(task, now=NOW)

        assert len(records) == 7
        assert _offsets(records, NotificationType.REMINDER) == [-105, -30, -15, -5]
        assert _offsets(records, NotificationType.OVERDUE) == [15, 30, 60]
        for record in records:
            assert record.status == NotificationStatus.PENDING
            assert record.due_date == naive(due)
            assert record.scheduled_for == naive(due) + timedelta(
                minutes=record.offset_minutes
            )
            assert record.user_email == "ada@example.com"
            assert record.task_title == "Write quarterly report"

    @pytest.mark.asyncio
    async def test_reminders_precede_and_overdue_follow_due_date(
        self, db_session: AsyncSession, make_task
    ):
        task = await make_task(due_date=NOW + timedelta(days=1))
        records = await NotificationPlanner(db_session).schedule_for_task(task, now=NOW)

        for record in records:
            if record.notification_type == NotificationType.REMINDER:
                assert record.scheduled_for < record.due_date
            else:
                assert record.scheduled_for > record.due_date

    @pytest.mark.asyncio
    async def test_only_future_offsets_are_created(
        self, db_session: AsyncSession, make_task
    ):
        task = await make_task(due_date=NOW + timedelta(minutes=10))

        records = await NotificationPlanner(db_session).schedule_for_task(task, now=NOW)

        assert len(records) == 4
        assert _offsets(records, NotificationType.REMINDER) == [-5]
        assert _offsets(records, NotificationType.OVERDUE) == [15, 30, 60]
        assert all(record.scheduled_for > naive(NOW) for record in records)

    @pytest.mark.asyncio
    async def test_long_overdue_task_gets_nothing(self, db_session: AsyncSession, make_task):
        task = await make_task(due_date=NOW - timedelta(hours=2))
        assert await NotificationPlanner(db_session).schedule_for_task(task, now=NOW) == []

    @pytest.mark.asyncio
    async def test_completed_task_is_skipped(self, db_session: AsyncSession, make_task):
        task = await make_task(due_date=NOW + timedelta(hours=3), completed=True)
        assert await NotificationPlanner(db_session).schedule_for_task(task, now=NOW) == []

    @pytest.mark.asyncio
    async def test_task_without_dates_gets_nothing(self, db_session: AsyncSession, make_task):
        task = await make_task()
        assert await NotificationPlanner(db_session).schedule_for_task(task, now=NOW) == []

    @pytest.mark.asyncio
    async def test_scheduling_twice_creates_no_duplicates(
        self, db_session: AsyncSession, make_task
    ):
        task = await make_task(due_date=NOW + timedelta(hours=3))
        planner = NotificationPlanner(db_session)

        first = await planner.schedule_for_task(task, now=NOW)
        second = await planner.schedule_for_task(task, now=NOW)

        assert {record.id for record in first} == {record.id for record in second}
        assert len(await _pending(db_session, task.id)) == 7


class TestRecurringTasks:
    """Test planning for weekday-recurring tasks."""

    @pytest.mark.asyncio
    async def test_recurring_offset_table_with_future_filter(
        self, db_session: AsyncSession, make_task
    ):
        # Occurrence at 10:00; the 60-minute reminder would be exactly now
        task = await make_task(available_days=[MONDAY], available_days_time="10:00")

        records = await NotificationPlanner(db_session).schedule_for_task(task, now=NOW)

        assert _offsets(records, NotificationType.REMINDER) == [-30, -15, -10, -5, 0]
        assert _offsets(records, NotificationType.OVERDUE) == [10, 30, 60, 90]

    @pytest.mark.asyncio
    async def test_schedule_wins_over_due_date(self, db_session: AsyncSession, make_task):
        task = await make_task(
            due_date=NOW + timedelta(days=3),
            available_days=[MONDAY],
            available_days_time="10:00",
        )
        records = await NotificationPlanner(db_session).schedule_for_task(task, now=NOW)

        assert {record.due_date for record in records} == {naive(NOW) + timedelta(hours=1)}

    @pytest.mark.asyncio
    async def test_each_occurrence_in_repeat_window_is_planned(
        self, db_session: AsyncSession, make_task
    ):
        task = await make_task(
            available_days=[MONDAY],
            available_days_time="10:00",
            repeat_weeks=2,
            repeat_start_date=NOW,
        )
        records = await NotificationPlanner(db_session).schedule_for_task(task, now=NOW)

        due_dates = sorted({record.due_date for record in records})
        assert due_dates == [
            naive(NOW) + timedelta(hours=1),
            naive(NOW) + timedelta(days=7, hours=1),
        ]
        # 9 for today (60-minute reminder already due) plus the full 10 next week
        assert len(records) == 19

    @pytest.mark.asyncio
    async def test_schedule_without_time_of_day_yields_nothing(
        self, db_session: AsyncSession, make_task
    ):
        task = await make_task(available_days=[MONDAY, WEDNESDAY], available_days_time="")
        assert await NotificationPlanner(db_session).schedule_for_task(task, now=NOW) == []


class TestIdempotentCreate:
    """Test the pending-slot uniqueness guarantees."""

    @pytest.mark.asyncio
    async def test_existing_pending_record_is_returned(self, db_session: AsyncSession):
        store = NotificationRecordStore(db_session)
        first, created = await store.create_idempotent(make_draft())
        await db_session.commit()
        second, created_again = await store.create_idempotent(make_draft())

        assert created is True
        assert created_again is False
        assert second.id == first.id

    @pytest.mark.asyncio
    async def test_concurrent_insert_is_resolved_by_unique_index(
        self, db_session: AsyncSession
    ):
        store = NotificationRecordStore(db_session)
        existing, _ = await store.create_idempotent(make_draft())
        await db_session.commit()

        # Simulate a racing sweep that missed the pre-query
        with patch.object(
            store, "find_pending", AsyncMock(side_effect=[None, existing])
        ):
            record, created = await store.create_idempotent(make_draft())
        await db_session.commit()

        assert created is False
        assert record.id == existing.id
        count = await db_session.scalar(
            select(func.count()).select_from(ScheduledNotification)
        )
        assert count == 1

    @pytest.mark.asyncio
    async def test_unresolved_conflict_raises_database_error(
        self, db_session: AsyncSession
    ):
        store = NotificationRecordStore(db_session)
        await store.create_idempotent(make_draft())
        await db_session.commit()

        with patch.object(store, "find_pending", AsyncMock(return_value=None)):
            with pytest.raises(DatabaseError) as exc_info:
                await store.create_idempotent(make_draft())
        await db_session.rollback()

        assert exc_info.value.error_code == "DB_ERROR"

    @pytest.mark.asyncio
    async def test_sent_record_does_not_block_new_pending_slot(
        self, db_session: AsyncSession
    ):
        store = NotificationRecordStore(db_session)
        sent, _ = await store.create_idempotent(make_draft())
        await store.mark_sent(sent, NOW)
        await db_session.commit()

        record, created = await store.create_idempotent(make_draft())
        await db_session.commit()

        assert created is True
        assert record.id != sent.id


class TestCancelAndReschedule:
    """Test teardown of pending records."""

    @pytest.mark.asyncio
    async def test_cancel_removes_only_pending_records(
        self, db_session: AsyncSession, make_task
    ):
        task = await make_task(due_date=NOW + timedelta(hours=3))
        planner = NotificationPlanner(db_session)
        records = await planner.schedule_for_task(task, now=NOW)
        await NotificationRecordStore(db_session).mark_sent(records[0], NOW)
        await db_session.commit()

        cancelled = await planner.cancel_for_task(task.id)

        assert cancelled == 6
        assert await _pending(db_session, task.id) == []
        remaining = (await db_session.execute(select(ScheduledNotification))).scalars().all()
        assert [record.status for record in remaining] == [NotificationStatus.SENT]

    @pytest.mark.asyncio
    async def test_cancel_unknown_task_is_noop(self, db_session: AsyncSession):
        assert await NotificationPlanner(db_session).cancel_for_task("missing") == 0

    @pytest.mark.asyncio
    async def test_due_date_change_replaces_pending_records(
        self, db_session: AsyncSession, make_task
    ):
        task = await make_task(due_date=NOW + timedelta(hours=3))
        planner = NotificationPlanner(db_session)
        await planner.schedule_for_task(task, now=NOW)

        new_due = naive(NOW + timedelta(hours=5))
        task.due_date = new_due
        await db_session.commit()

        cancelled, records = await planner.reschedule_for_task(task, now=NOW)

        assert cancelled == 7
        assert len(records) == 7
        pending = await _pending(db_session, task.id)
        assert {record.due_date for record in pending} == {new_due}

    @pytest.mark.asyncio
    async def test_reschedule_all_covers_every_schedulable_task(
        self, db_session: AsyncSession, make_task
    ):
        await make_task(due_date=NOW + timedelta(hours=3))
        await make_task(available_days=[MONDAY], available_days_time="10:00")
        await make_task(due_date=NOW + timedelta(hours=3), completed=True)
        await make_task()
        await make_task(available_days=[])

        summary = await NotificationPlanner(db_session).reschedule_all(now=NOW)

        assert summary.tasks_processed == 2
        assert summary.notifications_created == 7 + 9
        assert summary.failures == []

    @pytest.mark.asyncio
    async def test_reschedule_all_reports_failures_and_continues(
        self, db_session: AsyncSession, make_task
    ):
        broken = await make_task(due_date=NOW + timedelta(hours=3))
        healthy = await make_task(due_date=NOW + timedelta(hours=4))
        # The planner rolls back after a failure, which expires both instances
        broken_id, healthy_id = broken.id, healthy.id
        planner = NotificationPlanner(db_session)
        original = planner.reschedule_for_task

        async def flaky(task, now=None):
            if task.id == broken_id:
                raise RuntimeError("boom")
            return await original(task, now)

        with patch.object(planner, "reschedule_for_task", side_effect=flaky):
            summary = await planner.reschedule_all(now=NOW)

        assert summary.tasks_processed == 1
        assert summary.failures == [{"task_id": broken_id, "error": "boom"}]
        assert len(await _pending(db_session, healthy_id)) == 7
