from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_async_session
from app.routers.dependencies import get_delivery_channel, get_sweep_scheduler
from app.routers.shared.scheduler import dump_report
from app.schemas.notification_schemas import (
    CancelTaskNotificationsRequest,
    NotificationStatsResponse,
    ScheduledNotificationItem,
    ScheduleTaskNotificationsRequest,
    ScheduleTaskNotificationsResponse,
    SendTestEmailRequest,
)
from app.services.notifications.email_channel import EmailDeliveryChannel
from app.services.notifications.planner import NotificationPlanner
from app.services.notifications.processor import DueNotificationProcessor
from app.services.notifications.sweep_scheduler import SweepScheduler
from app.services.notifications.task_store import TaskStore
from app.utils.auth import verify_cron_secret
from app.utils.errors import NotFoundError
from app.utils.logging import get_logger
from app.utils.responses import ResponseBuilder

notifications_router = APIRouter(dependencies=[Depends(verify_cron_secret)])
logger = get_logger()


async def _stats_payload(db: AsyncSession, channel) -> dict:
    stats = await DueNotificationProcessor(db, channel).get_notification_stats()
    return NotificationStatsResponse(
        **stats, email_configured=channel.configured
    ).model_dump(by_alias=True)


@notifications_router.post("/schedule")
async def schedule_task_notifications(
    request: Request,
    payload: ScheduleTaskNotificationsRequest,
    db: Annotated[AsyncSession, Depends(get_async_session)],
    scheduler: Annotated[SweepScheduler, Depends(get_sweep_scheduler)],
):
    """
    Re-plan one task's notifications after it was created or edited.

    Stale pending records are cancelled first, then one sweep runs inline so
    anything that is already due goes out immediately.
    """
    task = await TaskStore(db).get(payload.task_id)
    if task is None:
        raise NotFoundError(f"Task not found: {payload.task_id}", "TASK_NOT_FOUND")

    cancelled, records = await NotificationPlanner(db).reschedule_for_task(task)
    notifications = [
        ScheduledNotificationItem.from_record(record).model_dump(by_alias=True)
        for record in records
    ]

    report = await scheduler.run_immediate_check()

    data = ScheduleTaskNotificationsResponse(
        task_id=payload.task_id,
        cancelled_count=cancelled,
        scheduled_count=len(records),
        notifications=notifications,
        sweep=dump_report(report),
    ).model_dump(by_alias=True)

    return ResponseBuilder.success(
        request=request,
        data=data,
        message=f"Scheduled {len(records)} notifications for task {payload.task_id}",
    )


@notifications_router.post("/cancel")
async def cancel_task_notifications(
    request: Request,
    payload: CancelTaskNotificationsRequest,
    db: Annotated[AsyncSession, Depends(get_async_session)],
):
    cancelled = await NotificationPlanner(db).cancel_for_task(payload.task_id)
    return ResponseBuilder.success(
        request=request,
        data={"taskId": payload.task_id, "cancelledCount": cancelled},
        message=f"Cancelled {cancelled} pending notifications",
    )


@notifications_router.post("/reschedule-all")
async def reschedule_all_tasks(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_async_session)],
):
    """Rebuild the pending notifications of every incomplete scheduled task."""
    summary = await NotificationPlanner(db).reschedule_all()
    return ResponseBuilder.success(
        request=request,
        data={
            "tasksProcessed": summary.tasks_processed,
            "notificationsCreated": summary.notifications_created,
            "notificationsCancelled": summary.notifications_cancelled,
            "failures": [
                {"taskId": failure["task_id"], "error": failure["error"]}
                for failure in summary.failures
            ],
        },
        message=f"Rescheduled notifications for {summary.tasks_processed} tasks",
    )


@notifications_router.post("/process")
async def process_due_notifications(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_async_session)],
    scheduler: Annotated[SweepScheduler, Depends(get_sweep_scheduler)],
    channel: Annotated[EmailDeliveryChannel, Depends(get_delivery_channel)],
):
    """Run one sweep and return the resulting notification stats."""
    report = await scheduler.run_immediate_check()
    stats = await _stats_payload(db, channel)
    return ResponseBuilder.success(
        request=request,
        data={"report": dump_report(report), "stats": stats},
        message="Notifications processed",
    )


@notifications_router.get("/stats")
async def get_notification_stats(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_async_session)],
    channel: Annotated[EmailDeliveryChannel, Depends(get_delivery_channel)],
):
    return ResponseBuilder.success(
        request=request,
        data=await _stats_payload(db, channel),
        message="Notification stats retrieved",
    )


@notifications_router.post("/test-email")
async def send_test_email(
    request: Request,
    payload: SendTestEmailRequest,
    channel: Annotated[EmailDeliveryChannel, Depends(get_delivery_channel)],
):
    """Send a one-off email to check the SMTP configuration."""
    result = await channel.send_test_email(payload.to, payload.subject, payload.message)
    data = {
        "outcome": result.outcome.value,
        "reason": result.reason.value if result.reason else None,
    }

    if not result.is_sent:
        logger.warning(f"Test email to {payload.to} skipped: {data['reason']}")
        return ResponseBuilder.error(
            request=request,
            message="Email delivery is not available",
            error_code="EMAIL_SKIPPED",
            data=data,
        )

    return ResponseBuilder.success(
        request=request, data=data, message=f"Test email sent to {payload.to}"
    )
