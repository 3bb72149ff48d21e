import asyncio

from app.celery import celery
from app.db.session import isolated_sessionmaker
from app.services.notifications.planner import NotificationPlanner
from app.services.notifications.task_store import TaskStore
from app.utils.context import ensure_request_id
from app.utils.logging import get_logger


@celery.task(bind=True, max_retries=3, default_retry_delay=30)
def schedule_task_notifications_task(self, request_id: str, task_id: str):
    """
    Celery task to (re)plan the notifications of one task after it was
    created or its due date/schedule changed.

    Args:
        request_id: The request ID from the original HTTP request
        task_id: ID of the task to plan
    """
    try:
        result = asyncio.run(_async_schedule_task_notifications(request_id, task_id))
    except Exception as e:
        raise self.retry(exc=e)
    return result


@celery.task(bind=True, max_retries=3, default_retry_delay=30)
def cancel_task_notifications_task(self, request_id: str, task_id: str):
    """
    Celery task to drop the pending notifications of a deleted or completed task.

    Args:
        request_id: The request ID from the original HTTP request
        task_id: ID of the task whose pending notifications are removed
    """
    try:
        result = asyncio.run(_async_cancel_task_notifications(request_id, task_id))
    except Exception as e:
        raise self.retry(exc=e)
    return result


async def _async_schedule_task_notifications(request_id: str, task_id: str):
    ensure_request_id(request_id)
    logger = get_logger().bind(request_id=request_id)

    async with isolated_sessionmaker() as session_factory:
        async with session_factory() as db_session:
            task = await TaskStore(db_session).get(task_id)
            if task is None:
                logger.warning(f"Task {task_id} not found; nothing to schedule")
                return {
                    "success": False,
                    "error": f"Task not found: {task_id}",
                    "request_id": request_id,
                }

            cancelled, records = await NotificationPlanner(
                db_session
            ).reschedule_for_task(task)

            return {
                "success": True,
                "task_id": task_id,
                "cancelled_count": cancelled,
                "scheduled_count": len(records),
                "request_id": request_id,
            }


async def _async_cancel_task_notifications(request_id: str, task_id: str):
    ensure_request_id(request_id)

    async with isolated_sessionmaker() as session_factory:
        async with session_factory() as db_session:
            cancelled = await NotificationPlanner(db_session).cancel_for_task(task_id)

            return {
                "success": True,
                "task_id": task_id,
                "cancelled_count": cancelled,
                "request_id": request_id,
            }
