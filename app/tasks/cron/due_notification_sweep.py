import asyncio

from app.celery import celery
from app.db.session import isolated_sessionmaker
from app.services.notifications.email_channel import EmailDeliveryChannel
from app.services.notifications.sweep_scheduler import run_sweep
from app.utils.context import ensure_request_id
from app.utils.logging import get_logger


@celery.task(bind=True, max_retries=0)
def due_notification_sweep_task(self, request_id: str):
    """
    Minute-level task delivering due notification records and live overdue notices.

    Runs every minute from Celery Beat. A sweep that fails is not retried;
    the next beat tick sweeps again from storage.

    Args:
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    return asyncio.run(_async_due_notification_sweep(request_id))


async def _async_due_notification_sweep(request_id: str):
    ensure_request_id(request_id)
    logger = get_logger().bind(request_id=request_id)

    try:
        async with isolated_sessionmaker() as session_factory:
            report = await run_sweep(session_factory, EmailDeliveryChannel.from_settings())

        return {
            "success": True,
            "report": report.to_dict(),
            "request_id": request_id,
        }

    except Exception as e:
        logger.opt(exception=e).error(f"Due notification sweep task exception: {e}")
        return {
            "success": False,
            "error": str(e),
            "request_id": request_id,
        }
