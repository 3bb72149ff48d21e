import asyncio
from dateutil.relativedelta import relativedelta

from app.celery import celery
from app.config.settings import settings
from app.db.session import isolated_sessionmaker
from app.services.notifications.email_channel import EmailDeliveryChannel
from app.services.notifications.processor import DueNotificationProcessor
from app.utils.context import ensure_request_id
from app.utils.datetime_utils import utc_now
from app.utils.logging import get_logger


@celery.task(bind=True, max_retries=3, default_retry_delay=300)
def notification_record_purge_task(self, request_id: str):
    """
    Daily task deleting sent, cancelled and failed notification records older
    than NOTIFICATION_RETENTION_DAYS.

    Args:
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    return asyncio.run(_async_notification_record_purge(request_id))


async def _async_notification_record_purge(request_id: str):
    ensure_request_id(request_id)
    logger = get_logger().bind(request_id=request_id)

    try:
        cutoff = utc_now() - relativedelta(days=settings.NOTIFICATION_RETENTION_DAYS)
        async with isolated_sessionmaker() as session_factory:
            async with session_factory() as db_session:
                processor = DueNotificationProcessor(
                    db_session, EmailDeliveryChannel.from_settings()
                )
                purged_count = await processor.purge_terminal_records(cutoff)

        return {
            "success": True,
            "purged_count": purged_count,
            "cutoff": cutoff.isoformat(),
            "request_id": request_id,
        }

    except Exception as e:
        logger.opt(exception=e).error(f"Notification record purge task exception: {e}")
        return {
            "success": False,
            "error": str(e),
            "request_id": request_id,
        }
