import asyncio
from contextlib import suppress
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .email_channel import DeliveryChannel
from .processor import DueNotificationProcessor, SweepReport
from app.utils.datetime_utils import isoformat_utc, utc_now
from app.utils.logging import get_logger

logger = get_logger()


async def run_sweep(
    session_factory: async_sessionmaker[AsyncSession],
    channel: DeliveryChannel,
    now: Optional[datetime] = None,
) -> SweepReport:
    """Run one complete sweep in a fresh session."""
    async with session_factory() as db:
        return await DueNotificationProcessor(db, channel).run(now)


class SweepScheduler:
    """
    In-process interval driver for the notification sweep.

    Holds the only state of the driver: the background task handle. Sweeps
    started by the timer and by run_immediate_check() share a lock, so they
    never overlap inside one process.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        channel: DeliveryChannel,
        interval_seconds: float = 60,
    ):
        self.session_factory = session_factory
        self.channel = channel
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self.last_run_at: Optional[datetime] = None
        self.last_report: Optional[SweepReport] = None
        self.last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the interval loop; returns False when it is already running."""
        if self.running:
            logger.info("Notification scheduler already running")
            return False
        self._task = asyncio.create_task(self._loop(), name="notification-sweep-loop")
        logger.info(
            f"Notification scheduler started (every {self.interval_seconds} seconds)"
        )
        return True

    async def stop(self) -> bool:
        """
        Cancel the loop and wait for it to finish; returns False when it was not running.

        A sweep already in progress is allowed to complete first, so no send is
        abandoned between delivery and recording its outcome.
        """
        if not self.running:
            self._task = None
            return False
        task, self._task = self._task, None
        async with self._lock:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        logger.info("Notification scheduler stopped")
        return True

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "last_run_at": isoformat_utc(self.last_run_at),
            "last_error": self.last_error,
            "last_report": self.last_report.to_dict() if self.last_report else None,
        }

    async def run_immediate_check(self, now: Optional[datetime] = None) -> SweepReport:
        """Run one sweep now, waiting for a sweep already in progress to finish first."""
        async with self._lock:
            self.last_run_at = utc_now()
            try:
                report = await run_sweep(self.session_factory, self.channel, now)
            except Exception as e:
                self.last_error = str(e)
                raise
            self.last_report = report
            self.last_error = None
            return report

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_immediate_check()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # The loop outlives a failed sweep; the next tick retries
                logger.opt(exception=e).error(f"Scheduled notification sweep failed: {e}")
            await asyncio.sleep(self.interval_seconds)
