from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.routers.dependencies import get_sweep_scheduler
from app.schemas.notification_schemas import (
    SchedulerAction,
    SchedulerActionRequest,
    SchedulerStatusResponse,
    SweepReportItem,
)
from app.services.notifications.processor import SweepReport
from app.services.notifications.sweep_scheduler import SweepScheduler
from app.utils.auth import verify_cron_secret
from app.utils.errors import BusinessLogicError
from app.utils.logging import get_logger
from app.utils.responses import ResponseBuilder

scheduler_router = APIRouter(dependencies=[Depends(verify_cron_secret)])
logger = get_logger()


def dump_report(report: Optional[SweepReport]) -> Optional[Dict[str, Any]]:
    if report is None:
        return None
    return SweepReportItem(**report.to_dict()).model_dump(by_alias=True)


def _status_payload(
    scheduler: SweepScheduler, report: Optional[SweepReport] = None
) -> Dict[str, Any]:
    return SchedulerStatusResponse(
        running=scheduler.running,
        interval_seconds=scheduler.interval_seconds,
        last_run_at=scheduler.status()["last_run_at"],
        last_error=scheduler.last_error,
        last_report=dump_report(scheduler.last_report),
        report=dump_report(report),
    ).model_dump(exclude_none=True, by_alias=True)


@scheduler_router.api_route("/cron", methods=["GET", "POST"])
async def run_cron_sweep(
    scheduler: Annotated[SweepScheduler, Depends(get_sweep_scheduler)],
):
    """
    Trigger for an external cron: runs one full sweep and waits for it.

    Responds with {success, report} or {success: false, error}.
    """
    try:
        report = await scheduler.run_immediate_check()
    except Exception as e:
        logger.opt(exception=e).error(f"Cron sweep failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(e)},
        )

    return JSONResponse(content={"success": True, "report": dump_report(report)})


@scheduler_router.get("/scheduler")
async def get_scheduler_status(
    request: Request,
    scheduler: Annotated[SweepScheduler, Depends(get_sweep_scheduler)],
):
    return ResponseBuilder.success(
        request=request,
        data=_status_payload(scheduler),
        message="Scheduler is running" if scheduler.running else "Scheduler is stopped",
    )


@scheduler_router.post("/scheduler")
async def control_scheduler(
    request: Request,
    payload: SchedulerActionRequest,
    scheduler: Annotated[SweepScheduler, Depends(get_sweep_scheduler)],
):
    """Start or stop the in-process interval loop, or run one sweep now."""
    try:
        action = SchedulerAction(payload.action.strip().lower())
    except ValueError:
        raise BusinessLogicError(
            f"Unknown scheduler action: {payload.action}. Use start, stop or check.",
            error_code="UNKNOWN_SCHEDULER_ACTION",
        )

    report = None
    if action == SchedulerAction.START:
        started = scheduler.start()
        message = "Scheduler started" if started else "Scheduler already running"
    elif action == SchedulerAction.STOP:
        stopped = await scheduler.stop()
        message = "Scheduler stopped" if stopped else "Scheduler was not running"
    else:
        report = await scheduler.run_immediate_check()
        message = "Notification check completed"

    return ResponseBuilder.success(
        request=request, data=_status_payload(scheduler, report), message=message
    )
