from fastapi import APIRouter, Request

from app.config.settings import settings
from app.utils.responses import ResponseBuilder

health_router = APIRouter()


@health_router.get("/")
async def health_check(request: Request):
    """
    Basic health check endpoint

    Returns application status and basic system information
    """
    scheduler = getattr(request.app.state, "sweep_scheduler", None)
    return ResponseBuilder.success(
        request=request,
        data={
            "status": "healthy",
            "service": settings.NAME,
            "version": settings.VERSION,
            "schedulerRunning": bool(scheduler and scheduler.running),
            "emailConfigured": settings.email_configured,
        },
        message="Service is running",
    )
