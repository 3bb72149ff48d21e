from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config.settings import settings
from app.db.db import create_tables
from app.db.session import AsyncSessionLocal
from app.utils.logging import get_logger
from app.routers import main_router
from app.services.notifications.email_channel import EmailDeliveryChannel
from app.services.notifications.sweep_scheduler import SweepScheduler
from app.utils.errors import setup_error_handlers
from app.middlewares import RequestIDMiddleware, SecurityHeadersMiddleware

# Initialize the logger
logger = get_logger()


@asynccontextmanager
async def lifespan(application: FastAPI):
    logger.info(f"{settings.NAME} is starting up...")
    await create_tables()

    channel = EmailDeliveryChannel.from_settings()
    if not channel.configured:
        logger.info("Email credentials not set; notifications will be skipped")

    scheduler = SweepScheduler(
        AsyncSessionLocal, channel, interval_seconds=settings.SWEEP_INTERVAL_SECONDS
    )
    application.state.delivery_channel = channel
    application.state.sweep_scheduler = scheduler

    if settings.SCHEDULER_AUTOSTART:
        scheduler.start()

    yield

    await scheduler.stop()
    logger.info(f"{settings.NAME} is shutting down...")


def create_application() -> FastAPI:
    """Initialize the FastAPI application with settings and lifespan events."""
    application = FastAPI(
        title=settings.NAME, version=settings.VERSION, lifespan=lifespan
    )

    # Setup error handlers
    setup_error_handlers(application)

    # Add CORS middleware
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "authorization"],
    )

    # Add custom middlewares
    application.add_middleware(
        SecurityHeadersMiddleware, environment=settings.ENVIRONMENT
    )
    application.add_middleware(RequestIDMiddleware)

    # Routers
    application.include_router(main_router, prefix=settings.API_PREFIX, tags=["APIs"])

    return application


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_config=None,
        log_level=None,
    )
