import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional

from loguru import logger

from app.utils.context import get_request_id

CONFIG_PATH = Path(__file__).resolve().parents[2] / "logging_config.json"
DEFAULT_REQUEST_ID = "app"

# Stdlib loggers re-emitted through loguru
INTERCEPTED_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "celery",
    "celery.beat",
    "sqlalchemy.engine",
)


class InterceptHandler(logging.Handler):
    """Forwards stdlib logging records to loguru, tagged with the current request ID."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(request_id=get_request_id() or DEFAULT_REQUEST_ID).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


@dataclass
class LogProfile:
    """One environment block of logging_config.json."""

    log_dir: str
    filename: str
    level: str
    rotation: str
    retention: str
    console_format: str
    file_format: str
    use_json_logs: bool = False
    file_logging: bool = True

    @classmethod
    def load(cls, config_path: Path, environment: str) -> "LogProfile":
        with open(config_path) as config_file:
            profiles = json.load(config_file)
        # "logger" is the development profile
        return cls(**profiles.get(environment, profiles["logger"]))

    @property
    def file_path(self) -> str:
        return f"{self.log_dir}/{date.today():%Y-%m-%d}-{self.filename}"

    @property
    def serialize(self) -> bool:
        return self.use_json_logs and self.file_format == "json"


def configure_logging(profile: LogProfile, level: Optional[str] = None):
    level = (level or profile.level).upper()

    logger.remove()
    # Records emitted without an explicit binding still render the formats
    logger.configure(extra={"request_id": DEFAULT_REQUEST_ID})

    logger.add(
        sys.stdout,
        enqueue=True,
        backtrace=True,
        level=level,
        format=profile.console_format,
        colorize=True,
    )

    if profile.file_logging:
        logger.add(
            profile.file_path,
            rotation=profile.rotation,
            retention=profile.retention,
            enqueue=True,
            backtrace=True,
            level=level,
            serialize=profile.serialize,
            format="{message}" if profile.serialize else profile.file_format,
            colorize=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in INTERCEPTED_LOGGERS:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [InterceptHandler()]
        stdlib_logger.propagate = False

    return logger


custom_logger = configure_logging(
    LogProfile.load(CONFIG_PATH, os.getenv("ENVIRONMENT", "development")),
    os.getenv("LOG_LEVEL"),
)


def get_logger():
    """Get the custom logger instance with request ID binding."""
    return custom_logger.bind(request_id=get_request_id() or DEFAULT_REQUEST_ID)
