from typing import List, Optional, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "TaskPulse Notification Server"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    """Pydantic v2 doesn't support parsing List[str] from a plain comma-separated string by default anymore."""
    ALLOWED_HOSTS: Union[str, List[str]] = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"
    APP_BASE_URL: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./taskpulse.db"

    # Timezone used when a task carries no timezone hint
    DEFAULT_TIMEZONE: str = "UTC"

    # Email delivery (both credentials must be present, otherwise delivery is disabled)
    EMAIL_USER: Optional[str] = None
    EMAIL_APP_PASSWORD: Optional[str] = None
    EMAIL_FROM_NAME: str = "TaskPulse"
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_STARTTLS: bool = True

    # Notification pipeline
    NOTIFICATION_SEND_TIMEOUT_SECONDS: float = 30.0
    NOTIFICATION_MAX_ATTEMPTS: int = 5
    NOTIFICATION_RETENTION_DAYS: int = 7
    SWEEP_INTERVAL_SECONDS: int = 60
    SCHEDULER_AUTOSTART: bool = False
    CRON_SECRET: Optional[str] = None

    # Redis & Celery
    REDIS_PASSWORD: str = ""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @field_validator("ALLOWED_HOSTS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if not v:
            return []
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        return v

    @property
    def email_configured(self) -> bool:
        return bool(self.EMAIL_USER and self.EMAIL_APP_PASSWORD)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
