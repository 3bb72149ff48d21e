import asyncio
import smtplib
import time
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from enum import Enum
from html import escape
from typing import Optional, Protocol

from app.config.settings import settings
from app.db.models import NotificationType, ScheduledNotification
from app.templates.notification_email_template import (
    notification_html_template,
    overdue_subject_template,
    overdue_text_template,
    reminder_subject_template,
    reminder_text_template,
    test_email_html_template,
)
from app.utils.datetime_utils import to_utc
from app.utils.errors import DeliveryError
from app.utils.logging import get_logger

logger = get_logger()

# SMTP reply code for rejected credentials
SMTP_AUTH_FAILED_CODE = 535


class DeliveryOutcome(str, Enum):
    SENT = "sent"
    SKIPPED = "skipped"


class SkipReason(str, Enum):
    NOT_CONFIGURED = "not_configured"
    AUTH_FAILED = "auth_failed"


@dataclass(frozen=True)
class DeliveryResult:
    outcome: DeliveryOutcome
    reason: Optional[SkipReason] = None

    @classmethod
    def sent(cls) -> "DeliveryResult":
        return cls(DeliveryOutcome.SENT)

    @classmethod
    def skipped(cls, reason: SkipReason) -> "DeliveryResult":
        return cls(DeliveryOutcome.SKIPPED, reason)

    @property
    def is_sent(self) -> bool:
        return self.outcome == DeliveryOutcome.SENT


class DeliveryChannel(Protocol):
    """Sends one notification to its recipient."""

    async def send(self, record: ScheduledNotification) -> DeliveryResult:
        """Return sent or skipped(reason); raise DeliveryError on transport failure."""
        ...


def _is_auth_failure(error: smtplib.SMTPException) -> bool:
    if isinstance(error, smtplib.SMTPAuthenticationError):
        return True
    return (
        isinstance(error, smtplib.SMTPResponseException)
        and error.smtp_code == SMTP_AUTH_FAILED_CODE
    )


def format_due_date(due_date) -> str:
    return to_utc(due_date).strftime("%a, %d %b %Y %H:%M UTC")


class EmailDeliveryChannel:
    """
    SMTP delivery for task notifications.

    Delivery is disabled (every send is a "not_configured" skip) unless both
    the account user and app password are set. The blocking SMTP exchange runs
    in a worker thread so the sweep's event loop stays responsive.
    """

    def __init__(
        self,
        email_user: Optional[str] = None,
        app_password: Optional[str] = None,
        smtp_host: str = "smtp.gmail.com",
        smtp_port: int = 587,
        starttls: bool = True,
        from_name: str = "TaskPulse",
        base_url: str = "http://localhost:3000",
        connect_timeout: float = 15.0,
        send_timeout: float = 30.0,
    ):
        self.email_user = email_user
        self.app_password = app_password
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.starttls = starttls
        self.from_name = from_name
        self.base_url = base_url.rstrip("/")
        self.connect_timeout = connect_timeout
        # Upper bound for one whole SMTP exchange, enforced inside the worker thread
        self.send_timeout = send_timeout

    @classmethod
    def from_settings(cls) -> "EmailDeliveryChannel":
        return cls(
            email_user=settings.EMAIL_USER,
            app_password=settings.EMAIL_APP_PASSWORD,
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            starttls=settings.SMTP_STARTTLS,
            from_name=settings.EMAIL_FROM_NAME,
            base_url=settings.APP_BASE_URL,
            send_timeout=settings.NOTIFICATION_SEND_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self.email_user and self.app_password)

    def build_message(self, record: ScheduledNotification) -> EmailMessage:
        """Render the plain-text and HTML versions of a reminder/overdue email."""
        is_reminder = record.notification_type == NotificationType.REMINDER
        user_name = record.user_name or "there"
        due_date = format_due_date(record.due_date)

        subject_template = (
            reminder_subject_template if is_reminder else overdue_subject_template
        )
        text_template = reminder_text_template if is_reminder else overdue_text_template
        subject = subject_template.format(task_title=record.task_title)

        text_body = text_template.format(
            user_name=user_name,
            task_title=record.task_title,
            due_date=due_date,
            sender_name=self.from_name,
        )
        html_body = notification_html_template.format(
            sender_name=escape(self.from_name),
            subject=escape(subject),
            user_name=escape(user_name),
            task_title=escape(record.task_title),
            due_phrase="is due at" if is_reminder else "was due at",
            due_date=escape(due_date),
            closing_line=(
                "This is a friendly reminder to help you stay on track!"
                if is_reminder
                else "Please complete this task as soon as possible."
            ),
            base_url=escape(self.base_url, quote=True),
        )

        return self._compose(record.user_email, subject, text_body, html_body)

    def _compose(
        self, to: Optional[str], subject: str, text_body: str, html_body: str
    ) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = formataddr((self.from_name, self.email_user or ""))
        message["To"] = to or ""
        message.set_content(text_body)
        message.add_alternative(html_body, subtype="html")
        return message

    def _send_sync(self, message: EmailMessage, deadline: float) -> None:
        def remaining() -> float:
            left = deadline - time.monotonic()
            if left <= 0:
                raise TimeoutError(
                    f"SMTP exchange exceeded {self.send_timeout}s before DATA"
                )
            return left

        with smtplib.SMTP(
            host=self.smtp_host,
            port=self.smtp_port,
            timeout=min(self.connect_timeout, remaining()),
        ) as smtp:
            smtp.ehlo()
            if self.starttls:
                smtp.starttls()
                smtp.ehlo()
            smtp.login(self.email_user, self.app_password)
            # Past this point the message may reach the server; never start it late
            budget = remaining()
            if smtp.sock is not None:
                smtp.sock.settimeout(budget)
            smtp.send_message(message)

    async def _run_in_thread(self, message: EmailMessage, description: str) -> None:
        """
        Run the blocking exchange in a worker thread and wait for its real outcome.

        A worker thread cannot be interrupted, so a cancellation arriving while
        it runs is held until the thread finishes; the caller then learns
        whether the email actually went out instead of assuming it did not.
        """
        deadline = time.monotonic() + self.send_timeout
        sending = asyncio.ensure_future(
            asyncio.to_thread(self._send_sync, message, deadline)
        )
        try:
            await asyncio.shield(sending)
        except asyncio.CancelledError:
            logger.warning(
                f"Send cancelled while SMTP exchange in flight; waiting for outcome of {description}"
            )
            await asyncio.wait({sending})
            sending.result()

    async def _deliver(self, message: EmailMessage, description: str) -> DeliveryResult:
        if not self.configured:
            logger.debug(f"Email not configured - skipping {description}")
            return DeliveryResult.skipped(SkipReason.NOT_CONFIGURED)

        try:
            await self._run_in_thread(message, description)
        except smtplib.SMTPException as e:
            if _is_auth_failure(e):
                logger.warning(
                    "Email authentication failed - check EMAIL_USER and "
                    f"EMAIL_APP_PASSWORD; skipping {description}"
                )
                return DeliveryResult.skipped(SkipReason.AUTH_FAILED)
            raise DeliveryError(f"SMTP error while sending {description}: {e}")
        except TimeoutError as e:
            raise DeliveryError(
                f"Timed out while sending {description}: {e}",
                error_code="DELIVERY_TIMEOUT",
            )
        except OSError as e:
            raise DeliveryError(
                f"Connection error while sending {description}: {e}",
                error_code="DELIVERY_CONNECTION_ERROR",
            )

        logger.info(f"Email sent: {description}")
        return DeliveryResult.sent()

    async def send(self, record: ScheduledNotification) -> DeliveryResult:
        description = (
            f"{record.notification_type.value} notification for task "
            f"{record.task_id} to {record.user_email}"
        )
        return await self._deliver(self.build_message(record), description)

    async def send_test_email(
        self, to: str, subject: str, message: str
    ) -> DeliveryResult:
        html_body = test_email_html_template.format(
            sender_name=escape(self.from_name),
            subject=escape(subject),
            message=escape(message),
        )
        email = self._compose(to, subject, message, html_body)
        return await self._deliver(email, f"test email to {to}")
