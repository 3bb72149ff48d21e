from .email_channel import (
    DeliveryChannel,
    DeliveryOutcome,
    DeliveryResult,
    EmailDeliveryChannel,
    SkipReason,
)
from .planner import NotificationPlanner, RescheduleSummary
from .processor import DueNotificationProcessor, SweepReport
from .record_store import NotificationDraft, NotificationRecordStore
from .sweep_scheduler import SweepScheduler, run_sweep
from .task_store import TaskStore

__all__ = [
    "DeliveryChannel",
    "DeliveryOutcome",
    "DeliveryResult",
    "EmailDeliveryChannel",
    "SkipReason",
    "NotificationPlanner",
    "RescheduleSummary",
    "DueNotificationProcessor",
    "SweepReport",
    "NotificationDraft",
    "NotificationRecordStore",
    "SweepScheduler",
    "run_sweep",
    "TaskStore",
]
