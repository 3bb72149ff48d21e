from .background import *
from .cron import *

__all__ = [
    # Background Tasks
    "schedule_task_notifications_task",
    "cancel_task_notifications_task",
    # Scheduled/Cron Tasks
    "due_notification_sweep_task",
    "notification_record_purge_task",
]
