from .due_notification_sweep import due_notification_sweep_task
from .notification_record_purge import notification_record_purge_task

__all__ = [
    "due_notification_sweep_task",
    "notification_record_purge_task",
]
