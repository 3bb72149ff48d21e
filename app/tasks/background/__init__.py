from .notification_scheduling import (
    cancel_task_notifications_task,
    schedule_task_notifications_task,
)

__all__ = [
    "schedule_task_notifications_task",
    "cancel_task_notifications_task",
]
