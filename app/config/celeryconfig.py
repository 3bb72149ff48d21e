from celery.schedules import crontab
from .settings import settings

SWEEP_TASK = "app.tasks.cron.due_notification_sweep.due_notification_sweep_task"
PURGE_TASK = "app.tasks.cron.notification_record_purge.notification_record_purge_task"

_redis_url = (
    f"redis://:{settings.REDIS_PASSWORD}@{settings.REDIS_HOST}:"
    f"{settings.REDIS_PORT}/{settings.REDIS_DB}"
)

broker_url = _redis_url
result_backend = _redis_url
result_expires = 3600

# Registers the sweep, purge and scheduling tasks
include = ["app.tasks"]

timezone = "UTC"
enable_utc = True

task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

task_track_started = True
task_time_limit = 5 * 60
task_soft_time_limit = 4 * 60
# A sweep has to be done before the next beat tick
task_annotations = {
    SWEEP_TASK: {"soft_time_limit": 50, "time_limit": 58},
}

worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

task_acks_late = True
task_reject_on_worker_lost = True
task_default_retry_delay = 60
task_max_retries = 3

beat_schedule = {
    "due-notification-sweep": {
        "task": SWEEP_TASK,
        "schedule": crontab(minute="*"),
        "args": ("due_notification_sweep_cron",),
        # A missed tick is superseded by the next one
        "options": {"expires": 55},
    },
    "notification-record-purge": {
        "task": PURGE_TASK,
        "schedule": crontab(hour=0, minute=5),
        "args": ("notification_record_purge_cron",),
    },
}

task_default_queue = "taskpulse"
beat_schedule_filename = "tmp/celerybeat-schedule"
