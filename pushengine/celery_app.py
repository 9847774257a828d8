"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from pushengine.config import get_settings

settings = get_settings()

app = Celery(
    "pushengine",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["pushengine.tasks.scheduler"],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,  # large broadcasts run through many chunks
    task_soft_time_limit=3300,
)

# Recurring jobs, run by `celery -A pushengine.celery_app beat`
app.conf.beat_schedule = {
    "sweep-stale-endpoints": {
        "task": "pushengine.tasks.scheduler.sweep_stale_endpoints",
        "schedule": crontab(hour=settings.endpoint_cleanup_hour, minute=0),
    },
    "process-due-broadcasts": {
        "task": "pushengine.tasks.scheduler.process_due_broadcasts",
        "schedule": float(settings.broadcast_poll_seconds),
        "options": {"expires": float(settings.broadcast_poll_seconds)},
    },
}
