"""Celery application and beat schedule for the rental engine."""

from celery import Celery
from celery.schedules import crontab

from app.config import settings

celery_app = Celery(
    "rentals",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.scheduler_timezone,
    enable_utc=True,
)

# Periodic beat schedule
celery_app.conf.beat_schedule = {
    "calculate-penalties-daily": {
        "task": "app.tasks.penalty_tasks.calculate_daily_penalties",
        "schedule": crontab(hour=settings.penalty_job_hour, minute=settings.penalty_job_minute),
    },
}

# Import tasks so they get registered
from app.tasks.penalty_tasks import *  # noqa
