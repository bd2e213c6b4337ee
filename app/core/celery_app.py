"""
Celery application: broker and result backend from settings.
Beat runs the membership sweep and the daily expiry reminders (app.workers.tasks).
"""
from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from app.core.config import settings
from app.core.logging import configure_logging

celery_app = Celery(
    "app",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "app.workers.tasks.membership",
        "app.workers.tasks.expiry_reminders",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=3600,
    result_expires=86400,
    beat_schedule={
        "enforce-group-membership": {
            "task": "app.workers.tasks.membership.enforce_membership",
            "schedule": float(settings.membership_sweep_interval_seconds),
        },
        "send-expiry-reminders": {
            "task": "app.workers.tasks.expiry_reminders.send_expiry_reminders",
            "schedule": crontab(minute=0, hour=settings.expiry_reminder_hour_utc),
        },
    },
    timezone="UTC",
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    configure_logging()
