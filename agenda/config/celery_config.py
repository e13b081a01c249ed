"""
Celery configuration - Redis broker, beat schedule for reminder dispatch

Usage:
    celery -A agenda.worker worker --beat --loglevel=info
"""
import logging

from celery import Celery

from agenda.config.settings import get_settings

logger = logging.getLogger(__name__)


def create_celery_app() -> Celery:
    """Create and configure the Celery application"""
    settings = get_settings()

    app = Celery(
        "agenda",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=["agenda.tasks.reminder_tasks"],
    )

    app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer="json",
        accept_content=["json"],

        # Late ack so a crashed worker does not lose a dispatch run
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,

        result_expires=3600,
        task_default_retry_delay=60,

        timezone=settings.BUSINESS_TIMEZONE,
        enable_utc=True,

        beat_schedule={
            "dispatch-due-reminders": {
                "task": "agenda.tasks.reminder_tasks.dispatch_due_reminders",
                "schedule": float(settings.REMINDER_RUN_INTERVAL_SECONDS),
            },
        },
    )

    return app


celery_app = create_celery_app()
