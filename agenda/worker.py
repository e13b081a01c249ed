"""
Celery worker entry point
Runs reminder dispatch (start with --beat to schedule it)
"""
import logging
from celery.signals import worker_ready, worker_shutdown

from agenda.config.celery_config import celery_app
from agenda.config.settings import get_settings
from agenda.utils.my_logging import setup_logging

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)

settings = get_settings()


@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    """Handle worker startup"""
    logger.info("🚀 Celery worker ready!")
    logger.info(f"📋 Registered tasks: {list(celery_app.tasks.keys())}")
    logger.info(
        f"⏰ Dispatching reminders every {settings.REMINDER_RUN_INTERVAL_SECONDS}s "
        f"between {settings.REMINDER_WINDOW_START_HOUR:02d}:00 and {settings.REMINDER_WINDOW_END_HOUR:02d}:00"
    )


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    """Handle worker shutdown"""
    logger.info("🛑 Celery worker shutting down...")


if __name__ == "__main__":
    # Run worker directly
    celery_app.start([
        'worker',
        '--beat',
        '--loglevel=info',
        '--concurrency=2',
        '--max-tasks-per-child=1000'
    ])
