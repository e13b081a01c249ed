# agenda/tasks/reminder_tasks.py
"""Reminder dispatch task (triggered by beat)"""
import logging

from agenda.config.celery_config import celery_app
from agenda.services.reminder.reminder_runner import get_runner

logger = logging.getLogger(__name__)


@celery_app.task(name="agenda.tasks.reminder_tasks.dispatch_due_reminders")
def dispatch_due_reminders():
    """Run one reminder dispatch pass; overlapping runs are skipped by the runner"""
    result = get_runner().tick()
    if result.get("skipped"):
        logger.info(f"Reminder dispatch skipped: {result['reason']}")
    return result
