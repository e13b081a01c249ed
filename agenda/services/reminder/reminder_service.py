# ============================================================================
# agenda/services/reminder/reminder_service.py
# ============================================================================
"""Derives 24h/1h reminder rows from an appointment's lifecycle"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from agenda.models import (
    Appointment,
    AppointmentStatus,
    ReminderKind,
    ReminderStatus,
    ScheduledReminder,
)
from agenda.services.lookup import require_appointment
from agenda.utils.clock import local_to_utc_naive, utc_naive, utcnow

logger = logging.getLogger(__name__)

REMINDER_OFFSETS = {
    ReminderKind.DAY_BEFORE: timedelta(hours=24),
    ReminderKind.HOUR_BEFORE: timedelta(hours=1),
}


class ReminderService:
    """Handles scheduled reminder rows"""

    @staticmethod
    def fire_times(appointment: Appointment) -> Dict[ReminderKind, datetime]:
        """Naive UTC fire time per kind"""
        starts_at = local_to_utc_naive(appointment.starts_at)
        return {kind: starts_at - offset for kind, offset in REMINDER_OFFSETS.items()}

    @staticmethod
    def schedule_for(
            db: Session,
            appointment: Appointment,
            now: Optional[datetime] = None
    ) -> Dict[str, List[str]]:
        """
        Create the reminder rows of an Approved appointment.

        Fire times already in the past are skipped. A row that already exists
        for (appointment, kind) is reported as a duplicate, never raised.
        """
        result = {"created": [], "skipped": [], "duplicates": []}

        if appointment.status != AppointmentStatus.APPROVED.value:
            logger.info(f"Appointment {appointment.id} is {appointment.status}, no reminders scheduled")
            return result

        now_naive = utc_naive(now or utcnow())
        appointment_id = appointment.id
        destination = appointment.client.phone_number
        fire_times = ReminderService.fire_times(appointment)

        for kind, fire_at in fire_times.items():
            if fire_at <= now_naive:
                result["skipped"].append(kind.value)
                continue

            reminder = ScheduledReminder(
                appointment_id=appointment_id,
                kind=kind.value,
                status=ReminderStatus.SCHEDULED.value,
                fire_at=fire_at,
                attempt_count=0,
                destination=destination,
            )
            db.add(reminder)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.info(f"Reminder {kind.value} already scheduled for appointment {appointment_id}")
                result["duplicates"].append(kind.value)
                continue

            result["created"].append(kind.value)

        logger.info(
            f"⏰ Reminders for appointment {appointment_id}: created={result['created']} "
            f"skipped={result['skipped']} duplicates={result['duplicates']}"
        )
        return result

    @staticmethod
    def cancel_for(db: Session, appointment_id: int) -> int:
        """Delete every reminder row of the appointment"""
        deleted = db.query(ScheduledReminder).filter(
            ScheduledReminder.appointment_id == appointment_id
        ).delete(synchronize_session=False)
        db.commit()

        if deleted:
            logger.info(f"Removed {deleted} reminders of appointment {appointment_id}")
        return deleted

    @staticmethod
    def reschedule_for(
            db: Session,
            appointment: Appointment,
            previous_appointment_id: Optional[int] = None,
            now: Optional[datetime] = None
    ) -> Dict[str, List[str]]:
        """Cancel then schedule; also clears the rows of the appointment it replaced"""
        if previous_appointment_id is not None:
            ReminderService.cancel_for(db, previous_appointment_id)
        ReminderService.cancel_for(db, appointment.id)
        return ReminderService.schedule_for(db, appointment, now=now)

    @staticmethod
    def list_for_appointment(db: Session, appointment_id: int) -> List[ScheduledReminder]:
        require_appointment(db, appointment_id)
        return db.query(ScheduledReminder).filter(
            ScheduledReminder.appointment_id == appointment_id
        ).order_by(ScheduledReminder.fire_at.asc()).all()
