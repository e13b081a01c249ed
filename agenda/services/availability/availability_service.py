# ===== agenda/services/availability/availability_service.py =====
from datetime import date, datetime
from typing import Dict, List, NamedTuple, Optional

from sqlalchemy.orm import Session
import logging

from agenda.config.settings import get_settings
from agenda.core.exceptions import ValidationError
from agenda.models import Agent, Appointment, BLOCKING_STATUSES, Owner, Unit
from agenda.services.calendar_exception.exception_service import CalendarExceptionService
from agenda.services.lookup import require_agent, require_unit
from agenda.services.schedule.schedule_service import ScheduleService
from agenda.utils.clock import to_local, utcnow
from agenda.utils.intervals import Interval, intersect, merge, slice_starts, subtract

logger = logging.getLogger(__name__)


class WorkingDay(NamedTuple):
    """
    Time an agent can work on one date, before existing appointments are removed.

    unit_free / agent_free are each side's open hours minus that side's
    exceptions; unit_free is None when no unit constrains the day.
    """
    unit_free: Optional[List[Interval]]
    agent_free: List[Interval]

    @property
    def windows(self) -> List[Interval]:
        if self.unit_free is None:
            return merge(self.agent_free)
        return intersect(self.unit_free, self.agent_free)


class AvailabilityService:
    """Computes bookable start times for an agent on a date"""

    @staticmethod
    def is_bookable(agent: Agent, unit: Optional[Unit]) -> bool:
        """Inactive entities, or an agent not linked to the unit, have no availability"""
        if not agent.is_active:
            return False
        if unit is not None:
            return bool(unit.is_active) and agent.serves_unit(unit.id)
        return True

    @staticmethod
    def slot_step(unit: Optional[Unit]) -> int:
        if unit is not None and unit.slot_step_minutes:
            return unit.slot_step_minutes
        return get_settings().DEFAULT_SLOT_STEP_MINUTES

    @staticmethod
    def blocked_intervals(db: Session, owner: Owner, day: date) -> List[Interval]:
        """Time ranges blocked by the owner's exceptions on the date (whole day when all-day)"""
        return merge(
            exception.blocked_interval()
            for exception in CalendarExceptionService.exceptions_for_date(db, owner, day)
        )

    @staticmethod
    def working_day(db: Session, agent_id: int, day: date, unit_id: Optional[int] = None) -> WorkingDay:
        """Open hours of unit and agent with each side's exceptions subtracted"""
        agent_owner = Owner.agent(agent_id)
        agent_free = subtract(
            ScheduleService.open_intervals_for(db, agent_owner, day),
            AvailabilityService.blocked_intervals(db, agent_owner, day)
        )

        unit_free = None
        if unit_id is not None:
            unit_owner = Owner.unit(unit_id)
            unit_free = subtract(
                ScheduleService.open_intervals_for(db, unit_owner, day),
                AvailabilityService.blocked_intervals(db, unit_owner, day)
            )

        return WorkingDay(unit_free=unit_free, agent_free=agent_free)

    @staticmethod
    def booked_appointments(
            db: Session,
            agent_id: int,
            day: date,
            exclude_appointment_id: Optional[int] = None
    ) -> List[Appointment]:
        """Approved/Completed appointments of the agent on the date"""
        query = db.query(Appointment).filter(
            Appointment.agent_id == agent_id,
            Appointment.date == day,
            Appointment.status.in_(BLOCKING_STATUSES)
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.order_by(Appointment.start_time.asc()).all()

    @staticmethod
    def get_available_slots(
            db: Session,
            agent_id: int,
            target_date: date,
            duration_minutes: int,
            unit_id: Optional[int] = None,
            exclude_appointment_id: Optional[int] = None,
            now: Optional[datetime] = None
    ) -> List[Dict]:
        """
        Ordered bookable slots [{start, end, available}] for the requested duration.

        Steps:
        1. Unit open hours and agent working hours for the weekday (closed -> no slots)
        2. Intersection of both, minus unit and agent exceptions covering the date
        3. Minus the agent's Approved/Completed appointments (except exclude_appointment_id)
        4. Sliced at the unit's slot step, keeping starts whose whole duration fits one window
        """
        if duration_minutes is None or duration_minutes <= 0:
            raise ValidationError(
                "duration_minutes must be a positive number of minutes",
                details={"duration_minutes": duration_minutes}
            )

        agent = require_agent(db, agent_id)
        unit = require_unit(db, unit_id) if unit_id is not None else None

        local_now = to_local(now or utcnow())
        if target_date < local_now.date():
            return []

        if not AvailabilityService.is_bookable(agent, unit):
            logger.info(f"Agent {agent_id} is not bookable at unit {unit_id}")
            return []

        windows = AvailabilityService.working_day(db, agent_id, target_date, unit_id).windows
        if not windows:
            return []

        booked = [
            appointment.interval
            for appointment in AvailabilityService.booked_appointments(
                db, agent_id, target_date, exclude_appointment_id
            )
        ]
        free = subtract(windows, booked)

        slots = slice_starts(free, duration_minutes, AvailabilityService.slot_step(unit))

        if target_date == local_now.date():
            now_minutes = local_now.hour * 60 + local_now.minute
            slots = [slot for slot in slots if slot.start >= now_minutes]

        logger.debug(f"{len(slots)} slots for agent {agent_id} on {target_date} ({duration_minutes} min)")
        return [{**slot.to_dict(), "available": True} for slot in slots]
