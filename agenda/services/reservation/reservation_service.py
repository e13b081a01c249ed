# ============================================================================
# agenda/services/reservation/reservation_service.py
# ============================================================================
"""
Reservation coordinator.

The write path re-validates the requested interval against unit hours, agent
hours, exceptions and existing appointments inside a critical section keyed by
(agent_id, date), then inserts and commits before leaving it. On PostgreSQL the
appointments exclusion constraint backs this up; its violation maps to
SlotConflict.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from agenda.config.settings import get_settings
from agenda.core.exceptions import (
    AgentUnavailable,
    NotFound,
    PastDate,
    SlotConflict,
    UnitClosed,
    ValidationError,
)
from agenda.models import (
    Agent,
    Appointment,
    AppointmentExtraItem,
    AppointmentServiceItem,
    AppointmentStatus,
    ExtraService,
    Service,
    Unit,
)
from agenda.models.appointment import NO_OVERLAP_CONSTRAINT
from agenda.services.availability.availability_service import AvailabilityService
from agenda.services.lookup import require_agent, require_appointment, require_client, require_unit
from agenda.services.reminder.reminder_service import ReminderService
from agenda.services.reservation.slot_lock import slot_critical_section
from agenda.utils.clock import to_local, utc_naive, utcnow
from agenda.utils.intervals import (
    Interval,
    MINUTES_PER_DAY,
    contains,
    format_minutes,
    minutes_to_time,
    overlaps,
    parse_hhmm,
)

logger = logging.getLogger(__name__)

EXCLUSION_VIOLATION = "23P01"


def _is_overlap_violation(error: IntegrityError) -> bool:
    orig = error.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code == EXCLUSION_VIOLATION or NO_OVERLAP_CONSTRAINT in str(orig)


class ReservationService:
    """Handles appointment creation and status transitions"""

    # ========================================================================
    # CHECKS
    # ========================================================================

    @staticmethod
    def requested_interval(start_time: Any, service_durations: Sequence[int]) -> Interval:
        start = parse_hhmm(start_time)
        if not service_durations or any(d is None or d < 0 for d in service_durations):
            raise ValidationError("Service durations must be non-negative minutes")

        duration = sum(service_durations)
        if duration <= 0:
            raise ValidationError("Total duration must be positive", details={"duration_minutes": duration})
        if start + duration > MINUTES_PER_DAY:
            raise ValidationError("Appointment must end on the same day it starts")
        return Interval(start, start + duration)

    @staticmethod
    def check_not_past(target_date: date, interval: Interval, now: Optional[datetime] = None):
        """Raise PastDate for starts before now, unless retroactive bookings are allowed"""
        if get_settings().ALLOW_PAST_BOOKINGS:
            return

        local_now = to_local(now or utcnow()).replace(tzinfo=None)
        starts_at = datetime.combine(target_date, minutes_to_time(interval.start))
        if starts_at < local_now:
            raise PastDate(
                f"Cannot book {target_date.isoformat()} {format_minutes(interval.start)}, it is in the past",
                details={"date": target_date.isoformat(), "start_time": format_minutes(interval.start)}
            )

    @staticmethod
    def validate_slot(
            db: Session,
            agent: Agent,
            unit: Unit,
            target_date: date,
            interval: Interval,
            exclude_appointment_id: Optional[int] = None
    ):
        """Write-time re-validation; call inside the slot critical section"""
        if not unit.is_active:
            raise UnitClosed(f"Unit {unit.id} is not active", details={"unit_id": unit.id})
        if not agent.is_active or not agent.serves_unit(unit.id):
            raise AgentUnavailable(
                f"Agent {agent.id} does not serve unit {unit.id}",
                details={"agent_id": agent.id, "unit_id": unit.id}
            )

        details = {
            "date": target_date.isoformat(),
            "start_time": format_minutes(interval.start),
            "end_time": format_minutes(interval.end),
        }
        working_day = AvailabilityService.working_day(db, agent.id, target_date, unit.id)
        if not contains(working_day.unit_free, interval):
            raise UnitClosed("Unit is closed for the requested time", details={"unit_id": unit.id, **details})
        if not contains(working_day.agent_free, interval):
            raise AgentUnavailable(
                "Agent is not working at the requested time",
                details={"agent_id": agent.id, **details}
            )

        for appointment in AvailabilityService.booked_appointments(
                db, agent.id, target_date, exclude_appointment_id
        ):
            if overlaps(appointment.interval, interval):
                raise SlotConflict(
                    "Requested time overlaps another appointment",
                    details={"conflicting_appointment_id": appointment.id, **details}
                )

    # ========================================================================
    # RESERVE
    # ========================================================================

    @staticmethod
    def reserve(
            db: Session,
            agent_id: int,
            unit_id: int,
            client_id: int,
            target_date: date,
            start_time: Any,
            service_durations: Sequence[int],
            metadata: Optional[Dict[str, Any]] = None,
            now: Optional[datetime] = None
    ) -> Appointment:
        """
        Create an Approved appointment or raise.

        metadata may carry notes, total_value and the applied prices of the
        booked services/extras as [(id, price)] lists.
        """
        metadata = metadata or {}
        interval = ReservationService.requested_interval(start_time, service_durations)

        agent = require_agent(db, agent_id)
        unit = require_unit(db, unit_id)
        require_client(db, client_id)
        ReservationService.check_not_past(target_date, interval, now)

        with slot_critical_section(db, (agent_id, target_date)):
            try:
                ReservationService.validate_slot(db, agent, unit, target_date, interval)

                appointment = Appointment(
                    agent_id=agent_id,
                    unit_id=unit_id,
                    client_id=client_id,
                    date=target_date,
                    start_time=minutes_to_time(interval.start),
                    end_time=minutes_to_time(interval.end),
                    status=AppointmentStatus.APPROVED.value,
                    total_value=metadata.get("total_value", Decimal("0")),
                    notes=metadata.get("notes"),
                    rescheduled_from_id=metadata.get("rescheduled_from_id"),
                )
                appointment.services = [
                    AppointmentServiceItem(service_id=service_id, applied_price=price)
                    for service_id, price in metadata.get("services", [])
                ]
                appointment.extras = [
                    AppointmentExtraItem(extra_service_id=extra_id, applied_price=price)
                    for extra_id, price in metadata.get("extras", [])
                ]
                db.add(appointment)
                db.commit()
            except IntegrityError as e:
                db.rollback()
                if _is_overlap_violation(e):
                    logger.info(f"Exclusion constraint rejected agent {agent_id} on {target_date}")
                    raise SlotConflict(
                        "Requested time overlaps another appointment",
                        details={"date": target_date.isoformat(), "start_time": format_minutes(interval.start)}
                    )
                raise
            except Exception:
                db.rollback()
                raise

        db.refresh(appointment)
        logger.info(
            f"✅ Appointment {appointment.id} booked: agent {agent_id} at unit {unit_id} "
            f"on {target_date} {format_minutes(interval.start)}-{format_minutes(interval.end)}"
        )

        ReservationService._schedule_reminders(db, appointment, now=now)
        return appointment

    @staticmethod
    def _schedule_reminders(db: Session, appointment: Appointment, previous_id: Optional[int] = None, now=None):
        """Reminder problems are logged; the appointment stands regardless"""
        try:
            if previous_id is None:
                ReminderService.schedule_for(db, appointment, now=now)
            else:
                ReminderService.reschedule_for(db, appointment, previous_appointment_id=previous_id, now=now)
        except Exception:
            db.rollback()
            logger.exception(f"Could not schedule reminders for appointment {appointment.id}")

    # ========================================================================
    # CREATE FROM SERVICES
    # ========================================================================

    @staticmethod
    def _resolve_items(db: Session, model, ids: List[int], unit_id: int, label: str) -> List[Any]:
        if len(set(ids)) != len(ids):
            raise ValidationError(f"Duplicate {label} ids", details={f"{label}_ids": ids})

        rows = db.query(model).filter(model.id.in_(ids)).all() if ids else []
        by_id = {row.id: row for row in rows}

        missing = [item_id for item_id in ids if item_id not in by_id]
        if missing:
            raise NotFound(f"Unknown {label} ids: {missing}", details={f"{label}_ids": missing})

        for row in rows:
            if not row.is_active or row.unit_id != unit_id:
                raise ValidationError(
                    f"{label.capitalize()} {row.id} is not offered at unit {unit_id}",
                    details={f"{label}_id": row.id, "unit_id": unit_id}
                )
        return [by_id[item_id] for item_id in ids]

    @staticmethod
    def create_reservation(
            db: Session,
            agent_id: int,
            unit_id: int,
            client_id: int,
            target_date: date,
            start_time: Any,
            service_ids: List[int],
            extra_ids: Optional[List[int]] = None,
            notes: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Appointment:
        """Resolve services and extras into duration and value, then reserve"""
        if not service_ids:
            raise ValidationError("At least one service is required")
        parse_hhmm(start_time)

        services = ReservationService._resolve_items(db, Service, list(service_ids), unit_id, "service")
        extras = ReservationService._resolve_items(db, ExtraService, list(extra_ids or []), unit_id, "extra")

        durations = [s.duration_minutes for s in services] + [e.duration_minutes for e in extras]
        total_value = sum((Decimal(item.price or 0) for item in services + extras), Decimal("0"))

        return ReservationService.reserve(
            db,
            agent_id=agent_id,
            unit_id=unit_id,
            client_id=client_id,
            target_date=target_date,
            start_time=start_time,
            service_durations=durations,
            metadata={
                "notes": notes,
                "total_value": total_value,
                "services": [(s.id, s.price) for s in services],
                "extras": [(e.id, e.price) for e in extras],
            },
            now=now,
        )

    # ========================================================================
    # STATUS TRANSITIONS
    # ========================================================================

    @staticmethod
    def _require_approved(appointment: Appointment, action: str):
        if appointment.status != AppointmentStatus.APPROVED.value:
            raise ValidationError(
                f"Cannot {action} an appointment that is {appointment.status}",
                details={"appointment_id": appointment.id, "status": appointment.status}
            )

    @staticmethod
    def _transition(db: Session, appointment_id: int, action: str, values: Dict[str, Any]):
        """
        Conditional UPDATE out of Approved.

        Only one of several concurrent transitions of the same appointment can
        match the WHERE clause; the others see zero rows and raise.
        """
        changed = db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.status == AppointmentStatus.APPROVED.value
        ).update(values, synchronize_session=False)

        if changed != 1:
            db.rollback()
            current = require_appointment(db, appointment_id)
            logger.info(f"Appointment {appointment_id} left Approved before it could {action}")
            ReservationService._require_approved(current, action)
            raise ValidationError(
                f"Cannot {action} appointment {appointment_id}",
                details={"appointment_id": appointment_id}
            )

    @staticmethod
    def cancel(db: Session, appointment_id: int, now: Optional[datetime] = None) -> Appointment:
        """Approved -> Cancelled; its reminders are removed"""
        appointment = require_appointment(db, appointment_id)
        ReservationService._require_approved(appointment, "cancel")

        ReservationService._transition(db, appointment_id, "cancel", {
            "status": AppointmentStatus.CANCELLED.value,
            "cancelled_at": utc_naive(now or utcnow()),
        })
        db.commit()
        logger.info(f"Appointment {appointment_id} cancelled")

        try:
            ReminderService.cancel_for(db, appointment_id)
        except Exception:
            db.rollback()
            logger.exception(f"Could not remove reminders of appointment {appointment_id}")

        db.refresh(appointment)
        return appointment

    @staticmethod
    def complete(db: Session, appointment_id: int, now: Optional[datetime] = None) -> Appointment:
        """Approved -> Completed"""
        appointment = require_appointment(db, appointment_id)
        ReservationService._require_approved(appointment, "complete")

        ReservationService._transition(db, appointment_id, "complete", {
            "status": AppointmentStatus.COMPLETED.value,
            "completed_at": utc_naive(now or utcnow()),
        })
        db.commit()
        db.refresh(appointment)
        logger.info(f"Appointment {appointment_id} completed")
        return appointment

    @staticmethod
    def reschedule(
            db: Session,
            appointment_id: int,
            new_date: date,
            new_start_time: Any,
            now: Optional[datetime] = None
    ) -> Appointment:
        """
        Move an Approved appointment by cancelling it and booking a replacement.

        Both happen in one transaction under the locks of the old and the new
        (agent, date) keys, so a rejected move leaves the original untouched.
        The original is re-read inside the locks and cancelled with a
        conditional UPDATE; concurrent moves of it yield a single replacement.
        """
        old = require_appointment(db, appointment_id)
        ReservationService._require_approved(old, "reschedule")

        interval = ReservationService.requested_interval(new_start_time, [old.interval.duration])
        ReservationService.check_not_past(new_date, interval, now)

        agent = require_agent(db, old.agent_id)
        unit = require_unit(db, old.unit_id)

        with slot_critical_section(db, (old.agent_id, old.date), (old.agent_id, new_date)):
            try:
                old = db.query(Appointment).populate_existing().with_for_update().filter(
                    Appointment.id == appointment_id
                ).one()
                ReservationService._require_approved(old, "reschedule")

                ReservationService.validate_slot(
                    db, agent, unit, new_date, interval, exclude_appointment_id=old.id
                )

                ReservationService._transition(db, old.id, "reschedule", {
                    "status": AppointmentStatus.CANCELLED.value,
                    "cancelled_at": utc_naive(now or utcnow()),
                })

                replacement = Appointment(
                    agent_id=old.agent_id,
                    unit_id=old.unit_id,
                    client_id=old.client_id,
                    date=new_date,
                    start_time=minutes_to_time(interval.start),
                    end_time=minutes_to_time(interval.end),
                    status=AppointmentStatus.APPROVED.value,
                    total_value=old.total_value,
                    notes=old.notes,
                    rescheduled_from_id=old.id,
                )
                replacement.services = [
                    AppointmentServiceItem(service_id=item.service_id, applied_price=item.applied_price)
                    for item in old.services
                ]
                replacement.extras = [
                    AppointmentExtraItem(extra_service_id=item.extra_service_id, applied_price=item.applied_price)
                    for item in old.extras
                ]
                db.add(replacement)
                db.commit()
            except IntegrityError as e:
                db.rollback()
                if _is_overlap_violation(e):
                    raise SlotConflict(
                        "Requested time overlaps another appointment",
                        details={"date": new_date.isoformat(), "start_time": format_minutes(interval.start)}
                    )
                raise
            except Exception:
                db.rollback()
                raise

        db.refresh(replacement)
        logger.info(f"🔁 Appointment {appointment_id} rescheduled as {replacement.id} on {new_date}")

        ReservationService._schedule_reminders(db, replacement, previous_id=appointment_id, now=now)
        return replacement
