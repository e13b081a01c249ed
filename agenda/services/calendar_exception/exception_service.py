# ============================================================================
# agenda/services/calendar_exception/exception_service.py
# ============================================================================
"""
Calendar exceptions: blocking periods for a unit or an agent.

Write operations validate the period first (no query is issued for malformed
input), then scan the owner's other periods for overlap, and for agents also
refuse to orphan confirmed appointments.
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session
import logging

from agenda.core.exceptions import (
    AppointmentConflictError,
    NotFound,
    OverlapError,
    ValidationError,
)
from agenda.models import (
    Appointment,
    BLOCKING_STATUSES,
    CalendarException,
    ExceptionCategory,
    Owner,
    OwnerType,
)
from agenda.services.lookup import require_owner
from agenda.services.reservation.slot_lock import owner_critical_section
from agenda.utils.intervals import Interval, format_minutes, make_interval, minutes_to_time, overlaps

logger = logging.getLogger(__name__)

PERIOD_FIELDS = ("date_start", "date_end", "time_start", "time_end", "category", "note")
ALL_DAY = Interval(0, 24 * 60)


def _parse_date(value: Any, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{field} must be a date in YYYY-MM-DD format", details={field: str(value)})


class ValidatedPeriod:
    """A period that passed format and ordering checks"""

    def __init__(self, date_start: date, date_end: date, interval: Optional[Interval], category: str, note):
        self.date_start = date_start
        self.date_end = date_end
        self.interval = interval  # None means all day
        self.category = category
        self.note = note

    @property
    def is_all_day(self) -> bool:
        return self.interval is None

    @property
    def blocked(self) -> Interval:
        return self.interval or ALL_DAY

    def column_values(self) -> Dict[str, Any]:
        return {
            "date_start": self.date_start,
            "date_end": self.date_end,
            "time_start": minutes_to_time(self.interval.start) if self.interval else None,
            "time_end": minutes_to_time(self.interval.end) if self.interval else None,
            "category": self.category,
            "note": self.note,
        }


class CalendarExceptionService:
    """Handles calendar exception operations"""

    # ========================================================================
    # VALIDATION
    # ========================================================================

    @staticmethod
    def validate_period(period: Dict[str, Any]) -> ValidatedPeriod:
        """Check dates, the time pair and the category without touching the database"""
        if period.get("date_start") is None or period.get("date_end") is None:
            raise ValidationError("date_start and date_end are required")

        date_start = _parse_date(period["date_start"], "date_start")
        date_end = _parse_date(period["date_end"], "date_end")
        if date_end < date_start:
            raise ValidationError(
                "date_end must be on or after date_start",
                details={"date_start": date_start.isoformat(), "date_end": date_end.isoformat()}
            )

        time_start = period.get("time_start")
        time_end = period.get("time_end")
        if (time_start is None) != (time_end is None):
            raise ValidationError("time_start and time_end must be given together")

        interval = make_interval(time_start, time_end) if time_start is not None else None

        category = period.get("category") or ExceptionCategory.OTHER.value
        if isinstance(category, ExceptionCategory):
            category = category.value
        if category not in {c.value for c in ExceptionCategory}:
            raise ValidationError(f"Unknown exception category: {category}", details={"category": category})

        return ValidatedPeriod(date_start, date_end, interval, category, period.get("note"))

    # ========================================================================
    # CONFLICT SCANS
    # ========================================================================

    @staticmethod
    def find_overlapping(
            db: Session,
            owner: Owner,
            period: ValidatedPeriod,
            exclude_id: Optional[int] = None
    ) -> Optional[CalendarException]:
        """First period of the same owner colliding in date x time space"""
        query = db.query(CalendarException).filter(
            CalendarException.owned_by(owner),
            (
                # New period starts inside an existing one
                ((CalendarException.date_start <= period.date_start) &
                 (CalendarException.date_end >= period.date_start)) |
                # New period ends inside an existing one
                ((CalendarException.date_start <= period.date_end) &
                 (CalendarException.date_end >= period.date_end)) |
                # New period swallows an existing one
                ((CalendarException.date_start >= period.date_start) &
                 (CalendarException.date_end <= period.date_end))
            )
        )
        if exclude_id is not None:
            query = query.filter(CalendarException.id != exclude_id)

        for candidate in query.order_by(CalendarException.date_start.asc()).all():
            # All-day on either side always collides
            if period.is_all_day or candidate.is_all_day:
                return candidate
            if overlaps(period.blocked, candidate.blocked_interval()):
                return candidate

        return None

    @staticmethod
    def find_conflicting_appointment(
            db: Session,
            agent_id: int,
            period: ValidatedPeriod
    ) -> Optional[Appointment]:
        """First Approved/Completed appointment of the agent inside the period"""
        appointments = db.query(Appointment).filter(
            Appointment.agent_id == agent_id,
            Appointment.status.in_(BLOCKING_STATUSES),
            Appointment.date >= period.date_start,
            Appointment.date <= period.date_end
        ).order_by(Appointment.date.asc(), Appointment.start_time.asc()).all()

        for appointment in appointments:
            if overlaps(period.blocked, appointment.interval):
                return appointment
        return None

    @staticmethod
    def _check_conflicts(
            db: Session,
            owner: Owner,
            period: ValidatedPeriod,
            exclude_id: Optional[int] = None
    ):
        clash = CalendarExceptionService.find_overlapping(db, owner, period, exclude_id)
        if clash:
            logger.info(f"Exception for {owner} overlaps existing exception {clash.id}")
            raise OverlapError(
                f"Period overlaps an existing {clash.category} exception "
                f"({clash.date_start.isoformat()} to {clash.date_end.isoformat()})",
                conflicting=clash.to_dict()
            )

        if owner.owner_type == OwnerType.AGENT:
            appointment = CalendarExceptionService.find_conflicting_appointment(db, owner.owner_id, period)
            if appointment:
                logger.info(f"Exception for {owner} would orphan appointment {appointment.id}")
                raise AppointmentConflictError(
                    f"Agent has a confirmed appointment on {appointment.date.isoformat()} "
                    f"at {format_minutes(appointment.interval.start)}",
                    appointment_id=appointment.id,
                    appointment_date=appointment.date
                )

    # ========================================================================
    # WRITE OPERATIONS
    # ========================================================================

    @staticmethod
    def _write_section(db: Session, owner: Owner, period: ValidatedPeriod):
        """Owner lock, plus the covered (agent_id, date) slot locks for agents"""
        slot_keys = []
        if owner.owner_type == OwnerType.AGENT:
            days = (period.date_end - period.date_start).days + 1
            slot_keys = [(owner.owner_id, period.date_start + timedelta(days=n)) for n in range(days)]
        return owner_critical_section(db, owner.owner_type.value, owner.owner_id, *slot_keys)

    @staticmethod
    def create(db: Session, owner: Owner, period: Dict[str, Any]) -> CalendarException:
        validated = CalendarExceptionService.validate_period(period)
        require_owner(db, owner)

        with CalendarExceptionService._write_section(db, owner, validated):
            try:
                CalendarExceptionService._check_conflicts(db, owner, validated)

                exception = CalendarException(
                    **CalendarException.owner_columns(owner),
                    **validated.column_values()
                )
                db.add(exception)
                db.commit()
            except Exception:
                db.rollback()
                raise

        db.refresh(exception)

        logger.info(
            f"📅 Exception {exception.id} created for {owner}: "
            f"{validated.date_start} to {validated.date_end} ({validated.category})"
        )
        return exception

    @staticmethod
    def update(db: Session, exception_id: int, changes: Dict[str, Any]) -> CalendarException:
        """Apply a partial change; the merged period is re-validated against all other periods"""
        unknown = set(changes) - set(PERIOD_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        if "category" in changes and changes["category"] is None:
            raise ValidationError("category cannot be cleared", details={"category": None})

        exception = CalendarExceptionService.get(db, exception_id)

        merged = {field: getattr(exception, field) for field in PERIOD_FIELDS}
        merged.update(changes)
        validated = CalendarExceptionService.validate_period(merged)

        owner = exception.owner
        with CalendarExceptionService._write_section(db, owner, validated):
            try:
                CalendarExceptionService._check_conflicts(db, owner, validated, exclude_id=exception.id)

                for field, value in validated.column_values().items():
                    setattr(exception, field, value)
                db.commit()
            except Exception:
                db.rollback()
                raise

        db.refresh(exception)

        logger.info(f"Exception {exception.id} updated for {exception.owner}")
        return exception

    @staticmethod
    def delete(db: Session, exception_id: int) -> None:
        exception = CalendarExceptionService.get(db, exception_id)
        db.delete(exception)
        db.commit()
        logger.info(f"Exception {exception_id} deleted")

    # ========================================================================
    # READ OPERATIONS
    # ========================================================================

    @staticmethod
    def get(db: Session, exception_id: int) -> CalendarException:
        exception = db.query(CalendarException).filter(CalendarException.id == exception_id).first()
        if not exception:
            raise NotFound(f"Exception {exception_id} not found", details={"exception_id": exception_id})
        return exception

    @staticmethod
    def list_for_owner(
            db: Session,
            owner: Owner,
            date_from: Optional[date] = None,
            date_to: Optional[date] = None
    ) -> List[CalendarException]:
        """Exceptions of one owner, optionally only those intersecting [date_from, date_to]"""
        if date_from and date_to and date_to < date_from:
            raise ValidationError("date_to must be on or after date_from")

        require_owner(db, owner)
        query = db.query(CalendarException).filter(CalendarException.owned_by(owner))
        if date_from:
            query = query.filter(CalendarException.date_end >= date_from)
        if date_to:
            query = query.filter(CalendarException.date_start <= date_to)

        return query.order_by(CalendarException.date_start.asc(), CalendarException.id.asc()).all()

    @staticmethod
    def exceptions_for_date(db: Session, owner: Owner, day: date) -> List[CalendarException]:
        return db.query(CalendarException).filter(
            CalendarException.owned_by(owner),
            CalendarException.date_start <= day,
            CalendarException.date_end >= day
        ).all()

    @staticmethod
    def is_date_blocked(db: Session, owner: Owner, day: date) -> Optional[CalendarException]:
        """The all-day exception covering the date, if any"""
        for exception in CalendarExceptionService.exceptions_for_date(db, owner, day):
            if exception.is_all_day:
                return exception
        return None
