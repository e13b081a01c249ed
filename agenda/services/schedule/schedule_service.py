# ============================================================================
# agenda/services/schedule/schedule_service.py
# ============================================================================
"""Weekly templates of open hours for units and working hours for agents"""
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session
import logging

from agenda.core.exceptions import ValidationError
from agenda.models import Owner, WeeklySchedule
from agenda.services.lookup import require_owner
from agenda.utils.intervals import Interval, make_interval, validate_sorted_disjoint

logger = logging.getLogger(__name__)

WEEKDAYS = range(7)  # 0=Sunday .. 6=Saturday


class ScheduleService:
    """Handles weekly schedule operations"""

    @staticmethod
    def weekday_of(day: date) -> int:
        """Weekday index with 0=Sunday (Python's date.weekday() has 0=Monday)"""
        return (day.weekday() + 1) % 7

    @staticmethod
    def validate_template(template: List[Dict[str, Any]]) -> List[Tuple[int, bool, List[Interval]]]:
        """
        Validate a full 7-day template.

        Each entry: {"weekday": 0..6, "is_open": bool, "intervals": [{"start": "HH:MM", "end": "HH:MM"}]}
        Every weekday must appear exactly once; intervals must be sorted and disjoint.
        """
        if len(template) != 7:
            raise ValidationError("A weekly schedule must define exactly seven days")

        seen = set()
        days = []
        for entry in template:
            weekday = entry.get("weekday")
            if weekday not in WEEKDAYS:
                raise ValidationError(f"Invalid weekday: {weekday!r}", details={"weekday": weekday})
            if weekday in seen:
                raise ValidationError(f"Weekday {weekday} defined twice", details={"weekday": weekday})
            seen.add(weekday)

            intervals = validate_sorted_disjoint(
                make_interval(item["start"], item["end"]) for item in entry.get("intervals") or []
            )
            days.append((weekday, bool(entry.get("is_open")), intervals))

        return sorted(days)

    @staticmethod
    def upsert_weekly_schedule(
            db: Session,
            owner: Owner,
            template: List[Dict[str, Any]]
    ) -> List[WeeklySchedule]:
        """Replace all seven days of an owner's schedule"""
        days = ScheduleService.validate_template(template)
        require_owner(db, owner)

        db.query(WeeklySchedule).filter(
            WeeklySchedule.owned_by(owner)
        ).delete(synchronize_session=False)

        rows = []
        for weekday, is_open, intervals in days:
            row = WeeklySchedule(
                **WeeklySchedule.owner_columns(owner),
                weekday=weekday,
                is_open=is_open,
                intervals=[interval.to_dict() for interval in intervals],
            )
            db.add(row)
            rows.append(row)

        db.commit()
        logger.info(f"Weekly schedule replaced for {owner}")
        return rows

    @staticmethod
    def initialize_closed_week(db: Session, owner: Owner) -> List[WeeklySchedule]:
        """Seed an all-closed week for a newly created unit or agent"""
        require_owner(db, owner)
        existing = db.query(WeeklySchedule).filter(WeeklySchedule.owned_by(owner)).count()
        if existing:
            return ScheduleService.get_rows(db, owner)

        return ScheduleService.upsert_weekly_schedule(
            db,
            owner,
            [{"weekday": weekday, "is_open": False, "intervals": []} for weekday in WEEKDAYS],
        )

    @staticmethod
    def get_rows(db: Session, owner: Owner) -> List[WeeklySchedule]:
        return db.query(WeeklySchedule).filter(
            WeeklySchedule.owned_by(owner)
        ).order_by(WeeklySchedule.weekday.asc()).all()

    @staticmethod
    def get_weekly_schedule(db: Session, owner: Owner) -> List[Dict[str, Any]]:
        """Seven entries; days without a stored row are reported closed"""
        require_owner(db, owner)
        by_day = {row.weekday: row for row in ScheduleService.get_rows(db, owner)}

        return [
            {
                "weekday": weekday,
                "is_open": bool(by_day[weekday].is_open) if weekday in by_day else False,
                "intervals": list(by_day[weekday].intervals or []) if weekday in by_day else [],
            }
            for weekday in WEEKDAYS
        ]

    @staticmethod
    def get_day(db: Session, owner: Owner, day: date) -> Optional[WeeklySchedule]:
        return db.query(WeeklySchedule).filter(
            WeeklySchedule.owned_by(owner),
            WeeklySchedule.weekday == ScheduleService.weekday_of(day)
        ).first()

    @staticmethod
    def open_intervals_for(db: Session, owner: Owner, day: date) -> List[Interval]:
        """Open intervals on a date; a missing row counts as closed"""
        row = ScheduleService.get_day(db, owner, day)
        if row is None:
            return []
        return row.open_intervals()
