# agenda/models/calendar_exception.py
"""
Calendar Exception Model
Blocking periods (holidays, vacations, maintenance...) for one unit or one agent.
A row without time_start/time_end blocks the entire day of every date in range.
"""
import enum

from sqlalchemy import Column, String, Integer, Date, Time, Text, DateTime, CheckConstraint
from sqlalchemy.sql import func

from agenda.models.base import Base
from agenda.models.owner import UnitOrAgentOwned, EXACTLY_ONE_OWNER
from agenda.utils.intervals import Interval, make_interval, format_minutes, parse_hhmm


class ExceptionCategory(str, enum.Enum):
    HOLIDAY = "Holiday"
    VACATION = "Vacation"
    SPECIAL_EVENT = "SpecialEvent"
    MAINTENANCE = "Maintenance"
    OTHER = "Other"


class CalendarException(UnitOrAgentOwned, Base):
    __tablename__ = "calendar_exceptions"
    __table_args__ = (
        CheckConstraint(EXACTLY_ONE_OWNER, name="ck_calendar_exceptions_one_owner"),
        CheckConstraint("date_end >= date_start", name="ck_calendar_exceptions_date_range"),
        CheckConstraint(
            "(time_start IS NULL) = (time_end IS NULL)",
            name="ck_calendar_exceptions_time_pair"
        ),
    )

    id = Column(Integer, primary_key=True)
    date_start = Column(Date, nullable=False, index=True)
    date_end = Column(Date, nullable=False, index=True)  # inclusive
    time_start = Column(Time, nullable=True)
    time_end = Column(Time, nullable=True)
    category = Column(String(20), nullable=False, default=ExceptionCategory.OTHER.value)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_all_day(self) -> bool:
        return self.time_start is None and self.time_end is None

    def blocked_interval(self) -> Interval:
        """Blocked minutes of each covered day"""
        if self.is_all_day:
            return Interval(0, 24 * 60)
        return make_interval(self.time_start, self.time_end)

    def covers(self, day) -> bool:
        return self.date_start <= day <= self.date_end

    def __repr__(self):
        return (
            f"<CalendarException(id={self.id}, owner={self.owner}, "
            f"{self.date_start}..{self.date_end}, category={self.category})>"
        )

    def to_dict(self):
        return {
            "id": self.id,
            "owner_type": self.owner.owner_type.value,
            "owner_id": self.owner.owner_id,
            "date_start": self.date_start.isoformat(),
            "date_end": self.date_end.isoformat(),
            "time_start": format_minutes(parse_hhmm(self.time_start)) if self.time_start else None,
            "time_end": format_minutes(parse_hhmm(self.time_end)) if self.time_end else None,
            "category": self.category,
            "note": self.note,
        }
