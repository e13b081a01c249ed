# agenda/models/schedule.py
from typing import List

from sqlalchemy import Column, Integer, Boolean, JSON, DateTime, CheckConstraint, UniqueConstraint
from sqlalchemy.sql import func

from agenda.models.base import Base
from agenda.models.owner import UnitOrAgentOwned, EXACTLY_ONE_OWNER
from agenda.utils.intervals import Interval, make_interval


class WeeklySchedule(UnitOrAgentOwned, Base):
    """One weekday of a unit's opening hours or an agent's working hours"""
    __tablename__ = "weekly_schedules"
    __table_args__ = (
        CheckConstraint(EXACTLY_ONE_OWNER, name="ck_weekly_schedules_one_owner"),
        CheckConstraint("weekday >= 0 AND weekday <= 6", name="ck_weekly_schedules_weekday"),
        UniqueConstraint("unit_id", "weekday", name="uq_weekly_schedules_unit_day"),
        UniqueConstraint("agent_id", "weekday", name="uq_weekly_schedules_agent_day"),
    )

    id = Column(Integer, primary_key=True)
    weekday = Column(Integer, nullable=False)  # 0=Sunday, 6=Saturday
    is_open = Column(Boolean, default=False, nullable=False)
    intervals = Column(JSON, nullable=False, default=list)  # [{"start": "HH:MM", "end": "HH:MM"}]
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def open_intervals(self) -> List[Interval]:
        """Open intervals for the day, empty when closed"""
        if not self.is_open:
            return []
        return [make_interval(item["start"], item["end"]) for item in (self.intervals or [])]

    def __repr__(self):
        return f"<WeeklySchedule(owner={self.owner}, weekday={self.weekday}, is_open={self.is_open})>"
