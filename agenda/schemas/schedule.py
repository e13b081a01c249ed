"""
Pydantic schemas for weekly schedules
"""
from pydantic import BaseModel, Field
from typing import List

from agenda.models import OwnerType


class TimeRange(BaseModel):
    """Open interval, 24-hour HH:MM"""
    start: str = Field(..., examples=["09:00"])
    end: str = Field(..., examples=["12:00"])


class DaySchedule(BaseModel):
    weekday: int = Field(..., ge=0, le=6, description="0=Sunday .. 6=Saturday")
    is_open: bool = False
    intervals: List[TimeRange] = Field(default_factory=list)


class WeeklyScheduleRequest(BaseModel):
    """Full replacement of all seven days"""
    days: List[DaySchedule] = Field(..., min_length=7, max_length=7)

    def to_template(self) -> List[dict]:
        return [day.model_dump() for day in self.days]


class WeeklyScheduleResponse(BaseModel):
    owner_type: OwnerType
    owner_id: int
    days: List[DaySchedule]
