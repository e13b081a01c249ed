"""
Pydantic schemas for availability and reservations
"""
from datetime import date
from pydantic import BaseModel, Field
from typing import List, Optional


# ============================================================================
# Request Schemas
# ============================================================================

class ReservationCreateRequest(BaseModel):
    agent_id: int
    unit_id: int
    client_id: int
    date: date
    start_time: str = Field(..., examples=["09:30"])
    service_ids: List[int] = Field(..., min_length=1)
    extra_ids: List[int] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=2000)


class RescheduleRequest(BaseModel):
    new_date: date
    new_start_time: str = Field(..., examples=["14:00"])


# ============================================================================
# Response Schemas
# ============================================================================

class SlotResponse(BaseModel):
    start: str
    end: str
    available: bool = True


class AvailabilityResponse(BaseModel):
    agent_id: int
    unit_id: Optional[int] = None
    date: date
    duration_minutes: int
    slots: List[SlotResponse]


class AppointmentResponse(BaseModel):
    id: int
    agent_id: int
    unit_id: int
    client_id: int
    date: date
    start_time: str
    end_time: str
    status: str
    total_value: float
    notes: Optional[str] = None
    rescheduled_from_id: Optional[int] = None
    service_ids: List[int] = Field(default_factory=list)
    extra_ids: List[int] = Field(default_factory=list)
