"""
Availability API Endpoints
Read path: no locking, one consistent read of schedules, exceptions and appointments
"""
from datetime import date, datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from agenda.api.dependencies import get_now
from agenda.config.database import get_db
from agenda.schemas import AvailabilityResponse
from agenda.services.availability.availability_service import AvailabilityService

router = APIRouter()


@router.get("/agents/{agent_id}/availability", response_model=AvailabilityResponse)
def get_availability(
        agent_id: int,
        date: date = Query(..., description="YYYY-MM-DD"),
        duration: int = Query(..., description="Requested duration in minutes"),
        unit_id: Optional[int] = Query(None),
        exclude_appointment_id: Optional[int] = Query(None),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    """Bookable start times for an agent on a date"""
    slots = AvailabilityService.get_available_slots(
        db,
        agent_id=agent_id,
        target_date=date,
        duration_minutes=duration,
        unit_id=unit_id,
        exclude_appointment_id=exclude_appointment_id,
        now=now,
    )
    return {
        "agent_id": agent_id,
        "unit_id": unit_id,
        "date": date,
        "duration_minutes": duration,
        "slots": slots,
    }
