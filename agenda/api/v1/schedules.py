"""
Weekly Schedule API Endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from agenda.api.dependencies import get_owner
from agenda.config.database import get_db
from agenda.models import Owner
from agenda.schemas import WeeklyScheduleRequest, WeeklyScheduleResponse
from agenda.services.schedule.schedule_service import ScheduleService

router = APIRouter(prefix="/schedules")


@router.get("/{owner_type}/{owner_id}", response_model=WeeklyScheduleResponse)
def get_schedule(owner: Owner = Depends(get_owner), db: Session = Depends(get_db)):
    return {
        "owner_type": owner.owner_type,
        "owner_id": owner.owner_id,
        "days": ScheduleService.get_weekly_schedule(db, owner),
    }


@router.put("/{owner_type}/{owner_id}", response_model=WeeklyScheduleResponse)
def replace_schedule(
        request: WeeklyScheduleRequest,
        owner: Owner = Depends(get_owner),
        db: Session = Depends(get_db)
):
    """Replace all seven days at once"""
    ScheduleService.upsert_weekly_schedule(db, owner, request.to_template())
    return {
        "owner_type": owner.owner_type,
        "owner_id": owner.owner_id,
        "days": ScheduleService.get_weekly_schedule(db, owner),
    }
