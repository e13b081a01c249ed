"""
Reminder status inspection
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from agenda.config.database import get_db
from agenda.schemas import ReminderResponse
from agenda.services.reminder.reminder_service import ReminderService

router = APIRouter(prefix="/reminders")


@router.get("/appointment/{appointment_id}", response_model=List[ReminderResponse])
def list_reminders(appointment_id: int, db: Session = Depends(get_db)):
    return [reminder.to_dict() for reminder in ReminderService.list_for_appointment(db, appointment_id)]
