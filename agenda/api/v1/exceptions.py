"""
Calendar Exception API Endpoints
Blocking periods for units and agents
"""
from datetime import date
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from agenda.api.dependencies import get_owner
from agenda.config.database import get_db
from agenda.models import Owner
from agenda.schemas import (
    BlockedDateResponse,
    ExceptionCreateRequest,
    ExceptionResponse,
    ExceptionUpdateRequest,
)
from agenda.services.calendar_exception.exception_service import CalendarExceptionService

router = APIRouter(prefix="/exceptions")


@router.post("/{owner_type}/{owner_id}", response_model=ExceptionResponse, status_code=status.HTTP_201_CREATED)
def create_exception(
        request: ExceptionCreateRequest,
        owner: Owner = Depends(get_owner),
        db: Session = Depends(get_db)
):
    exception = CalendarExceptionService.create(db, owner, request.model_dump())
    return exception.to_dict()


@router.get("/{owner_type}/{owner_id}", response_model=List[ExceptionResponse])
def list_exceptions(
        owner: Owner = Depends(get_owner),
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        db: Session = Depends(get_db)
):
    exceptions = CalendarExceptionService.list_for_owner(db, owner, date_from=date_from, date_to=date_to)
    return [exception.to_dict() for exception in exceptions]


@router.get("/{owner_type}/{owner_id}/blocked", response_model=BlockedDateResponse)
def is_date_blocked(
        date: date = Query(...),
        owner: Owner = Depends(get_owner),
        db: Session = Depends(get_db)
):
    """Whole-day block covering the date, for calendar rendering"""
    exception = CalendarExceptionService.is_date_blocked(db, owner, date)
    return {
        "date": date,
        "blocked": exception is not None,
        "exception": exception.to_dict() if exception else None,
    }


@router.patch("/{exception_id}", response_model=ExceptionResponse)
def update_exception(exception_id: int, request: ExceptionUpdateRequest, db: Session = Depends(get_db)):
    exception = CalendarExceptionService.update(db, exception_id, request.model_dump(exclude_unset=True))
    return exception.to_dict()


@router.delete("/{exception_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_exception(exception_id: int, db: Session = Depends(get_db)):
    CalendarExceptionService.delete(db, exception_id)
