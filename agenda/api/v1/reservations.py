"""
Reservation API Endpoints
Create, cancel, complete and reschedule appointments
"""
from datetime import datetime
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
import logging

from agenda.api.dependencies import get_now
from agenda.config.database import get_db
from agenda.schemas import AppointmentResponse, ReservationCreateRequest, RescheduleRequest
from agenda.services.reservation.reservation_service import ReservationService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/reservations")


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_reservation(
        request: ReservationCreateRequest,
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    appointment = ReservationService.create_reservation(
        db,
        agent_id=request.agent_id,
        unit_id=request.unit_id,
        client_id=request.client_id,
        target_date=request.date,
        start_time=request.start_time,
        service_ids=request.service_ids,
        extra_ids=request.extra_ids,
        notes=request.notes,
        now=now,
    )
    return appointment.to_dict()


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_reservation(appointment_id: int, db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    return ReservationService.cancel(db, appointment_id, now=now).to_dict()


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
def complete_reservation(appointment_id: int, db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    return ReservationService.complete(db, appointment_id, now=now).to_dict()


@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
def reschedule_reservation(
        appointment_id: int,
        request: RescheduleRequest,
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now)
):
    """Cancel the appointment and book the same services at the new date/time"""
    appointment = ReservationService.reschedule(
        db,
        appointment_id,
        new_date=request.new_date,
        new_start_time=request.new_start_time,
        now=now,
    )
    return appointment.to_dict()
