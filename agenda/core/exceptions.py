# agenda/core/exceptions.py
"""
Typed failures returned by the booking core.

Every service raises one of these instead of returning sentinel values; the
API layer maps them to HTTP responses in a single exception handler.
"""
from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base class for all booking core failures"""

    code = "booking_error"
    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(BookingError):
    """Malformed time/date input, rejected before any query"""
    code = "validation_error"
    status_code = 422


class NotFound(BookingError):
    """Unknown id on read/update/delete"""
    code = "not_found"
    status_code = 404


class OverlapError(BookingError):
    """A calendar exception collides with another one for the same owner"""
    code = "exception_overlap"

    def __init__(self, message: str, conflicting: Optional[Dict[str, Any]] = None):
        super().__init__(message, details={"conflicting_exception": conflicting})
        self.conflicting = conflicting


ExceptionOverlap = OverlapError


class AppointmentConflictError(BookingError):
    """A calendar exception would orphan a confirmed appointment"""
    code = "appointment_conflict"

    def __init__(self, message: str, appointment_id: int, appointment_date: Any):
        super().__init__(
            message,
            details={
                "appointment_id": appointment_id,
                "date": appointment_date.isoformat() if hasattr(appointment_date, "isoformat") else appointment_date,
            },
        )
        self.appointment_id = appointment_id
        self.appointment_date = appointment_date


class SlotConflict(BookingError):
    """Reservation lost the race for an overlapping interval"""
    code = "slot_conflict"


class UnitClosed(BookingError):
    """Requested slot falls outside the unit's open hours"""
    code = "unit_closed"


class AgentUnavailable(BookingError):
    """Requested slot falls outside the agent's working hours"""
    code = "agent_unavailable"


class PastDate(BookingError):
    """Requested slot starts before now in the business timezone"""
    code = "past_date"
    status_code = 400
