from .schedule import TimeRange, DaySchedule, WeeklyScheduleRequest, WeeklyScheduleResponse
from .calendar_exception import (
    ExceptionCreateRequest,
    ExceptionUpdateRequest,
    ExceptionResponse,
    BlockedDateResponse,
)
from .reservation import (
    ReservationCreateRequest,
    RescheduleRequest,
    SlotResponse,
    AvailabilityResponse,
    AppointmentResponse,
)
from .reminder import ReminderResponse
