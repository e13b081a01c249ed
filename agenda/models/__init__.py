# agenda/models/__init__.py
from .base import Base
from .owner import Owner, OwnerType
from .unit import Unit, Agent, agent_units
from .client import Client
from .service import Service, ExtraService
from .schedule import WeeklySchedule
from .calendar_exception import CalendarException, ExceptionCategory
from .appointment import (
    Appointment,
    AppointmentStatus,
    AppointmentServiceItem,
    AppointmentExtraItem,
    BLOCKING_STATUSES,
)
from .reminder import ScheduledReminder, ReminderKind, ReminderStatus

__all__ = [
    "Base",
    "Owner",
    "OwnerType",
    "Unit",
    "Agent",
    "agent_units",
    "Client",
    "Service",
    "ExtraService",
    "WeeklySchedule",
    "CalendarException",
    "ExceptionCategory",
    "Appointment",
    "AppointmentStatus",
    "AppointmentServiceItem",
    "AppointmentExtraItem",
    "BLOCKING_STATUSES",
    "ScheduledReminder",
    "ReminderKind",
    "ReminderStatus",
]
