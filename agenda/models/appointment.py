# agenda/models/appointment.py
"""
Appointment Model
Only Approved/Completed appointments occupy an agent's time; Cancelled rows are inert.
"""
import enum
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Date, Time, Numeric, Text, DateTime, ForeignKey,
    CheckConstraint, DDL, event
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from agenda.models.base import Base
from agenda.utils.intervals import Interval, parse_hhmm, format_minutes


class AppointmentStatus(str, enum.Enum):
    APPROVED = "Approved"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


# Statuses that hold the agent's time
BLOCKING_STATUSES = (AppointmentStatus.APPROVED.value, AppointmentStatus.COMPLETED.value)


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_appointments_time_order"),
    )

    id = Column(Integer, primary_key=True)

    # References
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)

    # Local wall time in the business timezone
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    status = Column(String(20), nullable=False, default=AppointmentStatus.APPROVED.value)
    total_value = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    # Set when this appointment replaced another one through a reschedule
    rescheduled_from_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    client = relationship("Client")
    agent = relationship("Agent")
    unit = relationship("Unit")
    services = relationship("AppointmentServiceItem", cascade="all, delete-orphan")
    extras = relationship("AppointmentExtraItem", cascade="all, delete-orphan")

    @property
    def interval(self) -> Interval:
        return Interval(parse_hhmm(self.start_time), parse_hhmm(self.end_time))

    @property
    def is_blocking(self) -> bool:
        return self.status in BLOCKING_STATUSES

    @property
    def starts_at(self) -> datetime:
        """Naive local start (business timezone)"""
        return datetime.combine(self.date, self.start_time)

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, agent_id={self.agent_id}, date={self.date}, "
            f"{self.start_time}-{self.end_time}, status={self.status})>"
        )

    def to_dict(self):
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "unit_id": self.unit_id,
            "client_id": self.client_id,
            "date": self.date.isoformat(),
            "start_time": format_minutes(parse_hhmm(self.start_time)),
            "end_time": format_minutes(parse_hhmm(self.end_time)),
            "status": self.status,
            "total_value": float(self.total_value) if self.total_value is not None else 0.0,
            "notes": self.notes,
            "rescheduled_from_id": self.rescheduled_from_id,
            "service_ids": [s.service_id for s in self.services],
            "extra_ids": [e.extra_service_id for e in self.extras],
        }


class AppointmentServiceItem(Base):
    """Service booked in an appointment, with the price applied at booking time"""
    __tablename__ = "appointment_services"

    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="CASCADE"), primary_key=True)
    service_id = Column(Integer, ForeignKey("services.id"), primary_key=True)
    applied_price = Column(Numeric(10, 2), nullable=False)


class AppointmentExtraItem(Base):
    __tablename__ = "appointment_extra_services"

    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="CASCADE"), primary_key=True)
    extra_service_id = Column(Integer, ForeignKey("extra_services.id"), primary_key=True)
    applied_price = Column(Numeric(10, 2), nullable=False)


# Two blocking appointments of the same agent may never overlap. PostgreSQL only;
# other engines rely on the per-(agent, date) critical section.
NO_OVERLAP_CONSTRAINT = "appointments_no_overlap"

event.listen(
    Appointment.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Appointment.__table__,
    "after_create",
    DDL(
        f"ALTER TABLE appointments ADD CONSTRAINT {NO_OVERLAP_CONSTRAINT} "
        "EXCLUDE USING gist ("
        "agent_id WITH =, "
        "tsrange(date + start_time, date + end_time, '[)') WITH &&"
        ") WHERE (status IN ('Approved', 'Completed'))"
    ).execute_if(dialect="postgresql"),
)
