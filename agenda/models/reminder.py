# agenda/models/reminder.py
import enum

from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from agenda.models.base import Base


class ReminderKind(str, enum.Enum):
    DAY_BEFORE = "24h"
    HOUR_BEFORE = "1h"


class ReminderStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ScheduledReminder(Base):
    __tablename__ = "scheduled_reminders"
    __table_args__ = (
        UniqueConstraint("appointment_id", "kind", name="uq_scheduled_reminders_appointment_kind"),
    )

    id = Column(Integer, primary_key=True)
    appointment_id = Column(
        Integer,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    kind = Column(String(8), nullable=False)
    status = Column(String(20), nullable=False, default=ReminderStatus.SCHEDULED.value, index=True)

    fire_at = Column(DateTime, nullable=False, index=True)  # naive UTC
    attempt_count = Column(Integer, nullable=False, default=0)
    destination = Column(String(50), nullable=False)

    last_attempt_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return (
            f"<ScheduledReminder(appointment_id={self.appointment_id}, kind={self.kind}, "
            f"status={self.status}, fire_at={self.fire_at})>"
        )

    def to_dict(self):
        return {
            "id": self.id,
            "appointment_id": self.appointment_id,
            "kind": self.kind,
            "status": self.status,
            "fire_at": self.fire_at.isoformat() if self.fire_at else None,
            "attempt_count": self.attempt_count,
            "destination": self.destination,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "last_error": self.last_error,
        }
