# agenda/models/unit.py
"""
Unit and Agent Models
A unit is a physical location with its own weekly hours; an agent is a staff
member bookable at one or more units.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Table
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from agenda.models.base import Base


agent_units = Table(
    "agent_units",
    Base.metadata,
    Column("agent_id", Integer, ForeignKey("agents.id", ondelete="CASCADE"), primary_key=True),
    Column("unit_id", Integer, ForeignKey("units.id", ondelete="CASCADE"), primary_key=True),
)


class Unit(Base):
    __tablename__ = "units"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    phone_number = Column(String(20), nullable=True)
    address = Column(String(300), nullable=True)

    # Granularity of offered start times
    slot_step_minutes = Column(Integer, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    agents = relationship("Agent", secondary=agent_units, back_populates="units")

    def __repr__(self):
        return f"<Unit(id={self.id}, name={self.name})>"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "phone_number": self.phone_number,
            "address": self.address,
            "slot_step_minutes": self.slot_step_minutes,
            "is_active": self.is_active,
        }


class Agent(Base):
    __tablename__ = "agents"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    phone_number = Column(String(20), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    units = relationship("Unit", secondary=agent_units, back_populates="agents")

    def __repr__(self):
        return f"<Agent(id={self.id}, name={self.name})>"

    def serves_unit(self, unit_id: int) -> bool:
        return any(unit.id == unit_id for unit in self.units)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "phone_number": self.phone_number,
            "is_active": self.is_active,
            "unit_ids": [unit.id for unit in self.units],
        }
