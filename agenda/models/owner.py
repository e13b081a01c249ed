# agenda/models/owner.py
"""
Ownership shared by weekly schedules and calendar exceptions: every row belongs
to exactly one unit or exactly one agent.
"""
import enum
from typing import NamedTuple

from sqlalchemy import Column, Integer, ForeignKey
from sqlalchemy.orm import declared_attr


class OwnerType(str, enum.Enum):
    UNIT = "unit"
    AGENT = "agent"


class Owner(NamedTuple):
    owner_type: OwnerType
    owner_id: int

    @classmethod
    def unit(cls, unit_id: int) -> "Owner":
        return cls(OwnerType.UNIT, unit_id)

    @classmethod
    def agent(cls, agent_id: int) -> "Owner":
        return cls(OwnerType.AGENT, agent_id)

    def __str__(self):
        return f"{self.owner_type.value}:{self.owner_id}"


class UnitOrAgentOwned:
    """Mixin adding unit_id/agent_id foreign keys (exactly one is set)"""

    @declared_attr
    def unit_id(cls):
        return Column(Integer, ForeignKey("units.id", ondelete="CASCADE"), nullable=True, index=True)

    @declared_attr
    def agent_id(cls):
        return Column(Integer, ForeignKey("agents.id", ondelete="CASCADE"), nullable=True, index=True)

    @property
    def owner(self) -> Owner:
        if self.unit_id is not None:
            return Owner.unit(self.unit_id)
        return Owner.agent(self.agent_id)

    @classmethod
    def owned_by(cls, owner: Owner):
        """Filter criterion selecting rows of one owner"""
        if owner.owner_type == OwnerType.UNIT:
            return cls.unit_id == owner.owner_id
        return cls.agent_id == owner.owner_id

    @staticmethod
    def owner_columns(owner: Owner) -> dict:
        if owner.owner_type == OwnerType.UNIT:
            return {"unit_id": owner.owner_id, "agent_id": None}
        return {"unit_id": None, "agent_id": owner.owner_id}


EXACTLY_ONE_OWNER = "(unit_id IS NULL) <> (agent_id IS NULL)"
