# agenda/services/lookup.py
"""Shared lookups that raise NotFound instead of returning None"""
from sqlalchemy.orm import Session

from agenda.core.exceptions import NotFound
from agenda.models import Agent, Appointment, Client, Owner, OwnerType, Unit


def require_unit(db: Session, unit_id: int) -> Unit:
    unit = db.query(Unit).filter(Unit.id == unit_id).first()
    if not unit:
        raise NotFound(f"Unit {unit_id} not found", details={"unit_id": unit_id})
    return unit


def require_agent(db: Session, agent_id: int) -> Agent:
    agent = db.query(Agent).filter(Agent.id == agent_id).first()
    if not agent:
        raise NotFound(f"Agent {agent_id} not found", details={"agent_id": agent_id})
    return agent


def require_client(db: Session, client_id: int) -> Client:
    client = db.query(Client).filter(Client.id == client_id).first()
    if not client:
        raise NotFound(f"Client {client_id} not found", details={"client_id": client_id})
    return client


def require_owner(db: Session, owner: Owner):
    if owner.owner_type == OwnerType.UNIT:
        return require_unit(db, owner.owner_id)
    return require_agent(db, owner.owner_id)


def require_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if not appointment:
        raise NotFound(
            f"Appointment {appointment_id} not found",
            details={"appointment_id": appointment_id}
        )
    return appointment
