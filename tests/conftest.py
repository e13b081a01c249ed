"""Pytest configuration and fixtures for test suite."""

import os

# Set test environment BEFORE any agenda imports: settings are cached on first use
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REMINDER_USE_REDIS_LOCK"] = "false"
os.environ["ALLOW_PAST_BOOKINGS"] = "true"
os.environ["TWILIO_ACCOUNT_SID"] = ""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from agenda.config.database import build_engine
from agenda.models import Agent, Base, Client, ExtraService, Owner, Service, Unit
from agenda.services.schedule.schedule_service import ScheduleService

# 2030-01-07 is a Monday; "now" defaults to a week earlier
MONDAY = date(2030, 1, 7)
BEFORE_MONDAY = datetime(2029, 12, 31, 12, 0, tzinfo=timezone.utc)


def week(open_days=None):
    """Seven-day template; open_days maps weekday -> [("HH:MM", "HH:MM"), ...]"""
    open_days = open_days or {}
    return [
        {
            "weekday": weekday,
            "is_open": weekday in open_days,
            "intervals": [{"start": start, "end": end} for start, end in open_days.get(weekday, [])],
        }
        for weekday in range(7)
    ]


@pytest.fixture
def engine(tmp_path):
    """Fresh file-backed SQLite database per test (shared across threads)"""
    engine = build_engine(f"sqlite:///{tmp_path / 'agenda.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def unit(db):
    unit = Unit(name="Unidade Centro", address="Rua das Flores, 100", phone_number="+551130000000",
                slot_step_minutes=30)
    db.add(unit)
    db.commit()
    return unit


@pytest.fixture
def agent(db, unit):
    agent = Agent(name="Ana", phone_number="+5511988880000", units=[unit])
    db.add(agent)
    db.commit()
    return agent


@pytest.fixture
def client(db):
    client = Client(name="Bruno", phone_number="+5511999990000", email="bruno@example.com")
    db.add(client)
    db.commit()
    return client


@pytest.fixture
def service(db, unit):
    service = Service(unit_id=unit.id, name="Corte", price=Decimal("50.00"), duration_minutes=30)
    db.add(service)
    db.commit()
    return service


@pytest.fixture
def extra(db, unit):
    extra = ExtraService(unit_id=unit.id, name="Lavagem", price=Decimal("15.00"), duration_minutes=15)
    db.add(extra)
    db.commit()
    return extra


@pytest.fixture
def monday_hours(db, unit, agent):
    """Unit open Mon 09:00-17:00; agent works Mon 09:00-12:00 and 13:00-17:00"""
    ScheduleService.upsert_weekly_schedule(db, Owner.unit(unit.id), week({1: [("09:00", "17:00")]}))
    ScheduleService.upsert_weekly_schedule(
        db, Owner.agent(agent.id), week({1: [("09:00", "12:00"), ("13:00", "17:00")]})
    )
    return unit, agent
