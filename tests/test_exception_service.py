"""Tests for the exception calendar"""
from concurrent.futures import ThreadPoolExecutor
from datetime import time, timedelta
from time import sleep
import threading

import pytest

from agenda.core.exceptions import (
    AppointmentConflictError,
    NotFound,
    OverlapError,
    ValidationError,
)
from agenda.models import Appointment, AppointmentStatus, CalendarException, Owner
from agenda.services.availability.availability_service import AvailabilityService
from agenda.services.calendar_exception.exception_service import CalendarExceptionService
from agenda.services.reservation.reservation_service import ReservationService
from agenda.services.reservation.slot_lock import owner_locks, slot_locks

from conftest import BEFORE_MONDAY, MONDAY


def period(start=MONDAY, end=None, time_start=None, time_end=None, category="Holiday", note=None):
    return {
        "date_start": start,
        "date_end": end or start,
        "time_start": time_start,
        "time_end": time_end,
        "category": category,
        "note": note,
    }


@pytest.fixture
def booked(db, unit, agent, client):
    """Approved appointment for the agent on MONDAY 10:00-10:30"""
    appointment = Appointment(
        agent_id=agent.id, unit_id=unit.id, client_id=client.id, date=MONDAY,
        start_time=time(10, 0), end_time=time(10, 30), status=AppointmentStatus.APPROVED.value,
    )
    db.add(appointment)
    db.commit()
    return appointment


class TestValidation:

    @pytest.mark.parametrize("bad", [
        period(start=MONDAY, end=MONDAY - timedelta(days=1)),
        period(time_start="10:00"),
        period(time_end="10:00"),
        period(time_start="10:00", time_end="09:00"),
        period(time_start="25:00", time_end="26:00"),
        period(time_start="10h", time_end="11h"),
        period(category="Party"),
        {"date_start": "07/01/2030", "date_end": "07/01/2030"},
    ])
    def test_malformed_periods_are_rejected_before_any_query(self, bad):
        with pytest.raises(ValidationError):
            CalendarExceptionService.validate_period(bad)

    def test_iso_strings_are_accepted(self):
        validated = CalendarExceptionService.validate_period(
            {"date_start": "2030-01-07", "date_end": "2030-01-08", "time_start": "09:00", "time_end": "10:00"}
        )
        assert validated.date_start == MONDAY
        assert validated.interval == (540, 600)
        assert validated.category == "Other"

    def test_unknown_owner(self, db):
        with pytest.raises(NotFound):
            CalendarExceptionService.create(db, Owner.unit(404), period())


class TestOverlap:

    def test_overlapping_whole_days_are_rejected(self, db, unit):
        owner = Owner.unit(unit.id)
        first = CalendarExceptionService.create(db, owner, period(end=MONDAY + timedelta(days=2)))

        with pytest.raises(OverlapError) as exc:
            CalendarExceptionService.create(db, owner, period(start=MONDAY + timedelta(days=1)))
        assert exc.value.conflicting["id"] == first.id

    @pytest.mark.parametrize("offsets", [(-1, 0), (2, 5), (-3, 7), (1, 1)])
    def test_three_date_range_cases(self, db, unit, offsets):
        """Starts inside, ends inside, swallows, and sits inside an existing period"""
        owner = Owner.unit(unit.id)
        CalendarExceptionService.create(db, owner, period(start=MONDAY, end=MONDAY + timedelta(days=2)))
        start, end = (MONDAY + timedelta(days=o) for o in offsets)
        with pytest.raises(OverlapError):
            CalendarExceptionService.create(db, owner, period(start=start, end=end))

    def test_all_day_wins_over_partial_day(self, db, unit):
        owner = Owner.unit(unit.id)
        CalendarExceptionService.create(db, owner, period(time_start="14:00", time_end="15:00"))
        with pytest.raises(OverlapError):
            CalendarExceptionService.create(db, owner, period(category="Maintenance"))

    def test_partial_days_with_disjoint_times_coexist(self, db, unit):
        owner = Owner.unit(unit.id)
        CalendarExceptionService.create(db, owner, period(time_start="08:00", time_end="10:00"))
        CalendarExceptionService.create(db, owner, period(time_start="10:00", time_end="12:00"))
        assert len(CalendarExceptionService.list_for_owner(db, owner)) == 2

    def test_partial_days_with_overlapping_times_are_rejected(self, db, unit):
        owner = Owner.unit(unit.id)
        CalendarExceptionService.create(db, owner, period(time_start="08:00", time_end="10:00"))
        with pytest.raises(OverlapError):
            CalendarExceptionService.create(db, owner, period(time_start="09:30", time_end="11:00"))

    def test_different_owners_do_not_collide(self, db, unit, agent):
        CalendarExceptionService.create(db, Owner.unit(unit.id), period())
        CalendarExceptionService.create(db, Owner.agent(agent.id), period(category="Vacation"))
        assert db.query(CalendarException).count() == 2

    def test_update_revalidates_against_other_periods_only(self, db, unit):
        owner = Owner.unit(unit.id)
        first = CalendarExceptionService.create(db, owner, period())
        second = CalendarExceptionService.create(db, owner, period(start=MONDAY + timedelta(days=3)))

        # Changing its own note never collides with itself
        updated = CalendarExceptionService.update(db, first.id, {"note": "Feriado municipal"})
        assert updated.note == "Feriado municipal"

        with pytest.raises(OverlapError):
            CalendarExceptionService.update(db, second.id, {"date_start": MONDAY})

    def test_update_to_partial_day(self, db, unit):
        owner = Owner.unit(unit.id)
        exception = CalendarExceptionService.create(db, owner, period())
        updated = CalendarExceptionService.update(db, exception.id, {"time_start": "13:00", "time_end": "14:00"})
        assert not updated.is_all_day
        assert updated.to_dict()["time_start"] == "13:00"

    def test_update_rejects_a_lone_time(self, db, unit):
        exception = CalendarExceptionService.create(db, Owner.unit(unit.id), period())
        with pytest.raises(ValidationError):
            CalendarExceptionService.update(db, exception.id, {"time_start": "13:00"})

    def test_update_rejects_clearing_the_category(self, db, unit):
        exception = CalendarExceptionService.create(db, Owner.unit(unit.id), period())
        with pytest.raises(ValidationError):
            CalendarExceptionService.update(db, exception.id, {"category": None})

        db.expire_all()
        assert CalendarExceptionService.get(db, exception.id).category == "Holiday"


class TestAgentAppointments:

    def test_exception_over_confirmed_appointment_is_rejected(self, db, agent, booked):
        with pytest.raises(AppointmentConflictError) as exc:
            CalendarExceptionService.create(db, Owner.agent(agent.id), period(category="Vacation"))
        assert exc.value.appointment_id == booked.id
        assert exc.value.details["date"] == MONDAY.isoformat()

    def test_partial_exception_beside_the_appointment_is_allowed(self, db, agent, booked):
        CalendarExceptionService.create(db, Owner.agent(agent.id), period(time_start="10:30", time_end="12:00"))

    def test_cancelled_appointments_do_not_block(self, db, agent, booked):
        booked.status = AppointmentStatus.CANCELLED.value
        db.commit()
        CalendarExceptionService.create(db, Owner.agent(agent.id), period())

    def test_unit_exceptions_skip_the_appointment_check(self, db, unit, booked):
        CalendarExceptionService.create(db, Owner.unit(unit.id), period())


class TestQueries:

    def test_list_for_owner_filters_by_range(self, db, unit):
        owner = Owner.unit(unit.id)
        for offset in (0, 10, 20):
            CalendarExceptionService.create(db, owner, period(start=MONDAY + timedelta(days=offset)))

        found = CalendarExceptionService.list_for_owner(
            db, owner, date_from=MONDAY + timedelta(days=5), date_to=MONDAY + timedelta(days=25)
        )
        assert [e.date_start for e in found] == [MONDAY + timedelta(days=10), MONDAY + timedelta(days=20)]

    def test_list_for_owner_rejects_inverted_range(self, db, unit):
        with pytest.raises(ValidationError):
            CalendarExceptionService.list_for_owner(
                db, Owner.unit(unit.id), date_from=MONDAY, date_to=MONDAY - timedelta(days=1)
            )

    def test_is_date_blocked_returns_whole_day_record(self, db, unit):
        owner = Owner.unit(unit.id)
        holiday = CalendarExceptionService.create(db, owner, period(end=MONDAY + timedelta(days=1)))
        assert CalendarExceptionService.is_date_blocked(db, owner, MONDAY + timedelta(days=1)).id == holiday.id
        assert CalendarExceptionService.is_date_blocked(db, owner, MONDAY + timedelta(days=2)) is None

    def test_partial_day_does_not_block_the_date(self, db, unit):
        owner = Owner.unit(unit.id)
        CalendarExceptionService.create(db, owner, period(time_start="09:00", time_end="10:00"))
        assert CalendarExceptionService.is_date_blocked(db, owner, MONDAY) is None

    def test_delete(self, db, unit):
        exception = CalendarExceptionService.create(db, Owner.unit(unit.id), period())
        CalendarExceptionService.delete(db, exception.id)
        with pytest.raises(NotFound):
            CalendarExceptionService.delete(db, exception.id)


class TestConcurrentWrites:

    def test_vacation_waits_for_a_reservation_in_flight(
            self, db, session_factory, monday_hours, client, monkeypatch
    ):
        unit, agent = monday_hours
        validating = threading.Event()
        original = AvailabilityService.booked_appointments

        def slow_booked_appointments(*args, **kwargs):
            result = original(*args, **kwargs)
            validating.set()
            sleep(0.3)
            return result

        monkeypatch.setattr(AvailabilityService, "booked_appointments", staticmethod(slow_booked_appointments))

        def book():
            session = session_factory()
            try:
                ReservationService.reserve(
                    session, agent.id, unit.id, client.id, MONDAY, "10:00", [30], now=BEFORE_MONDAY
                )
                return "booked"
            finally:
                session.close()

        def vacation():
            session = session_factory()
            try:
                assert validating.wait(timeout=5)
                CalendarExceptionService.create(session, Owner.agent(agent.id), period(category="Vacation"))
                return "created"
            except AppointmentConflictError:
                return "conflict"
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=2) as pool:
            booking = pool.submit(book)
            blocking = pool.submit(vacation)
            assert booking.result() == "booked"
            assert blocking.result() == "conflict"

        assert db.query(CalendarException).count() == 0
        assert db.query(Appointment).filter(Appointment.status == "Approved").count() == 1

    def test_overlapping_creates_yield_one_exception(self, db, session_factory, unit):
        owner = Owner.unit(unit.id)
        attempts = 4
        barrier = threading.Barrier(attempts)

        def attempt(_):
            session = session_factory()
            try:
                barrier.wait()
                CalendarExceptionService.create(session, owner, period())
                return "created"
            except OverlapError:
                return "overlap"
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=attempts) as pool:
            results = list(pool.map(attempt, range(attempts)))

        assert results.count("created") == 1
        assert results.count("overlap") == attempts - 1
        assert db.query(CalendarException).count() == 1

    def test_agent_exception_holds_every_covered_date(self, db, agent):
        owner = Owner.agent(agent.id)
        validated = CalendarExceptionService.validate_period(period(end=MONDAY + timedelta(days=2)))

        with CalendarExceptionService._write_section(db, owner, validated):
            assert owner_locks.active_keys() == 1
            assert slot_locks.active_keys() == 3
        assert owner_locks.active_keys() == 0
        assert slot_locks.active_keys() == 0
