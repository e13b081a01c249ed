"""Tests for reminder scheduling and the dispatch runner"""
from datetime import datetime, timedelta, timezone
import threading
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from agenda.config.redis import RedisKeys
from agenda.config.settings import get_settings
from agenda.models import AppointmentStatus, ReminderStatus, ScheduledReminder
from agenda.services.reminder.reminder_runner import ReminderRunner
from agenda.services.reminder.reminder_service import ReminderService
from agenda.services.reminder.sender import LogOnlySender, ReminderSender
from agenda.services.reservation.reservation_service import ReservationService

from conftest import BEFORE_MONDAY, MONDAY

# Appointment at 10:00 Sao Paulo = 13:00 UTC
APPOINTMENT_UTC = datetime(2030, 1, 7, 13, 0)
AFTER_BOTH_DUE = datetime(2030, 1, 7, 12, 30, tzinfo=timezone.utc)  # 09:30 local


@pytest.fixture
def appointment(db, monday_hours, client):
    unit, agent = monday_hours
    return ReservationService.reserve(
        db, agent.id, unit.id, client.id, MONDAY, "10:00", [30], now=BEFORE_MONDAY
    )


def reminders(db):
    db.expire_all()
    return {r.kind: r for r in db.query(ScheduledReminder).all()}


def make_runner(session_factory, sender, clock=lambda: AFTER_BOTH_DUE, **overrides):
    settings = get_settings().model_copy(update=overrides)
    return ReminderRunner(session_factory, sender, clock=clock, settings=settings)


class TestScheduling:

    def test_both_reminders_are_created(self, db, appointment):
        rows = reminders(db)
        assert set(rows) == {"24h", "1h"}
        assert rows["24h"].fire_at == APPOINTMENT_UTC - timedelta(hours=24)
        assert rows["1h"].fire_at == APPOINTMENT_UTC - timedelta(hours=1)
        assert rows["1h"].destination == "+5511999990000"
        assert rows["1h"].status == ReminderStatus.SCHEDULED.value

    def test_schedule_twice_creates_no_duplicates(self, db, appointment):
        result = ReminderService.schedule_for(db, appointment, now=BEFORE_MONDAY)
        assert result["created"] == []
        assert sorted(result["duplicates"]) == ["1h", "24h"]
        assert db.query(ScheduledReminder).count() == 2

    def test_past_fire_times_are_skipped(self, db, appointment):
        ReminderService.cancel_for(db, appointment.id)
        # 20 hours before the appointment: the 24h reminder is already late
        now = datetime(2030, 1, 6, 17, 0, tzinfo=timezone.utc)
        result = ReminderService.schedule_for(db, appointment, now=now)
        assert result == {"created": ["1h"], "skipped": ["24h"], "duplicates": []}

    def test_cancel_for_deletes_rows(self, db, appointment):
        assert ReminderService.cancel_for(db, appointment.id) == 2
        assert ReminderService.list_for_appointment(db, appointment.id) == []

    def test_reschedule_for_recreates_rows(self, db, appointment):
        ReminderService.cancel_for(db, appointment.id)
        result = ReminderService.reschedule_for(db, appointment, now=BEFORE_MONDAY)
        assert sorted(result["created"]) == ["1h", "24h"]

    def test_non_approved_appointments_get_no_reminders(self, db, appointment):
        ReminderService.cancel_for(db, appointment.id)
        appointment.status = AppointmentStatus.COMPLETED.value
        db.commit()
        assert ReminderService.schedule_for(db, appointment, now=BEFORE_MONDAY)["created"] == []

    def test_list_is_ordered_by_fire_time(self, db, appointment):
        kinds = [r.kind for r in ReminderService.list_for_appointment(db, appointment.id)]
        assert kinds == ["24h", "1h"]


class TestRunner:

    def test_sends_due_reminders(self, db, session_factory, appointment):
        sender = MagicMock(spec=ReminderSender)
        sender.send.return_value = True

        result = make_runner(session_factory, sender).tick()

        assert result["sent"] == 2
        rows = reminders(db)
        assert all(r.status == ReminderStatus.SENT.value for r in rows.values())
        assert rows["1h"].attempt_count == 1
        assert rows["1h"].sent_at is not None

        destination, kind, context = sender.send.call_args_list[0].args
        assert destination == "+5511999990000"
        assert kind == "24h"
        assert context["client_name"] == "Bruno"
        assert context["start_time"] == "10:00"

    def test_only_due_reminders_are_sent(self, db, session_factory, appointment):
        sender = MagicMock(spec=ReminderSender)
        sender.send.return_value = True
        # 10:30 local the day before: only the 24h reminder is due
        clock = lambda: datetime(2030, 1, 6, 13, 30, tzinfo=timezone.utc)

        result = make_runner(session_factory, sender, clock=clock).tick()

        assert result["sent"] == 1
        assert reminders(db)["1h"].status == ReminderStatus.SCHEDULED.value

    def test_failures_are_retried_then_marked_failed(self, db, session_factory, appointment):
        sender = MagicMock(spec=ReminderSender)
        sender.send.return_value = False
        runner = make_runner(session_factory, sender, REMINDER_MAX_ATTEMPTS=3)

        assert runner.tick()["retried"] == 2
        assert runner.tick()["retried"] == 2
        assert reminders(db)["1h"].status == ReminderStatus.SCHEDULED.value

        assert runner.tick()["failed"] == 2
        rows = reminders(db)
        assert rows["1h"].status == ReminderStatus.FAILED.value
        assert rows["1h"].attempt_count == 3
        assert rows["1h"].last_error

        # Terminal: nothing left to dispatch
        assert runner.tick()["due"] == 0
        assert runner.status()["total_failed"] == 2
        assert runner.status()["total_retried"] == 4

    def test_sender_exception_counts_as_failed_attempt(self, db, session_factory, appointment):
        sender = MagicMock(spec=ReminderSender)
        sender.send.side_effect = ConnectionError("gateway timeout")

        result = make_runner(session_factory, sender).tick()

        assert result["retried"] == 2
        assert reminders(db)["24h"].last_error == "gateway timeout"

    def test_failed_reminders_never_touch_the_appointment(self, db, session_factory, appointment):
        sender = MagicMock(spec=ReminderSender)
        sender.send.return_value = False
        make_runner(session_factory, sender, REMINDER_MAX_ATTEMPTS=1).tick()

        db.refresh(appointment)
        assert appointment.status == AppointmentStatus.APPROVED.value

    def test_reminder_of_completed_appointment_is_cancelled(self, db, session_factory, appointment):
        ReservationService.complete(db, appointment.id)
        sender = MagicMock(spec=ReminderSender)

        result = make_runner(session_factory, sender).tick()

        assert result["cancelled"] == 2
        sender.send.assert_not_called()
        assert {r.status for r in reminders(db).values()} == {ReminderStatus.CANCELLED.value}

    def test_outside_operating_window(self, session_factory, appointment):
        sender = MagicMock(spec=ReminderSender)
        # 05:00 UTC is 02:00 in Sao Paulo
        clock = lambda: datetime(2030, 1, 7, 5, 0, tzinfo=timezone.utc)
        runner = make_runner(session_factory, sender, clock=clock)

        assert runner.tick() == {"skipped": True, "reason": "outside_window"}
        sender.send.assert_not_called()
        assert runner.status()["outside_window_ticks"] == 1

    def test_window_end_is_exclusive(self, session_factory):
        runner = make_runner(session_factory, LogOnlySender())
        assert runner.within_window(datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc))  # 06:00
        assert runner.within_window(datetime(2030, 1, 8, 1, 59, tzinfo=timezone.utc))  # 22:59
        assert not runner.within_window(datetime(2030, 1, 8, 2, 0, tzinfo=timezone.utc))  # 23:00

    def test_overlapping_tick_is_skipped_and_counted(self, session_factory, appointment):
        started = threading.Event()
        release = threading.Event()

        class SlowSender(ReminderSender):
            def send(self, destination, template_kind, context):
                started.set()
                release.wait(timeout=10)
                return True

        runner = make_runner(session_factory, SlowSender())
        first = threading.Thread(target=runner.tick)
        first.start()
        try:
            assert started.wait(timeout=10)
            assert runner.status()["is_running"] is True
            assert runner.tick() == {"skipped": True, "reason": "in_progress"}
        finally:
            release.set()
            first.join()

        status = runner.status()
        assert status["skipped_ticks"] == 1
        assert status["executions"] == 1
        assert status["total_sent"] == 2
        assert status["is_running"] is False

    def test_claimed_attempts_are_not_sent_twice(self, db, session_factory, appointment):
        """A row whose attempt was claimed after it was read is left to the other runner"""
        sender = MagicMock(spec=ReminderSender)
        sender.send.return_value = True
        runner = make_runner(session_factory, sender)

        row = reminders(db)["1h"]
        seen = SimpleNamespace(
            id=row.id, attempt_count=0, destination=row.destination,
            kind=row.kind, appointment_id=row.appointment_id,
        )
        # Another runner claims attempt 1 after this one read the row
        db.query(ScheduledReminder).filter(ScheduledReminder.id == row.id).update(
            {"attempt_count": 1}, synchronize_session=False
        )
        db.commit()

        outcome = runner._dispatch(db, seen, AFTER_BOTH_DUE.replace(tzinfo=None))

        assert outcome == "claimed_elsewhere"
        sender.send.assert_not_called()

    def test_redis_lock_held_elsewhere_skips_the_run(self, session_factory, appointment):
        lock = MagicMock()
        lock.acquire.return_value = False
        redis_client = MagicMock()
        redis_client.lock.return_value = lock
        sender = MagicMock(spec=ReminderSender)

        settings = get_settings().model_copy(update={"REMINDER_USE_REDIS_LOCK": True})
        runner = ReminderRunner(
            session_factory, sender, clock=lambda: AFTER_BOTH_DUE, settings=settings,
            redis_factory=lambda: redis_client
        )

        assert runner.tick() == {"skipped": True, "reason": "locked_elsewhere"}
        redis_client.lock.assert_called_once_with(
            RedisKeys.REMINDER_RUNNER_LOCK, timeout=settings.REMINDER_LOCK_TIMEOUT_SECONDS
        )
        sender.send.assert_not_called()

    def test_redis_lock_is_released_after_the_run(self, session_factory, appointment):
        lock = MagicMock()
        lock.acquire.return_value = True
        redis_client = MagicMock()
        redis_client.lock.return_value = lock
        sender = MagicMock(spec=ReminderSender)
        sender.send.return_value = True

        settings = get_settings().model_copy(update={"REMINDER_USE_REDIS_LOCK": True})
        runner = ReminderRunner(
            session_factory, sender, clock=lambda: AFTER_BOTH_DUE, settings=settings,
            redis_factory=lambda: redis_client
        )

        assert runner.tick()["sent"] == 2
        lock.release.assert_called_once()


class TestTask:

    def test_dispatch_task_delegates_to_the_process_runner(self):
        from agenda.tasks.reminder_tasks import dispatch_due_reminders

        runner = MagicMock()
        runner.tick.return_value = {"skipped": False, "sent": 1}
        with patch("agenda.tasks.reminder_tasks.get_runner", return_value=runner):
            assert dispatch_due_reminders() == {"skipped": False, "sent": 1}
        runner.tick.assert_called_once_with()
