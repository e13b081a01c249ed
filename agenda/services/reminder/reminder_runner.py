# agenda/services/reminder/reminder_runner.py
"""
Periodic dispatcher for due reminders.

One runner per process: a tick that fires while the previous one is still
running is skipped and counted. Each reminder attempt is claimed with a
conditional UPDATE so concurrent runners in other processes never send the
same attempt twice; an optional Redis lock keeps whole runs exclusive.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from redis.exceptions import LockError, RedisError
from sqlalchemy.orm import Session

from agenda.config.redis import RedisKeys, get_sync_redis
from agenda.config.settings import Settings, get_settings
from agenda.models import Appointment, AppointmentStatus, ReminderStatus, ScheduledReminder
from agenda.services.reminder.sender import ReminderSender
from agenda.utils.clock import Clock, to_local, utc_naive, utcnow
from agenda.utils.intervals import format_minutes, parse_hhmm

logger = logging.getLogger(__name__)


class ReminderRunner:
    """Dispatches scheduled reminders whose fire time has passed"""

    def __init__(
            self,
            session_factory: Callable[[], Session],
            sender: ReminderSender,
            clock: Clock = utcnow,
            settings: Optional[Settings] = None,
            redis_factory: Callable = get_sync_redis
    ):
        self.session_factory = session_factory
        self.sender = sender
        self.clock = clock
        self.settings = settings or get_settings()
        self.redis_factory = redis_factory

        self._running = threading.Lock()
        self.stats = {
            "executions": 0,
            "skipped_ticks": 0,
            "outside_window_ticks": 0,
            "total_sent": 0,
            "total_failed": 0,
            "total_retried": 0,
            "total_cancelled": 0,
            "last_execution_at": None,
            "last_result": None,
        }

    # ========================================================================
    # SCHEDULING GUARDS
    # ========================================================================

    def within_window(self, now: datetime) -> bool:
        """Dispatch only during business hours of the configured timezone"""
        hour = to_local(now).hour
        return self.settings.REMINDER_WINDOW_START_HOUR <= hour < self.settings.REMINDER_WINDOW_END_HOUR

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    def status(self) -> Dict[str, Any]:
        return {**self.stats, "is_running": self.is_running}

    def tick(self) -> Dict[str, Any]:
        """One scheduled invocation"""
        if not self._running.acquire(blocking=False):
            self.stats["skipped_ticks"] += 1
            logger.warning("⏭️ Reminder run still in progress, skipping tick")
            return {"skipped": True, "reason": "in_progress"}

        try:
            now = self.clock()
            if not self.within_window(now):
                self.stats["outside_window_ticks"] += 1
                logger.info(f"Outside reminder window at {to_local(now).strftime('%H:%M')}, nothing dispatched")
                return {"skipped": True, "reason": "outside_window"}

            if self.settings.REMINDER_USE_REDIS_LOCK:
                return self._run_with_redis_lock(now)
            return self._run(now)
        finally:
            self._running.release()

    def _run_with_redis_lock(self, now: datetime) -> Dict[str, Any]:
        lock = self.redis_factory().lock(
            RedisKeys.REMINDER_RUNNER_LOCK,
            timeout=self.settings.REMINDER_LOCK_TIMEOUT_SECONDS,
        )
        if not lock.acquire(blocking=False):
            self.stats["skipped_ticks"] += 1
            logger.info("Another process is dispatching reminders, skipping tick")
            return {"skipped": True, "reason": "locked_elsewhere"}

        try:
            return self._run(now)
        finally:
            try:
                lock.release()
            except (LockError, RedisError) as e:
                logger.warning(f"Could not release reminder lock: {e}")

    # ========================================================================
    # DISPATCH
    # ========================================================================

    def _run(self, now: datetime) -> Dict[str, Any]:
        now_naive = utc_naive(now)
        summary = {"due": 0, "sent": 0, "failed": 0, "retried": 0, "cancelled": 0, "claimed_elsewhere": 0}

        db = self.session_factory()
        try:
            due = db.query(ScheduledReminder).filter(
                ScheduledReminder.status == ReminderStatus.SCHEDULED.value,
                ScheduledReminder.fire_at <= now_naive
            ).order_by(
                ScheduledReminder.fire_at.asc()
            ).limit(self.settings.REMINDER_BATCH_SIZE).all()

            summary["due"] = len(due)
            for reminder in due:
                outcome = self._dispatch(db, reminder, now_naive)
                summary[outcome] += 1
        finally:
            db.close()

        self.stats["executions"] += 1
        self.stats["total_sent"] += summary["sent"]
        self.stats["total_failed"] += summary["failed"]
        self.stats["total_retried"] += summary["retried"]
        self.stats["total_cancelled"] += summary["cancelled"]
        self.stats["last_execution_at"] = now.isoformat()
        self.stats["last_result"] = summary

        if summary["due"]:
            logger.info(f"📬 Reminder run finished: {summary}")
        return {"skipped": False, **summary}

    def _dispatch(self, db: Session, reminder: ScheduledReminder, now_naive: datetime) -> str:
        reminder_id = reminder.id
        seen_attempts = reminder.attempt_count
        destination = reminder.destination
        kind = reminder.kind

        appointment = db.query(Appointment).filter(Appointment.id == reminder.appointment_id).first()
        if appointment is None or appointment.status != AppointmentStatus.APPROVED.value:
            db.query(ScheduledReminder).filter(
                ScheduledReminder.id == reminder_id,
                ScheduledReminder.status == ReminderStatus.SCHEDULED.value
            ).update({"status": ReminderStatus.CANCELLED.value}, synchronize_session=False)
            db.commit()
            logger.info(f"Reminder {reminder_id} cancelled, appointment is no longer approved")
            return "cancelled"

        context = self.build_context(appointment, kind)

        # Claim this attempt; another runner that read the same row loses here
        claimed = db.query(ScheduledReminder).filter(
            ScheduledReminder.id == reminder_id,
            ScheduledReminder.status == ReminderStatus.SCHEDULED.value,
            ScheduledReminder.attempt_count == seen_attempts
        ).update(
            {"attempt_count": seen_attempts + 1, "last_attempt_at": now_naive},
            synchronize_session=False
        )
        db.commit()
        if claimed != 1:
            return "claimed_elsewhere"

        error = None
        try:
            delivered = self.sender.send(destination, kind, context)
            if not delivered:
                error = "Sender reported a delivery failure"
        except Exception as e:
            logger.exception(f"Sender raised while delivering reminder {reminder_id}")
            delivered = False
            error = str(e) or e.__class__.__name__

        attempts = seen_attempts + 1
        if delivered:
            changes = {"status": ReminderStatus.SENT.value, "sent_at": now_naive, "last_error": None}
            outcome = "sent"
        elif attempts >= self.settings.REMINDER_MAX_ATTEMPTS:
            changes = {"status": ReminderStatus.FAILED.value, "last_error": error}
            outcome = "failed"
            logger.error(f"❌ Reminder {reminder_id} failed after {attempts} attempts: {error}")
        else:
            changes = {"last_error": error}
            outcome = "retried"
            logger.warning(f"Reminder {reminder_id} attempt {attempts} failed, will retry: {error}")

        db.query(ScheduledReminder).filter(
            ScheduledReminder.id == reminder_id
        ).update(changes, synchronize_session=False)
        db.commit()
        return outcome

    @staticmethod
    def build_context(appointment: Appointment, kind: str) -> Dict[str, Any]:
        return {
            "appointment_id": appointment.id,
            "kind": kind,
            "client_name": appointment.client.name,
            "agent_name": appointment.agent.name,
            "unit_name": appointment.unit.name,
            "unit_address": appointment.unit.address,
            "date": appointment.date.strftime("%d/%m/%Y"),
            "start_time": format_minutes(parse_hhmm(appointment.start_time)),
        }


_runner: Optional[ReminderRunner] = None
_runner_guard = threading.Lock()


def get_runner() -> ReminderRunner:
    """Per-process runner used by the scheduled task"""
    global _runner
    with _runner_guard:
        if _runner is None:
            from agenda.config.database import SessionLocal
            from agenda.services.reminder.sender import build_sender

            _runner = ReminderRunner(session_factory=SessionLocal, sender=build_sender())
        return _runner
