# agenda/services/reservation/slot_lock.py
"""
Critical section keyed by (agent_id, date).

Inside one process a registry of reference-counted threading locks serializes
writers for the same key; on PostgreSQL a transaction-scoped advisory lock
extends the same exclusion across processes. Different keys never wait on each
other.

Calendar exception writes additionally take a per-owner lock so two writers
for the same unit or agent cannot both pass the overlap scan.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Dict, Hashable, List, Tuple

from sqlalchemy import text
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

SlotKey = Tuple[int, date]


class KeyedLockRegistry:
    """Hands out one lock per key and forgets keys nobody is holding"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, List] = {}  # key -> [lock, users]

    def _checkout(self, key: Hashable) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: Hashable):
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: Hashable):
        """Acquire every key's lock in sorted order, release in reverse"""
        acquired = []
        try:
            for key in sorted(set(keys)):
                lock = self._checkout(key)
                try:
                    lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)


slot_locks = KeyedLockRegistry()


def acquire_advisory_locks(db: Session, keys) -> None:
    """pg_advisory_xact_lock per key; released by the transaction's commit/rollback"""
    if db.get_bind().dialect.name != "postgresql":
        return

    for agent_id, day in sorted(set(keys)):
        db.execute(
            text("SELECT pg_advisory_xact_lock(:agent_id, :day)"),
            {"agent_id": agent_id, "day": day.toordinal()}
        )


@contextmanager
def slot_critical_section(db: Session, *keys: SlotKey):
    """
    Serialize writers for the given (agent_id, date) keys.

    The caller must commit or roll back before leaving the block so the
    advisory lock (PostgreSQL) is released together with the process lock.
    """
    with slot_locks.hold(*keys):
        acquire_advisory_locks(db, keys)
        logger.debug(f"Slot lock held for {sorted(set(keys))}")
        yield


owner_locks = KeyedLockRegistry()

# Single-bigint advisory keys live apart from the (int, int) slot keys
OWNER_LOCK_NAMESPACE = {"unit": 1, "agent": 2}


def acquire_owner_advisory_lock(db: Session, owner_type: str, owner_id: int) -> None:
    if db.get_bind().dialect.name != "postgresql":
        return

    db.execute(
        text("SELECT pg_advisory_xact_lock(:key)"),
        {"key": (OWNER_LOCK_NAMESPACE[owner_type] << 32) + owner_id}
    )


@contextmanager
def owner_critical_section(db: Session, owner_type: str, owner_id: int, *slot_keys: SlotKey):
    """
    Serialize calendar exception writers of one owner.

    Agent exceptions also pass the (agent_id, date) keys they cover, which
    makes them wait for reservations in flight on those dates and vice versa.
    Owner locks are always taken before slot locks.
    """
    with owner_locks.hold((owner_type, owner_id)):
        acquire_owner_advisory_lock(db, owner_type, owner_id)
        with slot_critical_section(db, *slot_keys):
            yield
