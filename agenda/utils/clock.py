# agenda/utils/clock.py
"""Time helpers for the single configured business timezone"""
from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from agenda.config.settings import get_settings

# A clock returns the current instant as an aware UTC datetime
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def business_timezone() -> ZoneInfo:
    return ZoneInfo(get_settings().BUSINESS_TIMEZONE)


def to_local(instant: datetime) -> datetime:
    """Aware instant -> aware datetime in the business timezone"""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(business_timezone())


def local_to_utc_naive(local_wall_time: datetime) -> datetime:
    """Naive business-timezone wall time -> naive UTC (storage format)"""
    aware = local_wall_time.replace(tzinfo=business_timezone())
    return aware.astimezone(timezone.utc).replace(tzinfo=None)


def utc_naive(instant: datetime) -> datetime:
    """Aware instant -> naive UTC (storage format)"""
    if instant.tzinfo is None:
        return instant
    return instant.astimezone(timezone.utc).replace(tzinfo=None)
