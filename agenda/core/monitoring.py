# agenda/core/monitoring.py
"""Health checks for the booking core and its collaborators"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from agenda.config.database import get_db
from agenda.config.redis import get_redis
from agenda.config.settings import get_settings
from agenda.services.reminder.reminder_runner import get_runner
from agenda.services.reservation.slot_lock import owner_locks, slot_locks

health_router = APIRouter()


def lock_gauges() -> dict:
    """Keys currently held or awaited in this process"""
    return {
        "slot_keys": slot_locks.active_keys(),
        "owner_keys": owner_locks.active_keys(),
    }


@health_router.get("/")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "agenda-api", "timezone": get_settings().BUSINESS_TIMEZONE}


@health_router.get("/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """Database and Redis reachability plus in-process lock usage"""
    checks = {
        "database": "unknown",
        "redis": "unknown",
        "locks": lock_gauges(),
        "overall": "unknown"
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"

    # Redis only backs the reminder runner lock; bookings keep working without it
    try:
        redis_client = await get_redis()
        await redis_client.ping()
        checks["redis"] = "healthy"
        await redis_client.aclose()
    except Exception as e:
        checks["redis"] = f"unhealthy: {str(e)}"

    if checks["database"] != "healthy":
        checks["overall"] = "unhealthy"
    elif checks["redis"] != "healthy":
        checks["overall"] = "degraded"
    else:
        checks["overall"] = "healthy"

    return checks


@health_router.get("/reminders")
def reminder_runner_health():
    """Counters of this process's reminder runner"""
    runner = get_runner()
    return {
        **runner.status(),
        "window": {
            "start_hour": runner.settings.REMINDER_WINDOW_START_HOUR,
            "end_hour": runner.settings.REMINDER_WINDOW_END_HOUR,
        },
    }
