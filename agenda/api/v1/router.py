"""
API v1 router setup
"""
from fastapi import APIRouter

from agenda.api.v1 import availability, reservations, schedules, exceptions, reminders

api_v1_router = APIRouter()

# ============================================================================
# BOOKING ROUTES
# ============================================================================
api_v1_router.include_router(
    availability.router,
    tags=["Availability"]
)

api_v1_router.include_router(
    reservations.router,
    tags=["Reservations"]
)

# ============================================================================
# CALENDAR ADMINISTRATION
# ============================================================================
api_v1_router.include_router(
    schedules.router,
    tags=["Schedules"]
)

api_v1_router.include_router(
    exceptions.router,
    tags=["Exceptions"]
)

# ============================================================================
# REMINDERS
# ============================================================================
api_v1_router.include_router(
    reminders.router,
    tags=["Reminders"]
)


@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """API information and available endpoints."""
    return {
        "version": "1.0",
        "endpoints": {
            "availability": "/api/v1/agents/{agent_id}/availability",
            "reservations": "/api/v1/reservations",
            "schedules": "/api/v1/schedules/{owner_type}/{owner_id}",
            "exceptions": "/api/v1/exceptions/{owner_type}/{owner_id}",
            "reminders": "/api/v1/reminders/appointment/{appointment_id}",
        }
    }
