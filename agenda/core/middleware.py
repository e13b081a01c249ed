# agenda/core/middleware.py
"""Request middleware: correlation ids and booking-aware request logs"""
import re
import uuid
import time
import logging
from typing import Dict
from starlette.requests import Request

from agenda.utils.my_logging import correlation_id_var

logger = logging.getLogger(__name__)

# Path segments that identify what a request is about
BOOKING_PATH_PATTERNS = [
    re.compile(r"/agents/(?P<agent_id>\d+)"),
    re.compile(r"/reservations/(?P<appointment_id>\d+)"),
    re.compile(r"/reminders/appointment/(?P<appointment_id>\d+)"),
    re.compile(r"/(?:schedules|exceptions)/(?P<owner_type>unit|agent)/(?P<owner_id>\d+)"),
    re.compile(r"/exceptions/(?P<exception_id>\d+)"),
]

# Statuses that mean the booking core refused the write
REFUSAL_STATUSES = {400, 404, 409, 422}


def booking_context(path: str) -> Dict[str, str]:
    """Ids named in the URL path, e.g. {"appointment_id": "12"}"""
    context = {}
    for pattern in BOOKING_PATH_PATTERNS:
        match = pattern.search(path)
        if match:
            context.update(match.groupdict())
    return context


async def correlation_id_middleware(request: Request, call_next):
    """Tag the request, its log lines and its response with one correlation id"""
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    token = correlation_id_var.set(correlation_id)

    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token)

    response.headers["X-Correlation-ID"] = correlation_id
    return response


async def request_logging_middleware(request: Request, call_next):
    """One line per request with its booking ids, status and duration"""
    start_time = time.time()
    context = booking_context(request.url.path)
    described = " ".join(f"{key}={value}" for key, value in context.items())

    response = await call_next(request)

    duration_ms = round((time.time() - start_time) * 1000, 2)
    message = f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms} ms)"
    if described:
        message = f"{message} [{described}]"

    extra = {"status_code": response.status_code, "duration_ms": duration_ms, **context}
    if request.method != "GET" and response.status_code in REFUSAL_STATUSES:
        logger.warning(f"Write refused: {message}", extra=extra)
    else:
        logger.info(message, extra=extra)

    return response
