# agenda/utils/my_logging.py
"""Logging configuration"""
import logging
import sys
from contextvars import ContextVar
from agenda.config.settings import get_settings

# Set per HTTP request by the correlation id middleware; "-" for workers and tasks
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"

NOISY_LOGGERS = [
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "sqlalchemy.orm",
    "alembic",
    "celery",
    "twilio.http_client",
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
]


class CorrelationIdFilter(logging.Filter):
    """Stamp each record with the current request's correlation id"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = correlation_id_var.get()
        return True


def setup_logging(verbose=True):
    """Configure application logging"""
    settings = get_settings()

    if verbose:
        level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    else:
        level = logging.WARNING

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    # Replaces handlers left by an earlier call
    logging.basicConfig(level=level, handlers=[handler], force=True)

    if not verbose:
        for name in NOISY_LOGGERS:
            logger = logging.getLogger(name)
            logger.setLevel(logging.ERROR)
            logger.propagate = False
