# app/utils/my_logging.py
"""Logging configuration"""
import logging
import sys
from contextvars import ContextVar

from app.config.settings import get_settings

# Set per request by the correlation id middleware; "-" outside requests (Celery, startup)
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")

NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "celery",
    "kombu",
    "uvicorn.access",
)


class CorrelationIdFilter(logging.Filter):
    def filter(self, record):
        if not hasattr(record, "correlation_id"):
            record.correlation_id = correlation_id_var.get()
        return True


def setup_logging(verbose=True):
    """Configure application logging"""
    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO) if verbose else logging.WARNING

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationIdFilter())
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s",
        handlers=[handler],
    )

    # Order transitions are the audit trail; keep them even when quiet
    logging.getLogger("app.services.order.order_lifecycle_service").setLevel(min(level, logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING if verbose else logging.ERROR)
