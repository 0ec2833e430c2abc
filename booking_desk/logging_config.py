import logging
import sys

import structlog

from .config import settings

# Chatty third-party loggers held at WARNING regardless of LOG_LEVEL.
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "passlib")


def setup_logging():
    level = getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger("booking_desk").info(
        "logging_initialized",
        app=settings.APP_NAME,
        level=logging.getLevelName(level),
        strict_transitions=settings.RESERVATION_STRICT_TRANSITIONS,
        auth_required=settings.AUTH_REQUIRED,
    )
