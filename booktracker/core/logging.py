"""
Structured logging with structlog.

Development gets colored console output; every other environment logs one
JSON object per line. Request and user ids are bound through structlog's
context variables so every event of a request carries them.

Never pass raw tokens or passwords to a logger; log ids and reasons only.
"""

import logging
import sys
from typing import cast

import structlog
from structlog.types import Processor

from booktracker.config import Settings


def configure_logging(settings: Settings) -> None:
    renderer: Processor
    if settings.ENVIRONMENT == "development" and settings.LOG_FORMAT != "json":
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def bind_request(request_id: str) -> None:
    """Start a fresh logging context for one request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)


def bind_user(user_id: int) -> None:
    """Tag further events of this request with the authenticated user."""
    structlog.contextvars.bind_contextvars(user_id=user_id)


def clear_request() -> None:
    structlog.contextvars.clear_contextvars()
