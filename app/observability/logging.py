"""
Structured Logging with Structlog.

Every entry is one event name plus typed fields, e.g.

    {"event": "ticket_scanned", "ticket_id": "…", "scanned_by": "admin-1",
     "location": "Event Entrance", "request_id": "req-123",
     "service": "freshers-ticketing-api", "level": "info", ...}

Access-key codes are single-use bearer secrets until redeemed, so they are
masked before rendering.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from app.config import settings

# Fields that may carry a redeemable access-key code
CODE_FIELDS = frozenset({"code", "key_code", "access_key_code"})
_VISIBLE_CODE_CHARS = 4

# Third-party loggers that are only interesting while debugging
_QUIET_LOGGERS = ("sqlalchemy.engine", "uvicorn.access")


def mask_code(code: str) -> str:
    """Keep the last few characters of a code, enough to match it in the admin list."""
    if len(code) <= _VISIBLE_CODE_CHARS:
        return "*" * len(code)
    return "*" * (len(code) - _VISIBLE_CODE_CHARS) + code[-_VISIBLE_CODE_CHARS:]


def mask_access_codes(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    for field in CODE_FIELDS & event_dict.keys():
        value = event_dict[field]
        if isinstance(value, str):
            event_dict[field] = mask_code(value)
    return event_dict


def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", settings.service_name)
    event_dict.setdefault("version", settings.api_version)
    return event_dict


def _renderer() -> Processor:
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging() -> None:
    """Route structlog through stdlib logging on stdout."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    if level > logging.DEBUG:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_context,
        mask_access_codes,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _renderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Usage:
        logger = get_logger(__name__)
        logger.info("access_key_consumed", key_id=key_id, remaining_uses=0)
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


@contextmanager
def log_context(**context: Any) -> Iterator[None]:
    """
    Bind fields to every entry logged inside the block.

    Usage:
        with log_context(request_id=request_id):
            logger.info("request_started")
    """
    with structlog.contextvars.bound_contextvars(**context):
        yield
