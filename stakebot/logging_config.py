"""
Structured logging for the staking bot.

Every record carries the service name and, once bound, the signing account
and the current cycle id. Values under key-like field names are redacted.
Output is JSON, or the colored console renderer at DEBUG.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, MutableMapping, Optional

import structlog

from . import __version__

SERVICE_NAME = "stakebot"
_SECRET_FIELDS = ("signing_key", "private_key", "secret")
_REDACTED = "***"


def add_service_info(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def redact_secrets(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    for key in event_dict:
        if any(marker in key.lower() for marker in _SECRET_FIELDS):
            event_dict[key] = _REDACTED
    return event_dict


def bind_account(account: Optional[str]) -> None:
    """Tag every later record in this context with the signing account."""
    structlog.contextvars.bind_contextvars(account=account)


@contextmanager
def cycle_context(cycle_id: str) -> Iterator[None]:
    """Tag records emitted inside one claim and stake cycle."""
    with structlog.contextvars.bound_contextvars(cycle_id=cycle_id):
        yield


def setup_logging(log_level: Optional[str] = None) -> None:
    """Configure structlog for structured JSON logging.

    Args:
        log_level: Override log level (default: from settings.log_level)
    """
    if log_level is None:
        from .config import settings

        log_level = settings.log_level

    level = getattr(logging, log_level.upper(), logging.INFO)
    is_dev = level == logging.DEBUG

    # Shared processors for both structlog and stdlib
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        add_service_info,
        redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if is_dev:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Route stdlib logging through structlog's formatter
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Quiet noisy third-party loggers
    for name in ("uvicorn.access", "httpcore", "httpx", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)
