"""
Spry logging - structured logging for the request lifecycle.

Wraps structlog so every module logs the same way::

    from spry.core.logging import get_logger

    log = get_logger(__name__)
    log.info("route.matched", path="/users/{id}/", controller="Users::get")

The facade binds ``request_id`` and ``path`` for the lifetime of one request
with :class:`LogContext`, so individual log calls never pass them explicitly.

Configuration is read from arguments or the environment:

- ``SPRY_LOG_LEVEL``: DEBUG | INFO | WARNING | ERROR (default: INFO)
- ``SPRY_LOG_FORMAT``: json | console (default: auto, JSON when not a tty)

Logs go to stderr so they never mix with the JSON envelope on stdout.

Tags:
    logging, structlog, observability, spry-core

Doc-Types:
    api-reference
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "spry"
_configured = False


def _add_service_metadata(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
    service: str = "spry",
    force: bool = False,
) -> None:
    """Configure structured logging for the application.

    Subsequent calls are no-ops unless ``force=True``.

    Args:
        level: Log level (overrides ``SPRY_LOG_LEVEL``)
        json_format: True for JSON, False for console, None for env/auto
        service: Service name included in every event
        force: Reconfigure even if already configured
    """
    global _SERVICE_NAME, _configured

    if _configured and not force:
        return

    _SERVICE_NAME = service
    log_level = (level or os.environ.get("SPRY_LOG_LEVEL", "INFO")).upper()

    if json_format is None:
        env_format = os.environ.get("SPRY_LOG_FORMAT", "").lower()
        if env_format in ("json", "console"):
            json_format = env_format == "json"
        else:
            json_format = not sys.stderr.isatty()

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_service_metadata,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level, logging.INFO),
        force=True,
    )

    _configured = True


def is_configured() -> bool:
    return _configured


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(request_id="abc123", path="/users/"):
            log.info("request.started")
        # Context cleared here
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "is_configured",
    "get_logger",
    "bind_context",
    "unbind_context",
    "LogContext",
]
