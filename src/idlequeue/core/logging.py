"""
Structured logging for idle-queue.

Engine modules log through ``get_logger``, which wraps the standard library
logger of the same name in a lazy structlog proxy.  Two consequences:

- Until the application configures logging, events go to ``logging`` and
  are subject to its levels, so the engine's debug events stay silent under
  the default WARNING root level.  Nothing is printed on import or use.
- Once ``configure_logging`` runs (directly, or via
  ``IdleQueue.from_settings``), every existing logger picks up the new
  processor chain on its next event.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="idle-queue")
            ↓
        processor chain:
          1. TimeStamper (ISO)
          2. merge_contextvars / add_log_level / add_logger_name
          3. _ecs_fields (JSON only: @timestamp, log.level, service.name)
          4. JSONRenderer (or ConsoleRenderer for dev)

        log = get_logger(__name__, queue="db-writes")
        log.debug("idle_queue.request_resolved", sequence=3, resolved_by="idle")

Examples:
    >>> from idlequeue.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> get_logger(__name__, queue="db").debug("idle_queue.request_created", sequence=1)
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

DEFAULT_SERVICE = "idle-queue"


def _ecs_fields(service: str) -> Processor:
    """Rename core fields to their ECS names and stamp the service."""

    def processor(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        if "timestamp" in event_dict:
            event_dict["@timestamp"] = event_dict.pop("timestamp")
        if "level" in event_dict:
            event_dict["log.level"] = event_dict.pop("level")
        if "logger" in event_dict:
            event_dict["log.logger"] = event_dict.pop("logger")
        event_dict.setdefault("service.name", service)
        return event_dict

    return processor


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = DEFAULT_SERVICE,
    add_timestamp: bool = True,
) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name stamped on JSON events
        add_timestamp: Include ISO timestamp in logs
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    if json_format is None:
        json_format = not sys.stdout.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        processors.append(_ecs_fields(service))
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)


def get_logger(name: str | None = None, **initial_values: Any) -> Any:
    """Get a structured logger bound to ``initial_values``.

    Values that are ``None`` are left out, so ``get_logger(__name__,
    queue=None)`` is a plain module logger.

    Returns:
        structlog lazy proxy over ``logging.getLogger(name)``
    """
    context = {key: value for key, value in initial_values.items() if value is not None}
    return structlog.wrap_logger(logging.getLogger(name), **context)


__all__ = [
    "DEFAULT_SERVICE",
    "configure_logging",
    "get_logger",
]
