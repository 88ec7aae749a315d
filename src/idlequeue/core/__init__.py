"""idle-queue core -- errors, logging and settings shared by the engine.

Architecture::

    errors.py     Structured error hierarchy (IdleQueueError and friends)
    logging.py    structlog configuration + get_logger()
    settings.py   IdleQueueSettings (pydantic-settings, IDLEQUEUE_ prefix)
"""

from idlequeue.core.errors import (
    ConfigError,
    ContractViolationError,
    ErrorCategory,
    ErrorContext,
    IdleQueueError,
    InvalidConfigError,
    InvalidTimeoutError,
    UnmatchedUnlockError,
    ValidationError,
)
from idlequeue.core.logging import configure_logging, get_logger

__all__ = [
    "ConfigError",
    "ContractViolationError",
    "ErrorCategory",
    "ErrorContext",
    "IdleQueueError",
    "InvalidConfigError",
    "InvalidTimeoutError",
    "UnmatchedUnlockError",
    "ValidationError",
    "configure_logging",
    "get_logger",
]
