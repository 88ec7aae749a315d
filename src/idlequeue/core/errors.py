"""
Structured error types for idle-queue.

Provides a small hierarchy of typed errors with metadata for categorization,
logging, and root cause analysis through error chaining.

Instead of bare ``ValueError``/``RuntimeError`` instances that lose context,
IdleQueueError and its subclasses carry:
- **Category:** What kind of error (config, validation, contract, etc.)
- **Context:** Queue name, operation, custom fields
- **Cause:** Chained underlying exception

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       IdleQueueError                            │
        │  (category, context, cause)                                     │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError          ValidationError      ContractViolationError│
        │  (CONFIG)             (VALIDATION)         (CONTRACT)            │
        │       │                     │                      │             │
        │  InvalidConfigError   InvalidTimeoutError  UnmatchedUnlockError  │
        └─────────────────────────────────────────────────────────────────┘

Nothing in the engine is fatal in correct usage. The errors below are raised
at construction time (bad configuration), at request time (bad timeout), or
when a caller breaks the lock/unlock pairing under the ``raise`` unlock policy.

Examples:
    >>> error = InvalidConfigError("parallels", 0)
    >>> error.category
    <ErrorCategory.CONFIG: 'CONFIG'>
    >>> error.with_context(queue="db").to_dict()["context"]
    {'queue': 'db'}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"
    VALIDATION = "VALIDATION"
    CONTRACT = "CONTRACT"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Any additional metadata can be stored in the `metadata` dict. The
    `to_dict()` method serializes all non-None fields for logging.

    Attributes:
        queue: Name of the IdleQueue instance
        operation: Public operation that failed (``unlock``, ``request_idle_promise``)
        metadata: Additional key-value pairs
    """

    queue: str | None = None
    operation: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["queue", "operation"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class IdleQueueError(Exception):
    """
    Base exception for all idle-queue errors.

    Subclasses set `default_category` to classify themselves.

    Examples:
        >>> error = IdleQueueError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> try:
        ...     raise KeyError("parallels")
        ... except KeyError as e:
        ...     error = IdleQueueError("Settings incomplete", cause=e)
        >>> error.cause
        KeyError('parallels')
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> IdleQueueError:
        """
        Add context to this error (fluent API).

        Usage:
            raise UnmatchedUnlockError().with_context(queue="db", operation="unlock")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if self.context:
            context_dict = self.context.to_dict()
            if context_dict:
                result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(IdleQueueError):
    """Configuration error. The queue must be constructed with fixed settings."""

    default_category = ErrorCategory.CONFIG


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(IdleQueueError, ValueError):
    """Invalid argument passed to a queue operation."""

    default_category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class InvalidTimeoutError(ValidationError):
    """Request timeout is not a positive number of milliseconds."""

    def __init__(self, value: Any):
        super().__init__(
            f"Timeout must be a positive number of milliseconds, got {value!r}",
            field="timeout",
            value=value,
        )


# =============================================================================
# CONTRACT ERRORS
# =============================================================================


class ContractViolationError(IdleQueueError):
    """The caller broke a usage contract of the queue."""

    default_category = ErrorCategory.CONTRACT


class UnmatchedUnlockError(ContractViolationError):
    """unlock() was called while no lock was held."""

    def __init__(self, message: str | None = None):
        super().__init__(message or "unlock() called without a matching lock()")


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "IdleQueueError",
    "ConfigError",
    "InvalidConfigError",
    "ValidationError",
    "InvalidTimeoutError",
    "ContractViolationError",
    "UnmatchedUnlockError",
]
