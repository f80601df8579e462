"""
Structured error types for stockwatch.

Every failure the resilience layer can produce is a ``StockwatchError``
subclass that carries a category, a retry hint, and structured context, so a
caller can decide whether to retry, skip, or surface it without parsing
messages.

Architecture:
    ::

        StockwatchError (category, retryable, retry_after, context, cause)
          ├── TransientFailure          network / API errors, retryable
          │     └── RetryExhaustedError  final failure after N attempts
          ├── ConcurrencyRejected       mutual-exclusion gate was held
          ├── CircuitOpenRejected       breaker open, retry after T
          ├── PermanentDeliveryFailure  queue item ran out of attempts
          ├── TimeoutFailure            health check exceeded its budget
          └── ConfigError               missing / invalid settings

``FailureRecord`` is the side channel: components never write logs of their
own failures to disk, they hand a record to a ``FailureRecorder`` callable and
let the caller decide how to render or count it.

Examples:
    >>> err = TransientFailure("upstream returned 502").with_context(source="costco")
    >>> err.retryable
    True
    >>> err.to_dict()["context"]
    {'source': 'costco'}
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class ErrorCategory(str, Enum):
    """Error categories used for routing and failure statistics."""

    NETWORK = "network"          # probe fetch, connectivity
    EMAIL = "email"              # notification delivery
    DATA = "data"                # persistence sink
    APPLICATION = "application"  # state, breaker, health, internal
    VALIDATION = "validation"
    CONFIG = "config"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Typed fields cover what the workflows know; anything else goes in
    ``metadata``.
    """

    workflow: str | None = None
    operation: str | None = None
    source: str | None = None
    attempt: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["workflow", "operation", "source", "attempt"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StockwatchError(Exception):
    """
    Base exception for all stockwatch errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers can
    override either per instance.

    Args:
        message: Human-readable description
        category: ErrorCategory (defaults to the class default)
        retryable: Whether repeating the operation may succeed
        retry_after: Seconds the caller should wait before retrying
        context: Structured metadata
        cause: Underlying exception, also chained as ``__cause__``
    """

    default_category: ErrorCategory = ErrorCategory.APPLICATION
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StockwatchError:
        """
        Add context to this error (fluent API).

        Usage:
            raise TransientFailure("probe failed").with_context(
                workflow="check", source="costco"
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT FAILURES (retryable)
# =============================================================================


class TransientFailure(StockwatchError):
    """Network or API error that may succeed when repeated."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class RetryExhaustedError(TransientFailure):
    """All retry attempts failed.

    Attributes:
        attempts: Number of attempts made
        final: Always True; the executor gave up
        last_error: The exception raised by the last attempt
    """

    def __init__(
        self,
        attempts: int,
        last_error: BaseException,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Operation failed after {attempts} attempt{'s' if attempts != 1 else ''}: {last_error}",
            category=category,
            retryable=False,
            context=context,
            cause=last_error,
        )
        self.attempts = attempts
        self.final = True
        self.last_error = last_error

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["attempts"] = self.attempts
        result["final"] = self.final
        return result


# =============================================================================
# REJECTIONS (the protected operation never ran)
# =============================================================================


class ConcurrencyRejected(StockwatchError):
    """Operation declined because another check holds the gate."""

    default_category = ErrorCategory.APPLICATION
    default_retryable = True


class CircuitOpenRejected(StockwatchError):
    """Operation declined because the circuit breaker is open."""

    default_category = ErrorCategory.APPLICATION
    default_retryable = True

    def __init__(self, breaker: str, retry_after: float, **kwargs: Any):
        wait = max(0, math.ceil(retry_after))
        super().__init__(
            f"Service '{breaker}' unavailable (circuit open), retry after {wait}s",
            retry_after=wait,
            **kwargs,
        )
        self.breaker = breaker


# =============================================================================
# TERMINAL FAILURES
# =============================================================================


class PermanentDeliveryFailure(StockwatchError):
    """A queued delivery exhausted its attempts and was dropped."""

    default_category = ErrorCategory.EMAIL
    default_retryable = False

    def __init__(self, description: str, attempts: int, cause: BaseException | None = None, **kwargs: Any):
        super().__init__(
            f"Delivery '{description}' permanently failed after {attempts} attempts",
            cause=cause,
            **kwargs,
        )
        self.description = description
        self.attempts = attempts


class TimeoutFailure(StockwatchError):
    """A health check did not finish within its budget."""

    default_category = ErrorCategory.APPLICATION
    default_retryable = True

    def __init__(self, name: str, timeout: float, **kwargs: Any):
        super().__init__(f"Health check '{name}' timed out after {timeout}s", **kwargs)
        self.name = name
        self.timeout = timeout


class ConfigError(StockwatchError):
    """Configuration is missing or invalid. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# FAILURE RECORDS (side channel)
# =============================================================================


@dataclass(frozen=True)
class FailureRecord:
    """A structured description of one failure, for external observers.

    Attributes:
        category: ErrorCategory of the failure
        context: Where it happened (e.g. ``"probe"``, ``"circuit-breaker-notifications"``)
        message: Error message
        error_type: Exception class name
        attempt: Attempt number, when the failure came from a retry loop
        max_attempts: Configured attempt limit
        next_delay: Seconds until the next attempt, None when no retry follows
        final: True when no further attempt will be made
        metadata: Anything else worth reporting
        timestamp: When the failure was recorded
    """

    category: ErrorCategory
    context: str
    message: str
    error_type: str = "Exception"
    attempt: int | None = None
    max_attempts: int | None = None
    next_delay: float | None = None
    final: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def from_exception(
        cls,
        error: BaseException,
        *,
        category: ErrorCategory | None = None,
        context: str = "unknown",
        **kwargs: Any,
    ) -> FailureRecord:
        """Build a record from an exception, honoring a StockwatchError's own category."""
        if category is None:
            category = error.category if isinstance(error, StockwatchError) else ErrorCategory.APPLICATION
        message = error.message if isinstance(error, StockwatchError) else str(error)
        return cls(
            category=category,
            context=context,
            message=message,
            error_type=type(error).__name__,
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {
            "category": self.category.value,
            "context": self.context,
            "message": self.message,
            "error_type": self.error_type,
            "final": self.final,
            "timestamp": self.timestamp.isoformat(),
        }
        for key in ["attempt", "max_attempts", "next_delay"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result["metadata"] = self.metadata
        return result


FailureRecorder = Callable[[FailureRecord], None]


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StockwatchError",
    "TransientFailure",
    "RetryExhaustedError",
    "ConcurrencyRejected",
    "CircuitOpenRejected",
    "PermanentDeliveryFailure",
    "TimeoutFailure",
    "ConfigError",
    "FailureRecord",
    "FailureRecorder",
]
