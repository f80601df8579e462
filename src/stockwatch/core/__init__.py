"""stockwatch.core — errors, failure recording, logging, and settings."""

from stockwatch.core.errors import (
    CircuitOpenRejected,
    ConcurrencyRejected,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    FailureRecord,
    FailureRecorder,
    PermanentDeliveryFailure,
    RetryExhaustedError,
    StockwatchError,
    TimeoutFailure,
    TransientFailure,
)
from stockwatch.core.failures import FailureTally, fan_out, log_failure
from stockwatch.core.logging import LogContext, configure_logging, get_logger

__all__ = [
    "CircuitOpenRejected",
    "ConcurrencyRejected",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "FailureRecord",
    "FailureRecorder",
    "FailureTally",
    "LogContext",
    "PermanentDeliveryFailure",
    "RetryExhaustedError",
    "StockwatchError",
    "TimeoutFailure",
    "TransientFailure",
    "configure_logging",
    "fan_out",
    "get_logger",
    "log_failure",
]
