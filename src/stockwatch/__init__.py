"""stockwatch — resilience and coordination core for an availability monitor.

Retry with backoff, a circuit breaker per external dependency, a bounded
delivery queue, a health registry, and a state coordinator that keeps check
workflows from overlapping and daily reports from being sent twice.
"""

__version__ = "0.3.0"

from stockwatch.coordination import (
    ApplicationStateCoordinator,
    CheckOutcome,
    Collaborators,
    MonitorApp,
    MonitorWorkflows,
    ReportOutcome,
)
from stockwatch.core import ErrorCategory, FailureRecord, StockwatchError
from stockwatch.execution import (
    CircuitBreaker,
    DeliveryQueue,
    HealthRegistry,
    RetryExecutor,
    RetryPolicy,
)

__all__ = [
    "ApplicationStateCoordinator",
    "CheckOutcome",
    "CircuitBreaker",
    "Collaborators",
    "DeliveryQueue",
    "ErrorCategory",
    "FailureRecord",
    "HealthRegistry",
    "MonitorApp",
    "MonitorWorkflows",
    "ReportOutcome",
    "RetryExecutor",
    "RetryPolicy",
    "StockwatchError",
    "__version__",
]
