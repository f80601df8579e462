"""stockwatch.execution — retry, circuit breaking, delivery, and health."""

from stockwatch.execution.circuit_breaker import CircuitBreaker, CircuitState, CircuitStatus
from stockwatch.execution.delivery import DeliveryItem, DeliveryQueue, DrainReport
from stockwatch.execution.health import CheckResult, HealthRegistry, HealthReport, HealthStatus
from stockwatch.execution.retry import RetryExecutor, RetryPolicy, retry_async

__all__ = [
    "CheckResult",
    "CircuitBreaker",
    "CircuitState",
    "CircuitStatus",
    "DeliveryItem",
    "DeliveryQueue",
    "DrainReport",
    "HealthRegistry",
    "HealthReport",
    "HealthStatus",
    "RetryExecutor",
    "RetryPolicy",
    "retry_async",
]
