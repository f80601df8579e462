"""Built-in health checks.

Each factory binds its target and returns an ``async`` zero-argument callable
for :meth:`stockwatch.execution.health.HealthRegistry.register`. A check
returns a details dict when healthy and raises when not.

Examples:
    >>> registry.register("email-circuit-breaker", circuit_breaker_check(breaker))
    >>> registry.register("application-state", coordinator_check(coordinator, 10))
    >>> registry.register("network", http_check("https://www.google.com"), timeout=5.0)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import httpx

from stockwatch.execution.circuit_breaker import CircuitBreaker, CircuitState
from stockwatch.execution.delivery import DeliveryQueue

if TYPE_CHECKING:
    from stockwatch.coordination.state import ApplicationStateCoordinator

Check = Callable[[], Awaitable[dict[str, Any]]]


class HealthCheckFailed(Exception):
    """Raised by a built-in check; the message becomes the check's error."""


# ── Circuit breaker ──────────────────────────────────────────────────────


def circuit_breaker_check(breaker: CircuitBreaker) -> Check:
    """Unhealthy while the breaker is open."""

    async def _check() -> dict[str, Any]:
        status = breaker.status()
        if status.state == CircuitState.OPEN:
            raise HealthCheckFailed(f"Circuit breaker '{breaker.name}' is open")
        return status.to_dict()

    return _check


# ── Application state ────────────────────────────────────────────────────


def coordinator_check(
    coordinator: ApplicationStateCoordinator,
    max_consecutive_failures: int = 10,
) -> Check:
    """Unhealthy once consecutive probe failures exceed the limit."""

    async def _check() -> dict[str, Any]:
        state = coordinator.snapshot()
        if state.consecutive_failures > max_consecutive_failures:
            raise HealthCheckFailed(f"Too many consecutive failures: {state.consecutive_failures}")
        return {
            "check_count": state.check_count,
            "consecutive_failures": state.consecutive_failures,
            "check_in_progress": state.check_in_progress,
            "last_check_time": state.last_check_time.isoformat() if state.last_check_time else None,
        }

    return _check


# ── Delivery queue ───────────────────────────────────────────────────────


def delivery_queue_check(queue: DeliveryQueue, max_backlog: int | None = None) -> Check:
    """Unhealthy when the backlog reaches ``max_backlog`` (default: capacity)."""
    limit = max_backlog if max_backlog is not None else queue.max_queue_size

    async def _check() -> dict[str, Any]:
        size = len(queue)
        if size >= limit:
            raise HealthCheckFailed(f"Delivery backlog at {size} (limit {limit})")
        return {"size": size, "limit": limit, "processing": queue.processing}

    return _check


# ── Generic HTTP endpoint ────────────────────────────────────────────────


def http_check(
    url: str,
    *,
    timeout: float = 3.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Check:
    """``GET`` an HTTP endpoint and expect a 2xx response."""

    async def _check() -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.get(url)
            resp.raise_for_status()
            return {"url": url, "status_code": resp.status_code}

    return _check


__all__ = [
    "HealthCheckFailed",
    "circuit_breaker_check",
    "coordinator_check",
    "delivery_queue_check",
    "http_check",
]
