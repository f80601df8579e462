"""Health registry: named async checks with per-check timeouts.

Checks run concurrently; one failing or hanging check never stops the others
from being reported. The aggregate follows the usual envelope:

- ``healthy``   every check healthy
- ``degraded``  some but not all healthy
- ``unhealthy`` none healthy
- ``unknown``   nothing registered

A check that overruns its timeout is reported with ``error="timeout"``. The
check itself is not cancelled; whatever it eventually returns is logged at
debug level and otherwise ignored.

Example:
    >>> registry = HealthRegistry()
    >>> registry.register("email-circuit-breaker", circuit_breaker_check(breaker))
    >>> report = await registry.run_all()
    >>> report.overall
    <HealthStatus.HEALTHY: 'healthy'>
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from stockwatch.core.errors import TimeoutFailure
from stockwatch.core.logging import get_logger

logger = get_logger(__name__)

CheckFn = Callable[[], Awaitable[Any]]


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class HealthStatus(str, Enum):
    """Health status levels."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


# ── Result models ────────────────────────────────────────────────────────


class CheckResult(BaseModel):
    """Result of a single health check."""

    status: HealthStatus
    duration_ms: float | None = None
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    checked_at: datetime = Field(default_factory=utcnow)

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY


class HealthReport(BaseModel):
    """Aggregate of one ``run_all`` pass."""

    overall: HealthStatus
    total_checks: int
    healthy_checks: int
    duration_ms: float
    timestamp: datetime = Field(default_factory=utcnow)
    checks: dict[str, CheckResult] = Field(default_factory=dict)

    @property
    def status_code(self) -> int:
        """HTTP-style hint: 503 when unhealthy, otherwise 200."""
        return 503 if self.overall == HealthStatus.UNHEALTHY else 200

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = self.model_dump(mode="json")
        result["status_code"] = self.status_code
        return result


def aggregate_status(total: int, healthy: int) -> HealthStatus:
    """Derive the overall status from check counts."""
    if total == 0:
        return HealthStatus.UNKNOWN
    if healthy == total:
        return HealthStatus.HEALTHY
    if healthy == 0:
        return HealthStatus.UNHEALTHY
    return HealthStatus.DEGRADED


# ── Registry ─────────────────────────────────────────────────────────────


@dataclass
class RegisteredCheck:
    """A check plus the outcome of its most recent run."""

    name: str
    check_fn: CheckFn
    timeout: float = 5.0
    last_result: CheckResult | None = None
    last_check_time: datetime | None = None


class HealthRegistry:
    """Holds named checks and runs them together."""

    def __init__(self) -> None:
        self._checks: dict[str, RegisteredCheck] = {}
        self._last_report: HealthReport | None = None

    def register(self, name: str, check_fn: CheckFn, timeout: float = 5.0) -> None:
        """Register an async zero-argument check.

        The check may return details (a dict, or any value) or raise. A
        return value of ``False`` counts as unhealthy.

        Raises:
            ValueError: ``name`` is already registered or ``timeout`` is not positive
        """
        if name in self._checks:
            raise ValueError(f"Health check '{name}' is already registered")
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._checks[name] = RegisteredCheck(name=name, check_fn=check_fn, timeout=timeout)
        logger.debug("health_check_registered", name=name, timeout=timeout)

    def unregister(self, name: str) -> bool:
        return self._checks.pop(name, None) is not None

    @property
    def names(self) -> list[str]:
        return list(self._checks)

    def get(self, name: str) -> RegisteredCheck | None:
        return self._checks.get(name)

    async def run_all(self) -> HealthReport:
        """Run every registered check concurrently and aggregate."""
        start = time.monotonic()
        checks = list(self._checks.values())
        results = await asyncio.gather(*[self._run_one(check) for check in checks])

        by_name = {check.name: result for check, result in zip(checks, results, strict=True)}
        healthy = sum(1 for result in results if result.healthy)
        report = HealthReport(
            overall=aggregate_status(len(results), healthy),
            total_checks=len(results),
            healthy_checks=healthy,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
            checks=by_name,
        )
        self._last_report = report

        log = logger.info if report.overall == HealthStatus.HEALTHY else logger.warning
        log(
            "health_checks_completed",
            overall=report.overall.value,
            healthy=healthy,
            total=len(results),
            duration_ms=report.duration_ms,
        )
        return report

    def status(self) -> dict[str, Any]:
        """Overall status from the last run (``unknown`` before any run)."""
        last = self._last_report
        return {
            "overall": last.overall.value if last else HealthStatus.UNKNOWN.value,
            "last_run": last.timestamp.isoformat() if last else None,
            "checks": self.names,
        }

    async def _run_one(self, check: RegisteredCheck) -> CheckResult:
        start = time.monotonic()
        task: asyncio.Future[Any] | None = None
        try:
            task = asyncio.ensure_future(check.check_fn())
            value = await asyncio.wait_for(asyncio.shield(task), timeout=check.timeout)
        except TimeoutError as exc:
            if task is None or task.done():
                # The check raised TimeoutError itself
                result = _error_result(exc, start)
            else:
                task.add_done_callback(_late_outcome_logger(check.name))
                logger.warning("health_check_timeout", **TimeoutFailure(check.name, check.timeout).to_dict())
                result = CheckResult(
                    status=HealthStatus.UNHEALTHY,
                    duration_ms=_elapsed_ms(start),
                    error="timeout",
                    details={"timeout": check.timeout},
                )
        except Exception as exc:
            result = _error_result(exc, start)
        else:
            if value is False:
                result = CheckResult(
                    status=HealthStatus.UNHEALTHY,
                    duration_ms=_elapsed_ms(start),
                    error="check returned False",
                )
            else:
                result = CheckResult(
                    status=HealthStatus.HEALTHY,
                    duration_ms=_elapsed_ms(start),
                    details=_as_details(value),
                )

        check.last_result = result
        check.last_check_time = result.checked_at
        return result


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 2)


def _error_result(exc: BaseException, start: float) -> CheckResult:
    return CheckResult(
        status=HealthStatus.UNHEALTHY,
        duration_ms=_elapsed_ms(start),
        error=str(exc)[:200] or type(exc).__name__,
    )


def _as_details(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if value is None or value is True:
        return {}
    return {"result": value}


def _late_outcome_logger(name: str) -> Callable[[asyncio.Future[Any]], None]:
    def _log(task: asyncio.Future[Any]) -> None:
        if task.cancelled():
            logger.debug("health_check_late_cancelled", name=name)
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("health_check_late_failure", name=name, error=str(exc))
        else:
            logger.debug("health_check_late_success", name=name)

    return _log


__all__ = [
    "CheckResult",
    "HealthRegistry",
    "HealthReport",
    "HealthStatus",
    "RegisteredCheck",
    "aggregate_status",
]
