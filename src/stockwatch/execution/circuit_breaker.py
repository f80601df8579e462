"""Circuit breaker pattern for fault tolerance.

Stops calling a downstream dependency (the email API, the product page) once
it has failed ``failure_threshold`` times in a row, and fails fast until
``open_timeout`` has passed.

States:
    CLOSED: Normal operation, calls pass through
    OPEN: Failing fast, calls rejected with CircuitOpenRejected
    HALF_OPEN: One probe call allowed; its outcome closes or re-opens

Example:
    >>> from stockwatch.execution.circuit_breaker import CircuitBreaker
    >>>
    >>> breaker = CircuitBreaker("notifications", failure_threshold=5, open_timeout=300.0)
    >>> try:
    ...     await breaker.execute(lambda: sender.send(alert))
    ... except CircuitOpenRejected as e:
    ...     print(f"email unavailable, retry in {e.retry_after}s")
"""

from __future__ import annotations

import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, TypeVar

from stockwatch.core.errors import (
    CircuitOpenRejected,
    ErrorCategory,
    ErrorContext,
    FailureRecord,
    FailureRecorder,
)
from stockwatch.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitStatus:
    """Point-in-time view of a breaker, for health checks and dashboards."""

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    total_requests: int
    failed_requests: int
    rejected_requests: int
    failure_threshold: int
    open_timeout: float
    last_failure_time: datetime | None
    next_attempt_time: datetime | None

    @property
    def failure_rate(self) -> float:
        """Failed calls as a percentage of all call attempts."""
        if self.total_requests == 0:
            return 0.0
        return (self.failed_requests / self.total_requests) * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "total_requests": self.total_requests,
            "failed_requests": self.failed_requests,
            "rejected_requests": self.rejected_requests,
            "failure_rate": f"{self.failure_rate:.2f}%",
            "last_failure_time": self.last_failure_time.isoformat() if self.last_failure_time else None,
            "next_attempt_time": self.next_attempt_time.isoformat() if self.next_attempt_time else None,
        }


class CircuitBreaker:
    """Circuit breaker for one protected dependency.

    Create one per external dependency and keep it for the process lifetime.
    State changes happen under a lock that is never held across an await.

    Attributes:
        name: Identifier used in errors, logs, and failure records
        failure_threshold: Consecutive failures before opening
        open_timeout: Seconds to stay open before allowing a probe
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        open_timeout: float = 60.0,
        *,
        on_failure: FailureRecorder | None = None,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if open_timeout <= 0:
            raise ValueError("open_timeout must be positive")

        self.name = name
        self.failure_threshold = failure_threshold
        self.open_timeout = open_timeout
        self._on_failure = on_failure

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._total_requests = 0
        self._failed_requests = 0
        self._rejected_requests = 0
        self._last_failure_time: datetime | None = None
        self._next_attempt_time: datetime | None = None
        self._probe_in_flight = False
        self._lock = threading.RLock()

    @property
    def state(self) -> CircuitState:
        """Current state (does not trigger the open → half-open transition)."""
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def status(self) -> CircuitStatus:
        with self._lock:
            return CircuitStatus(
                name=self.name,
                state=self._state,
                failure_count=self._failure_count,
                success_count=self._success_count,
                total_requests=self._total_requests,
                failed_requests=self._failed_requests,
                rejected_requests=self._rejected_requests,
                failure_threshold=self.failure_threshold,
                open_timeout=self.open_timeout,
                last_failure_time=self._last_failure_time,
                next_attempt_time=self._next_attempt_time,
            )

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` through the breaker.

        Raises:
            CircuitOpenRejected: The breaker is open (operation not invoked)
            Exception: Whatever the operation raised, after it was counted
        """
        is_probe = self._admit()

        try:
            result = await operation()
        except Exception:
            self._on_call_failure(is_probe)
            raise
        except BaseException:
            # Cancelled: no outcome, so a half-open probe hands its slot back
            self._on_call_abandoned(is_probe)
            raise

        self._on_call_success(is_probe)
        return result

    def reset(self) -> None:
        """Reset circuit to closed state."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)

    def force_open(self) -> None:
        """Force circuit to open state (for testing/maintenance)."""
        with self._lock:
            self._open(utcnow())

    # ── internals ────────────────────────────────────────────────

    def _admit(self) -> bool:
        """Count the request and decide whether it may run.

        Returns True when the call is the half-open probe.
        """
        with self._lock:
            self._total_requests += 1
            now = utcnow()

            if self._state == CircuitState.OPEN:
                if self._next_attempt_time is not None and now > self._next_attempt_time:
                    self._transition_to(CircuitState.HALF_OPEN)
                else:
                    self._reject(now)

            if self._state == CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    self._reject(now)
                self._probe_in_flight = True
                return True

            return False

    def _reject(self, now: datetime) -> None:
        self._rejected_requests += 1
        remaining = 0.0
        if self._next_attempt_time is not None:
            remaining = max((self._next_attempt_time - now).total_seconds(), 0.0)
        error = CircuitOpenRejected(
            self.name,
            retry_after=remaining,
            context=ErrorContext(operation=f"circuit-breaker-{self.name}"),
        )
        self._record(
            FailureRecord.from_exception(
                error,
                context=f"circuit-breaker-{self.name}",
                metadata={
                    "state": self._state.value,
                    "failure_count": self._failure_count,
                    "wait_time": error.retry_after,
                },
            )
        )
        raise error

    def _on_call_success(self, is_probe: bool) -> None:
        with self._lock:
            self._success_count += 1
            if is_probe:
                self._probe_in_flight = False
                self._transition_to(CircuitState.CLOSED)
            self._failure_count = 0

    def _on_call_failure(self, is_probe: bool) -> None:
        with self._lock:
            now = utcnow()
            self._failure_count += 1
            self._failed_requests += 1
            self._last_failure_time = now

            if is_probe:
                self._probe_in_flight = False
                self._open(now)
            elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._open(now)

    def _on_call_abandoned(self, is_probe: bool) -> None:
        if not is_probe:
            return
        with self._lock:
            self._probe_in_flight = False
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)

    def _open(self, now: datetime) -> None:
        self._transition_to(CircuitState.OPEN)
        self._next_attempt_time = now + timedelta(seconds=self.open_timeout)
        self._record(
            FailureRecord(
                category=ErrorCategory.APPLICATION,
                context=f"circuit-breaker-{self.name}",
                message=f"Circuit breaker opened after {self._failure_count} failures",
                error_type="CircuitOpened",
                metadata={
                    "failure_threshold": self.failure_threshold,
                    "open_timeout": self.open_timeout,
                    "next_attempt_time": self._next_attempt_time.isoformat(),
                },
            )
        )

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state

        if new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._last_failure_time = None
            self._next_attempt_time = None
            self._probe_in_flight = False

        if old_state != new_state:
            logger.info(
                "circuit_state_changed",
                breaker=self.name,
                from_state=old_state.value,
                to_state=new_state.value,
                failure_count=self._failure_count,
            )

    def _record(self, record: FailureRecord) -> None:
        if self._on_failure is not None:
            self._on_failure(record)
