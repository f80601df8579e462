"""Application state and the coordinator that owns it.

``ApplicationStateCoordinator`` is the only writer of the monitor's shared
state: the last observed condition, the check-in-progress gate, and the set of
dates that already received a daily report. Build one per process and pass it
to whatever needs it.

Every method is synchronous and takes the internal lock for the duration of
the read or mutation. There is no ``await`` between testing the gate and
setting it, so ``try_enter_check`` is an atomic test-and-set whether callers
are coroutines on one loop or threads.

Example::

    coordinator = ApplicationStateCoordinator()

    async def run_check() -> None:
        with coordinator.check_slot() as acquired:
            if not acquired:
                return  # another check is running
            probe = await fetch_availability()
            update = coordinator.update_condition(probe.value)
            if update.became_available:
                await send_alert()
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from stockwatch.core.errors import ConcurrencyRejected, ErrorCategory, ErrorContext
from stockwatch.core.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class ApplicationState:
    """Read-only snapshot of the coordinator's state."""

    last_observed_condition: bool | None = None
    last_check_time: datetime | None = None
    check_in_progress: bool = False
    last_report_date: date | None = None
    check_count: int = 0
    last_state_update: datetime | None = None
    consecutive_failures: int = 0
    error_count: int = 0
    last_error_time: datetime | None = None
    reported_dates: frozenset[date] = field(default_factory=frozenset)

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_observed_condition": self.last_observed_condition,
            "last_check_time": self.last_check_time.isoformat() if self.last_check_time else None,
            "check_in_progress": self.check_in_progress,
            "last_report_date": self.last_report_date.isoformat() if self.last_report_date else None,
            "check_count": self.check_count,
            "last_state_update": self.last_state_update.isoformat() if self.last_state_update else None,
            "consecutive_failures": self.consecutive_failures,
            "error_count": self.error_count,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "reported_dates": sorted(d.isoformat() for d in self.reported_dates),
        }


@dataclass(frozen=True)
class ConditionUpdate:
    """Result of ``update_condition``: the value before and after."""

    previous: bool | None
    current: bool
    at: datetime
    check_count: int

    @property
    def changed(self) -> bool:
        return self.previous is not None and self.previous != self.current

    @property
    def became_available(self) -> bool:
        """True only on a false → true transition."""
        return self.previous is False and self.current is True


class ApplicationStateCoordinator:
    """Sole owner of ``ApplicationState``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

        self._condition: bool | None = None
        self._last_check_time: datetime | None = None
        self._check_in_progress = False
        self._check_started_at: float | None = None
        self._check_count = 0
        self._last_state_update: datetime | None = None
        self._consecutive_failures = 0
        self._error_count = 0
        self._last_error_time: datetime | None = None
        self._reported_dates: set[date] = set()
        self._reports_in_flight: set[date] = set()

    # ── check gate ───────────────────────────────────────────────

    def try_enter_check(self) -> bool:
        """Claim the check slot. Returns False at once if it is held."""
        with self._lock:
            if self._check_in_progress:
                return False
            self._check_in_progress = True
            self._check_started_at = time.monotonic()
            return True

    def exit_check(self) -> None:
        """Release the check slot. Call once per successful ``try_enter_check``."""
        with self._lock:
            self._check_in_progress = False
            self._check_started_at = None

    @contextmanager
    def check_slot(self) -> Iterator[bool]:
        """Yield whether the slot was acquired; release on exit only if it was."""
        acquired = self.try_enter_check()
        try:
            yield acquired
        finally:
            if acquired:
                self.exit_check()

    @contextmanager
    def require_check_slot(self, workflow: str = "check") -> Iterator[None]:
        """Like ``check_slot`` but raises ``ConcurrencyRejected`` when held."""
        if not self.try_enter_check():
            raise ConcurrencyRejected(
                "A check is already in progress",
                context=ErrorContext(workflow=workflow),
            )
        try:
            yield
        finally:
            self.exit_check()

    def force_release(self) -> bool:
        """Clear a stuck in-progress flag. Returns True if it was set."""
        with self._lock:
            was_set = self._check_in_progress
            held_for = time.monotonic() - self._check_started_at if self._check_started_at is not None else None
            self._check_in_progress = False
            self._check_started_at = None
        if was_set:
            logger.warning("check_slot_force_released", held_seconds=round(held_for or 0.0, 2))
        return was_set

    async def wait_until_idle(self, timeout: float = 30.0, poll_interval: float = 0.1) -> bool:
        """Wait for an in-flight check to finish. Returns False on timeout."""
        deadline = time.monotonic() + timeout
        while self.snapshot().check_in_progress:
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(poll_interval)
        return True

    # ── condition ────────────────────────────────────────────────

    def update_condition(self, value: bool, at: datetime | None = None) -> ConditionUpdate:
        """Record an observed condition and return the one it replaced."""
        at = at or utcnow()
        with self._lock:
            previous = self._condition
            self._condition = value
            self._last_check_time = at
            self._last_state_update = at
            self._check_count += 1
            self._consecutive_failures = 0
            update = ConditionUpdate(previous=previous, current=value, at=at, check_count=self._check_count)

        if update.changed:
            logger.info("condition_changed", previous=previous, current=value, check_count=update.check_count)
        return update

    def record_probe_failure(self, at: datetime | None = None) -> int:
        """Count a failed probe. The last observed condition is left as is."""
        at = at or utcnow()
        with self._lock:
            self._consecutive_failures += 1
            self._error_count += 1
            self._last_check_time = at
            self._last_error_time = at
            return self._consecutive_failures

    def record_error(self, category: ErrorCategory, at: datetime | None = None) -> int:
        """Count a non-probe error (store write, send). Returns the total."""
        at = at or utcnow()
        with self._lock:
            self._error_count += 1
            self._last_error_time = at
            total = self._error_count
        logger.debug("error_counted", category=category.value, error_count=total)
        return total

    def restore(self, condition: bool | None, at: datetime | None = None) -> None:
        """Seed the last observed condition, e.g. from persisted history.

        ``check_count`` is left untouched; restoring is not a check.
        """
        with self._lock:
            self._condition = condition
            if at is not None:
                self._last_check_time = at
                self._last_state_update = at
        logger.info("condition_restored", condition=condition, at=at.isoformat() if at else None)

    # ── daily report idempotence ─────────────────────────────────

    def is_report_sent(self, day: date) -> bool:
        with self._lock:
            return day in self._reported_dates

    def mark_report_sent(self, day: date) -> None:
        with self._lock:
            self._reported_dates.add(day)
            self._reports_in_flight.discard(day)
            self._last_state_update = utcnow()

    def try_begin_report(self, day: date) -> bool:
        """Claim ``day`` for sending. False if already sent or being sent."""
        with self._lock:
            if day in self._reported_dates or day in self._reports_in_flight:
                return False
            self._reports_in_flight.add(day)
            return True

    def end_report(self, day: date) -> None:
        """Drop the claim on ``day`` (whether or not it was sent)."""
        with self._lock:
            self._reports_in_flight.discard(day)

    # ── reads ────────────────────────────────────────────────────

    def snapshot(self) -> ApplicationState:
        with self._lock:
            return ApplicationState(
                last_observed_condition=self._condition,
                last_check_time=self._last_check_time,
                check_in_progress=self._check_in_progress,
                last_report_date=max(self._reported_dates) if self._reported_dates else None,
                check_count=self._check_count,
                last_state_update=self._last_state_update,
                consecutive_failures=self._consecutive_failures,
                error_count=self._error_count,
                last_error_time=self._last_error_time,
                reported_dates=frozenset(self._reported_dates),
            )


__all__ = [
    "ApplicationState",
    "ApplicationStateCoordinator",
    "ConditionUpdate",
]
