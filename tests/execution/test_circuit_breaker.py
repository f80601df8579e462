"""Tests for CircuitBreaker."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from stockwatch.core.errors import CircuitOpenRejected
from stockwatch.execution.circuit_breaker import CircuitBreaker, CircuitState

T0 = datetime(2026, 5, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def clock():
    """Patchable breaker clock; move it with ``clock.return_value = ...``."""
    fake = MagicMock(return_value=T0)
    with patch("stockwatch.execution.circuit_breaker.utcnow", fake):
        yield fake


class Operation:
    def __init__(self, fail: bool = True):
        self.fail = fail
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.fail:
            raise ConnectionError("email API down")
        return "sent"


async def _fail_times(breaker: CircuitBreaker, op: Operation, n: int) -> None:
    for _ in range(n):
        with pytest.raises(ConnectionError):
            await breaker.execute(op)


class TestCircuitBreaker:
    """Tests for state transitions."""

    @pytest.mark.asyncio
    async def test_starts_closed(self):
        breaker = CircuitBreaker("email")
        assert breaker.state == CircuitState.CLOSED
        assert await breaker.execute(Operation(fail=False)) == "sent"

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, clock):
        """Five consecutive failures open the breaker; the sixth call never runs."""
        breaker = CircuitBreaker("email", failure_threshold=5, open_timeout=60.0)
        op = Operation()

        await _fail_times(breaker, op, 4)
        assert breaker.state == CircuitState.CLOSED

        await _fail_times(breaker, op, 1)
        assert breaker.state == CircuitState.OPEN
        assert op.calls == 5

        with pytest.raises(CircuitOpenRejected) as exc_info:
            await breaker.execute(op)
        assert op.calls == 5
        assert exc_info.value.retry_after == 60
        assert exc_info.value.breaker == "email"

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self, clock):
        """After the timeout one call goes through; success closes and resets."""
        breaker = CircuitBreaker("email", failure_threshold=5, open_timeout=60.0)
        op = Operation()
        await _fail_times(breaker, op, 5)

        clock.return_value = T0 + timedelta(seconds=61)
        op.fail = False
        assert await breaker.execute(op) == "sent"

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_still_open_at_exact_deadline(self, clock):
        breaker = CircuitBreaker("email", failure_threshold=1, open_timeout=60.0)
        op = Operation()
        await _fail_times(breaker, op, 1)

        clock.return_value = T0 + timedelta(seconds=60)
        with pytest.raises(CircuitOpenRejected):
            await breaker.execute(op)
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_retry_after_counts_down(self, clock):
        breaker = CircuitBreaker("email", failure_threshold=1, open_timeout=300.0)
        await _fail_times(breaker, Operation(), 1)

        clock.return_value = T0 + timedelta(seconds=100.5)
        with pytest.raises(CircuitOpenRejected) as exc_info:
            await breaker.execute(Operation())
        assert exc_info.value.retry_after == 200

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, clock):
        breaker = CircuitBreaker("email", failure_threshold=2, open_timeout=60.0)
        op = Operation()
        await _fail_times(breaker, op, 2)

        later = T0 + timedelta(seconds=61)
        clock.return_value = later
        await _fail_times(breaker, op, 1)

        assert breaker.state == CircuitState.OPEN
        assert breaker.status().next_attempt_time == later + timedelta(seconds=60)

    @pytest.mark.asyncio
    async def test_half_open_allows_single_probe(self, clock):
        """Calls arriving while the probe is in flight are rejected."""
        breaker = CircuitBreaker("email", failure_threshold=1, open_timeout=60.0)
        await _fail_times(breaker, Operation(), 1)
        clock.return_value = T0 + timedelta(seconds=61)

        release = asyncio.Event()
        probe_calls = 0

        async def slow_probe() -> str:
            nonlocal probe_calls
            probe_calls += 1
            await release.wait()
            return "sent"

        probe = asyncio.create_task(breaker.execute(slow_probe))
        await asyncio.sleep(0)
        assert breaker.state == CircuitState.HALF_OPEN

        with pytest.raises(CircuitOpenRejected):
            await breaker.execute(slow_probe)

        release.set()
        assert await probe == "sent"
        assert probe_calls == 1
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_cancelled_half_open_call_releases_slot(self, clock):
        """A cancelled trial call leaves the breaker able to try again."""
        breaker = CircuitBreaker("email", failure_threshold=1, open_timeout=60.0)
        await _fail_times(breaker, Operation(), 1)
        clock.return_value = T0 + timedelta(seconds=61)

        async def hang() -> str:
            await asyncio.Event().wait()
            return "never"

        trial = asyncio.create_task(breaker.execute(hang))
        await asyncio.sleep(0)
        assert breaker.state == CircuitState.HALF_OPEN

        trial.cancel()
        with pytest.raises(asyncio.CancelledError):
            await trial
        assert breaker.state == CircuitState.OPEN

        clock.return_value = T0 + timedelta(hours=24)
        assert await breaker.execute(Operation(fail=False)) == "sent"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_success_resets_failure_count_when_closed(self):
        """Failures must be consecutive to open the breaker."""
        breaker = CircuitBreaker("email", failure_threshold=5)
        op = Operation()
        await _fail_times(breaker, op, 4)

        op.fail = False
        await breaker.execute(op)
        assert breaker.failure_count == 0

        op.fail = True
        await _fail_times(breaker, op, 4)
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_operation_error_propagates_unchanged(self):
        breaker = CircuitBreaker("email")

        async def boom():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            await breaker.execute(boom)

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            CircuitBreaker("x", failure_threshold=0)
        with pytest.raises(ValueError):
            CircuitBreaker("x", open_timeout=0)


class TestCircuitBreakerStatus:
    """Tests for status reporting and maintenance operations."""

    @pytest.mark.asyncio
    async def test_counters_and_failure_rate(self):
        breaker = CircuitBreaker("email", failure_threshold=5)
        await _fail_times(breaker, Operation(), 1)
        await breaker.execute(Operation(fail=False))

        status = breaker.status()
        assert status.total_requests == 2
        assert status.failed_requests == 1
        assert status.success_count == 1
        assert status.failure_rate == 50.0
        assert status.to_dict()["failure_rate"] == "50.00%"
        assert status.to_dict()["state"] == "closed"

    @pytest.mark.asyncio
    async def test_rejections_are_counted(self, clock):
        breaker = CircuitBreaker("email", failure_threshold=1)
        await _fail_times(breaker, Operation(), 1)
        with pytest.raises(CircuitOpenRejected):
            await breaker.execute(Operation())
        status = breaker.status()
        assert status.rejected_requests == 1
        assert status.total_requests == 2

    def test_empty_failure_rate(self):
        assert CircuitBreaker("email").status().failure_rate == 0.0

    @pytest.mark.asyncio
    async def test_force_open_and_reset(self, clock):
        breaker = CircuitBreaker("email")
        breaker.force_open()
        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenRejected):
            await breaker.execute(Operation(fail=False))

        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.status().next_attempt_time is None
        assert await breaker.execute(Operation(fail=False)) == "sent"

    @pytest.mark.asyncio
    async def test_failure_records(self, clock, failures):
        """Opening and rejecting both emit records."""
        breaker = CircuitBreaker("email", failure_threshold=2, on_failure=failures.append)
        await _fail_times(breaker, Operation(), 2)
        with pytest.raises(CircuitOpenRejected):
            await breaker.execute(Operation())

        assert [r.error_type for r in failures] == ["CircuitOpened", "CircuitOpenRejected"]
        assert all(r.context == "circuit-breaker-email" for r in failures)
        assert failures[1].metadata["wait_time"] == 60
