"""Tests for ApplicationStateCoordinator."""

import ast
import asyncio
import dataclasses
import textwrap
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, date, datetime, timedelta

import pytest

from stockwatch.core.errors import ConcurrencyRejected, ErrorCategory
from stockwatch.coordination.collaborators import ProbeResult
from stockwatch.coordination.state import ApplicationStateCoordinator

T1 = datetime(2026, 6, 1, 9, 0, tzinfo=UTC)
T2 = T1 + timedelta(minutes=5)


class TestCheckGate:
    """Tests for the mutual-exclusion gate."""

    @pytest.mark.asyncio
    async def test_concurrent_coroutines_one_winner(self):
        """Of N concurrent try_enter_check calls exactly one succeeds."""
        coordinator = ApplicationStateCoordinator()

        async def attempt() -> bool:
            await asyncio.sleep(0)
            return coordinator.try_enter_check()

        results = await asyncio.gather(*[attempt() for _ in range(50)])

        assert results.count(True) == 1
        assert results.count(False) == 49

    def test_concurrent_threads_one_winner(self):
        coordinator = ApplicationStateCoordinator()
        barrier = threading.Barrier(16)

        def attempt() -> bool:
            barrier.wait()
            return coordinator.try_enter_check()

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: attempt(), range(16)))

        assert results.count(True) == 1

    def test_exit_releases(self):
        coordinator = ApplicationStateCoordinator()
        assert coordinator.try_enter_check() is True
        assert coordinator.try_enter_check() is False
        coordinator.exit_check()
        assert coordinator.try_enter_check() is True

    def test_check_slot_releases_on_error(self):
        coordinator = ApplicationStateCoordinator()
        with pytest.raises(RuntimeError):
            with coordinator.check_slot() as acquired:
                assert acquired is True
                raise RuntimeError("probe crashed")
        assert coordinator.snapshot().check_in_progress is False

    def test_check_slot_does_not_release_foreign_hold(self):
        """A caller that did not acquire must not clear someone else's slot."""
        coordinator = ApplicationStateCoordinator()
        coordinator.try_enter_check()

        with coordinator.check_slot() as acquired:
            assert acquired is False

        assert coordinator.snapshot().check_in_progress is True

    def test_require_check_slot_raises_when_held(self):
        coordinator = ApplicationStateCoordinator()
        coordinator.try_enter_check()
        with pytest.raises(ConcurrencyRejected) as exc_info:
            with coordinator.require_check_slot():
                pass
        assert exc_info.value.context.workflow == "check"

    def test_require_check_slot_releases(self):
        coordinator = ApplicationStateCoordinator()
        with coordinator.require_check_slot():
            assert coordinator.snapshot().check_in_progress is True
        assert coordinator.snapshot().check_in_progress is False

    def test_force_release(self):
        coordinator = ApplicationStateCoordinator()
        assert coordinator.force_release() is False
        coordinator.try_enter_check()
        assert coordinator.force_release() is True
        assert coordinator.try_enter_check() is True

    @pytest.mark.asyncio
    async def test_wait_until_idle(self):
        coordinator = ApplicationStateCoordinator()
        assert await coordinator.wait_until_idle(timeout=0.1) is True

        coordinator.try_enter_check()
        assert await coordinator.wait_until_idle(timeout=0.05, poll_interval=0.01) is False

        async def release_soon() -> None:
            await asyncio.sleep(0.02)
            coordinator.exit_check()

        task = asyncio.create_task(release_soon())
        assert await coordinator.wait_until_idle(timeout=1.0, poll_interval=0.01) is True
        await task


class TestCondition:
    """Tests for update_condition and failure counters."""

    def test_status_change_detection(self):
        """false then true reports previous=False, current=True."""
        coordinator = ApplicationStateCoordinator()
        first = coordinator.update_condition(False, T1)
        second = coordinator.update_condition(True, T2)

        assert first.previous is None
        assert first.changed is False
        assert first.became_available is False

        assert second.previous is False
        assert second.current is True
        assert second.changed is True
        assert second.became_available is True
        assert second.check_count == 2

        state = coordinator.snapshot()
        assert state.last_observed_condition is True
        assert state.last_check_time == T2
        assert state.check_count == 2

    def test_true_to_false_is_change_but_not_availability(self):
        coordinator = ApplicationStateCoordinator()
        coordinator.update_condition(True, T1)
        update = coordinator.update_condition(False, T2)
        assert update.changed is True
        assert update.became_available is False

    def test_no_change(self):
        coordinator = ApplicationStateCoordinator()
        coordinator.update_condition(False, T1)
        assert coordinator.update_condition(False, T2).changed is False

    def test_probe_failure_keeps_condition(self):
        coordinator = ApplicationStateCoordinator()
        coordinator.update_condition(False, T1)
        assert coordinator.record_probe_failure(T2) == 1
        assert coordinator.record_probe_failure(T2) == 2

        state = coordinator.snapshot()
        assert state.last_observed_condition is False
        assert state.consecutive_failures == 2
        assert state.check_count == 1
        assert state.last_error_time == T2

        coordinator.update_condition(True, T2)
        assert coordinator.snapshot().consecutive_failures == 0

    def test_record_error(self):
        coordinator = ApplicationStateCoordinator()
        assert coordinator.record_error(ErrorCategory.DATA) == 1
        assert coordinator.record_error(ErrorCategory.EMAIL) == 2
        assert coordinator.snapshot().error_count == 2

    def test_restore_does_not_count_as_check(self):
        coordinator = ApplicationStateCoordinator()
        coordinator.restore(False, T1)
        state = coordinator.snapshot()
        assert state.last_observed_condition is False
        assert state.check_count == 0

        assert coordinator.update_condition(True, T2).became_available is True


class TestReportIdempotence:
    """Tests for date-keyed report tracking."""

    def test_mark_then_sent(self):
        coordinator = ApplicationStateCoordinator()
        day = date(2026, 6, 1)
        assert coordinator.is_report_sent(day) is False
        coordinator.mark_report_sent(day)
        assert coordinator.is_report_sent(day) is True
        assert coordinator.is_report_sent(day) is True
        assert coordinator.is_report_sent(date(2026, 6, 2)) is False

    def test_begin_report_claims_date(self):
        coordinator = ApplicationStateCoordinator()
        day = date(2026, 6, 1)
        assert coordinator.try_begin_report(day) is True
        assert coordinator.try_begin_report(day) is False

        coordinator.end_report(day)
        assert coordinator.try_begin_report(day) is True

        coordinator.mark_report_sent(day)
        coordinator.end_report(day)
        assert coordinator.try_begin_report(day) is False

    def test_last_report_date_is_latest(self):
        coordinator = ApplicationStateCoordinator()
        coordinator.mark_report_sent(date(2026, 6, 3))
        coordinator.mark_report_sent(date(2026, 6, 1))
        state = coordinator.snapshot()
        assert state.last_report_date == date(2026, 6, 3)
        assert state.reported_dates == frozenset({date(2026, 6, 1), date(2026, 6, 3)})


class TestSnapshot:
    def test_snapshot_is_read_only(self):
        state = ApplicationStateCoordinator().snapshot()
        with pytest.raises(dataclasses.FrozenInstanceError):
            state.check_count = 5

    def test_snapshot_is_a_copy(self):
        coordinator = ApplicationStateCoordinator()
        before = coordinator.snapshot()
        coordinator.update_condition(True, T1)
        assert before.check_count == 0
        assert coordinator.snapshot().check_count == 1

    def test_to_dict(self):
        coordinator = ApplicationStateCoordinator()
        coordinator.update_condition(True, T1)
        coordinator.mark_report_sent(date(2026, 6, 1))
        d = coordinator.snapshot().to_dict()
        assert d["last_observed_condition"] is True
        assert d["last_check_time"] == T1.isoformat()
        assert d["reported_dates"] == ["2026-06-01"]


class TestModuleExample:
    @pytest.mark.asyncio
    async def test_docstring_example_runs(self):
        """The usage example in the module docstring is valid, runnable code."""
        from stockwatch.coordination import state

        source = textwrap.dedent(state.__doc__.split("Example::", 1)[1])
        tree = ast.parse(source)

        results = iter([ProbeResult(value=False), ProbeResult(value=True)])
        alerts: list[bool] = []

        async def fetch_availability() -> ProbeResult:
            return next(results)

        async def send_alert() -> None:
            alerts.append(True)

        namespace = {
            "ApplicationStateCoordinator": ApplicationStateCoordinator,
            "fetch_availability": fetch_availability,
            "send_alert": send_alert,
        }
        exec(compile(tree, "state-example", "exec"), namespace)

        await namespace["run_check"]()
        await namespace["run_check"]()

        assert alerts == [True]
        assert namespace["coordinator"].snapshot().check_count == 2
