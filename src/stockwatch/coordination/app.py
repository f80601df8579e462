"""MonitorApp: one explicitly constructed container per process.

Builds the coordinator, the notification breaker, both retry executors, the
delivery queue, the health registry, and the workflows from ``Settings`` and
``Collaborators``. Nothing here is a module-level singleton; create one
``MonitorApp`` at startup and hand it to the scheduler or CLI.

Example:
    >>> app = MonitorApp(collaborators, settings=get_settings())
    >>> await app.restore_from_store()
    >>> outcome = await app.workflows.run_check_workflow()
    >>> await app.shutdown()
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from stockwatch.coordination.collaborators import Collaborators
from stockwatch.coordination.reports import status_label
from stockwatch.coordination.state import ApplicationStateCoordinator
from stockwatch.coordination.workflows import MonitorWorkflows
from stockwatch.core.errors import ErrorCategory, FailureRecord, FailureRecorder
from stockwatch.core.failures import FailureTally, fan_out, log_failure
from stockwatch.core.logging import get_logger
from stockwatch.core.settings import Settings, get_settings
from stockwatch.execution.circuit_breaker import CircuitBreaker
from stockwatch.execution.delivery import DeliveryQueue
from stockwatch.execution.health import HealthRegistry
from stockwatch.execution.health_checks import (
    circuit_breaker_check,
    coordinator_check,
    delivery_queue_check,
    http_check,
)
from stockwatch.execution.retry import RetryExecutor, RetryPolicy

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class MonitorApp:
    """Wires the resilience components around one set of collaborators."""

    def __init__(
        self,
        collaborators: Collaborators,
        settings: Settings | None = None,
        *,
        on_failure: FailureRecorder | None = None,
        **workflow_kwargs: Any,
    ):
        self.settings = settings or get_settings()
        self.collaborators = collaborators
        self.failures = FailureTally()
        recorder = fan_out(on_failure or log_failure, self.failures)
        s = self.settings

        self.coordinator = ApplicationStateCoordinator()
        self.breaker = CircuitBreaker(
            "notifications",
            failure_threshold=s.breaker_failure_threshold,
            open_timeout=s.breaker_open_timeout,
            on_failure=recorder,
        )
        self.probe_retry = RetryExecutor(
            RetryPolicy(
                max_attempts=s.probe_max_attempts,
                base_delay=s.probe_base_delay,
                max_delay=s.probe_max_delay,
                backoff_factor=s.probe_backoff_factor,
                category=ErrorCategory.NETWORK,
                context="probe",
            ),
            on_failure=recorder,
        )
        self.send_retry = RetryExecutor(
            RetryPolicy(
                max_attempts=s.send_max_attempts,
                base_delay=s.send_base_delay,
                max_delay=s.send_max_delay,
                backoff_factor=s.send_backoff_factor,
                category=ErrorCategory.EMAIL,
                context="email",
            ),
            on_failure=recorder,
        )
        self.queue = DeliveryQueue(
            max_queue_size=s.queue_max_size,
            max_attempts=s.queue_max_attempts,
            inter_item_delay=s.queue_inter_item_delay,
            on_failure=recorder,
        )
        self.health = self._build_health()
        self.workflows = MonitorWorkflows(
            self.coordinator,
            collaborators,
            probe_retry=self.probe_retry,
            send_retry=self.send_retry,
            breaker=self.breaker,
            queue=self.queue,
            settings=s,
            on_failure=recorder,
            **workflow_kwargs,
        )
        self._recorder = recorder

    def _build_health(self) -> HealthRegistry:
        s = self.settings
        registry = HealthRegistry()
        registry.register("email-circuit-breaker", circuit_breaker_check(self.breaker), timeout=s.health_check_timeout)
        registry.register(
            "application-state",
            coordinator_check(self.coordinator, s.max_consecutive_failures),
            timeout=s.health_check_timeout,
        )
        registry.register("delivery-queue", delivery_queue_check(self.queue), timeout=s.health_check_timeout)
        if s.health_network_url:
            registry.register("network", http_check(s.health_network_url), timeout=s.health_check_timeout)
        return registry

    async def restore_from_store(self) -> bool | None:
        """Seed the last observed condition from recent history.

        One-shot runs start with an empty coordinator; without this, the
        first successful probe after a restart could never be a transition.
        Returns the restored condition (None when nothing usable was found).
        """
        end = utcnow()
        start = end - timedelta(hours=self.settings.restore_window_hours)
        try:
            records = await self.collaborators.store.read_range(start, end + timedelta(seconds=1))
        except Exception as e:
            self.coordinator.record_error(ErrorCategory.DATA)
            self._recorder(FailureRecord.from_exception(e, category=ErrorCategory.DATA, context="restore-state"))
            return None

        usable = [r for r in records if r.condition is not None and r.error is None]
        if not usable:
            logger.info("restore_skipped", records=len(records))
            return None

        latest = max(usable, key=lambda r: r.timestamp)
        self.coordinator.restore(latest.condition, latest.timestamp)
        logger.info("state_restored", status=status_label(latest), at=latest.timestamp.isoformat())
        return latest.condition

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Wait for an in-flight check, clear the gate, and finish queued deliveries."""
        idle = await self.coordinator.wait_until_idle(timeout=timeout)
        if not idle:
            logger.warning("shutdown_check_still_running", timeout=timeout)
        self.coordinator.force_release()
        await self.queue.join()
        logger.info("shutdown_complete", queued=len(self.queue), failures=self.failures.total)

    def status(self) -> dict[str, Any]:
        return {
            "state": self.coordinator.snapshot().to_dict(),
            "breaker": self.breaker.status().to_dict(),
            "queue": self.queue.status(),
            "health": self.health.status(),
            "failures": {"total": self.failures.total, "by_category": dict(self.failures.by_category)},
        }


__all__ = ["MonitorApp"]
