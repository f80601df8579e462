"""Check and report workflows.

These are the two entry points a scheduler calls. Neither raises: every
failure ends up in the returned outcome (and in the failure recorder), so a
scheduled job never crashes because an email API was down.

Check workflow::

    try_enter_check ──(held)──► CheckOutcome(blocked=True)
          │
          ▼
    probe (RetryExecutor) ──(exhausted)──► record_probe_failure, store error record
          │
          ▼
    update_condition ──► store record ──► false→true? ──► breaker(retry(send))
                                                            │ (failed)
                                                            ▼
                                                      DeliveryQueue
    exit_check (always)

Report workflow: for yesterday (plus missed dates when catch-up is enabled),
skip dates already reported, read that day's records, compose, send through
breaker + retry, then ``mark_report_sent``. A failed read or send leaves the
date unmarked so the next run tries it again.
"""

from __future__ import annotations

import time as _time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from stockwatch.coordination import reports
from stockwatch.coordination.collaborators import CheckRecord, Collaborators, Notification, ProbeResult
from stockwatch.coordination.reports import ReportStats
from stockwatch.coordination.state import ApplicationStateCoordinator
from stockwatch.core.errors import (
    ErrorCategory,
    ErrorContext,
    FailureRecord,
    FailureRecorder,
    RetryExhaustedError,
    TransientFailure,
)
from stockwatch.core.failures import log_failure
from stockwatch.core.logging import LogContext, get_logger
from stockwatch.core.settings import Settings, get_settings
from stockwatch.execution.circuit_breaker import CircuitBreaker
from stockwatch.execution.delivery import DeliveryQueue
from stockwatch.execution.retry import RetryExecutor

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def _utc_today() -> date:
    return utcnow().date()


# ── Outcomes ─────────────────────────────────────────────────────────────


@dataclass
class CheckOutcome:
    """What one run of the check workflow did."""

    blocked: bool = False
    success: bool = False
    condition: bool | None = None
    previous: bool | None = None
    changed: bool = False
    alert_sent: bool = False
    alert_queued: bool = False
    record_stored: bool = False
    duration_ms: float = 0.0
    errors: list[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        if self.blocked:
            return "Check skipped: another check is in progress"
        if not self.success:
            return f"Check failed: {'; '.join(self.errors) or 'unknown error'}"
        status = "in stock" if self.condition else "out of stock"
        text = f"Check completed: {status}"
        if self.alert_sent:
            text += ", alert sent"
        elif self.alert_queued:
            text += ", alert queued for retry"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "blocked": self.blocked,
            "success": self.success,
            "condition": self.condition,
            "previous": self.previous,
            "changed": self.changed,
            "alert_sent": self.alert_sent,
            "alert_queued": self.alert_queued,
            "record_stored": self.record_stored,
            "duration_ms": self.duration_ms,
            "errors": list(self.errors),
            "summary": self.summary,
        }


@dataclass
class ReportOutcome:
    """What the report workflow did for one date."""

    day: date
    sent: bool = False
    already_sent: bool = False
    blocked: bool = False
    stats: ReportStats | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.sent or self.already_sent

    @property
    def summary(self) -> str:
        if self.already_sent:
            return f"Report for {self.day.isoformat()} already sent"
        if self.blocked:
            return f"Report for {self.day.isoformat()} is being sent by another run"
        if self.sent:
            return f"Report for {self.day.isoformat()} sent"
        return f"Report for {self.day.isoformat()} failed: {'; '.join(self.errors) or 'unknown error'}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "day": self.day.isoformat(),
            "sent": self.sent,
            "already_sent": self.already_sent,
            "blocked": self.blocked,
            "success": self.success,
            "stats": self.stats.to_dict() if self.stats else None,
            "errors": list(self.errors),
            "summary": self.summary,
        }


# ── Workflows ────────────────────────────────────────────────────────────


class MonitorWorkflows:
    """Runs the check and report workflows against injected collaborators."""

    def __init__(
        self,
        coordinator: ApplicationStateCoordinator,
        collaborators: Collaborators,
        *,
        probe_retry: RetryExecutor,
        send_retry: RetryExecutor,
        breaker: CircuitBreaker,
        queue: DeliveryQueue,
        settings: Settings | None = None,
        compose_alert: Callable[..., Notification] = reports.compose_alert,
        compose_report: Callable[..., Notification] = reports.compose_report,
        today: Callable[[], date] = _utc_today,
        on_failure: FailureRecorder = log_failure,
    ):
        self.coordinator = coordinator
        self.collaborators = collaborators
        self.probe_retry = probe_retry
        self.send_retry = send_retry
        self.breaker = breaker
        self.queue = queue
        self.settings = settings or get_settings()
        self._compose_alert = compose_alert
        self._compose_report = compose_report
        self._today = today
        self._on_failure = on_failure

    # ── check ────────────────────────────────────────────────────

    async def run_check_workflow(self) -> CheckOutcome:
        """Probe once (with retry), record, and alert on a false → true transition."""
        outcome = CheckOutcome()

        if not self.coordinator.try_enter_check():
            outcome.blocked = True
            logger.info("check_skipped", reason="check already in progress")
            return outcome

        start = _time.monotonic()
        try:
            async with LogContext(workflow="check", source=self.collaborators.source):
                await self._check(outcome)
        finally:
            self.coordinator.exit_check()
            outcome.duration_ms = round((_time.monotonic() - start) * 1000, 2)

        logger.info("check_finished", **outcome.to_dict())
        return outcome

    async def _check(self, outcome: CheckOutcome) -> None:
        source = self.collaborators.source
        try:
            probe = await self.probe_retry.execute(self._probe_once)
        except RetryExhaustedError as e:
            self.coordinator.record_probe_failure()
            outcome.errors.append(str(e))
            await self._store(
                CheckRecord(condition=None, timestamp=utcnow(), source=source, error=str(e.last_error)),
                outcome,
            )
            return

        update = self.coordinator.update_condition(probe.value, probe.timestamp)
        outcome.success = True
        outcome.condition = update.current
        outcome.previous = update.previous
        outcome.changed = update.changed

        await self._store(CheckRecord(condition=probe.value, timestamp=probe.timestamp, source=source), outcome)

        if update.became_available:
            notification = self._compose_alert(
                self.settings.product_name,
                update.at,
                self.settings.product_url or None,
            )
            await self._send_alert(notification, outcome)

    async def _probe_once(self) -> ProbeResult:
        result = await self.collaborators.probe()
        if result.error is not None:
            raise TransientFailure(
                result.error,
                context=ErrorContext(workflow="check", operation="probe", source=self.collaborators.source),
            )
        return result

    async def _store(self, record: CheckRecord, outcome: CheckOutcome) -> None:
        try:
            await self.collaborators.store.append(record)
        except Exception as e:
            self._fail(e, ErrorCategory.DATA, "check-record-store")
            outcome.errors.append(f"store: {e}")
            return
        outcome.record_stored = True

    async def _send_alert(self, notification: Notification, outcome: CheckOutcome) -> None:
        try:
            await self._deliver(notification)
        except Exception as e:
            self._fail(e, ErrorCategory.EMAIL, "email-resilience-alert", breaker_state=self.breaker.state.value)
            outcome.errors.append(f"alert: {e}")
            self.queue.enqueue(notification.subject, self._queued_send(notification))
            outcome.alert_queued = True
            return
        outcome.alert_sent = True

    # ── report ───────────────────────────────────────────────────

    async def run_report_workflow(self, day: date | None = None) -> list[ReportOutcome]:
        """Send the daily report for ``day`` (default: yesterday).

        With ``report_catch_up_days > 0`` and no explicit ``day``, dates
        missed since the last reported one are sent first, oldest first.
        """
        days = [day] if day is not None else self._report_days()
        outcomes: list[ReportOutcome] = []
        async with LogContext(workflow="report"):
            for target in days:
                outcome = await self._report_for(target)
                logger.info("report_finished", **outcome.to_dict())
                outcomes.append(outcome)
        return outcomes

    def _report_days(self) -> list[date]:
        target = self._today() - timedelta(days=1)
        catch_up = self.settings.report_catch_up_days
        last = self.coordinator.snapshot().last_report_date

        if catch_up <= 0 or last is None or last >= target:
            return [target]

        first = max(last + timedelta(days=1), target - timedelta(days=catch_up))
        return [first + timedelta(days=offset) for offset in range((target - first).days + 1)]

    async def _report_for(self, day: date) -> ReportOutcome:
        outcome = ReportOutcome(day=day)

        if not self.coordinator.try_begin_report(day):
            if self.coordinator.is_report_sent(day):
                outcome.already_sent = True
            else:
                outcome.blocked = True
            return outcome

        try:
            records = await self._read_day(day, outcome)
            if records is None:
                return outcome
            outcome.stats = ReportStats.from_records(day, records)
            notification = self._compose_report(outcome.stats, self.settings.product_name)
            try:
                await self._deliver(notification)
            except Exception as e:
                self._fail(e, ErrorCategory.EMAIL, "email-resilience-report", day=day.isoformat())
                outcome.errors.append(f"send: {e}")
                return outcome

            self.coordinator.mark_report_sent(day)
            outcome.sent = True
        finally:
            self.coordinator.end_report(day)
        return outcome

    async def _read_day(self, day: date, outcome: ReportOutcome) -> list[CheckRecord] | None:
        start = datetime.combine(day, time.min, tzinfo=UTC)
        try:
            return await self.collaborators.store.read_range(start, start + timedelta(days=1))
        except Exception as e:
            self._fail(e, ErrorCategory.DATA, "report-read-records", day=day.isoformat())
            outcome.errors.append(f"read: {e}")
            return None

    # ── delivery ─────────────────────────────────────────────────

    async def _deliver(self, notification: Notification) -> None:
        sender = self.collaborators.sender

        async def _send_with_retry() -> None:
            await self.send_retry.execute(lambda: sender.send(notification))

        await self.breaker.execute(_send_with_retry)

    def _queued_send(self, notification: Notification) -> Callable[[], Any]:
        sender = self.collaborators.sender

        async def _send() -> None:
            await self.breaker.execute(lambda: sender.send(notification))

        return _send

    def _fail(self, error: Exception, category: ErrorCategory, context: str, **metadata: Any) -> None:
        self.coordinator.record_error(category)
        self._on_failure(FailureRecord.from_exception(error, category=category, context=context, metadata=metadata))


__all__ = [
    "CheckOutcome",
    "MonitorWorkflows",
    "ReportOutcome",
]
