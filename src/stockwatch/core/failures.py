"""Failure recorders: where ``FailureRecord``s go.

Components accept any ``FailureRecorder`` (a plain callable). Two are
provided:

- ``log_failure`` renders a record as a structlog warning/error event.
- ``FailureTally`` counts records by category and by calendar day, for a
  daily error summary.

``fan_out`` combines several recorders into one.

Example::

    tally = FailureTally()
    recorder = fan_out(log_failure, tally)
    executor = RetryExecutor(policy, on_failure=recorder)
    ...
    print(tally.daily_summary(date.today()).text)
"""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime

from stockwatch.core.errors import ErrorCategory, FailureRecord, FailureRecorder
from stockwatch.core.logging import get_logger

logger = get_logger(__name__)


def log_failure(record: FailureRecord) -> None:
    """Log a failure record. Final failures log at error level."""
    log = logger.error if record.final else logger.warning
    log("failure_recorded", **record.to_dict())


def fan_out(*recorders: FailureRecorder) -> FailureRecorder:
    """Return a recorder that forwards each record to every given recorder."""

    def _record(record: FailureRecord) -> None:
        for recorder in recorders:
            recorder(record)

    return _record


@dataclass(frozen=True)
class DailyFailureSummary:
    """Failure counts for one calendar day."""

    day: date
    total: int
    categories: dict[str, int]
    overall_total: int
    last_updated: datetime | None

    @property
    def text(self) -> str:
        lines = [
            f"Daily Error Summary - {self.day.isoformat()}",
            f"Total Errors Today: {self.total}",
            "Categories:",
        ]
        for category, count in sorted(self.categories.items()):
            lines.append(f"  - {category}: {count}")
        lines.append(f"Overall Total Errors: {self.overall_total}")
        lines.append(f"Last Updated: {self.last_updated.isoformat() if self.last_updated else 'never'}")
        return "\n".join(lines)


@dataclass
class FailureTally:
    """In-process failure statistics, fed by FailureRecords."""

    total: int = 0
    by_category: Counter[str] = field(default_factory=Counter)
    by_day: dict[date, Counter[str]] = field(default_factory=dict)
    last_updated: datetime | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __call__(self, record: FailureRecord) -> None:
        day = record.timestamp.date()
        with self._lock:
            self.total += 1
            self.by_category[record.category.value] += 1
            self.by_day.setdefault(day, Counter())[record.category.value] += 1
            self.last_updated = record.timestamp

    def count(self, category: ErrorCategory | None = None) -> int:
        """Total failures, optionally for a single category."""
        if category is None:
            return self.total
        return self.by_category[category.value]

    def daily_summary(self, day: date) -> DailyFailureSummary:
        with self._lock:
            categories = dict(self.by_day.get(day, Counter()))
            return DailyFailureSummary(
                day=day,
                total=sum(categories.values()),
                categories=categories,
                overall_total=self.total,
                last_updated=self.last_updated,
            )
