"""
Collaborator protocols and data classes.

The workflows never fetch pages, write files, or talk SMTP themselves. They
are handed three collaborators:

- ``ConditionProbe``: checks the monitored resource
- ``CheckStore``: persists check records and reads them back by time range
- ``NotificationSender``: delivers an already-rendered notification

``InMemoryCheckStore`` and ``LoggingSender`` are small in-process
implementations for development and tests.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from stockwatch.core.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


# ── Data classes ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one probe of the monitored resource.

    A result with ``error`` set is a failed probe; ``value`` is then
    meaningless.
    """

    value: bool
    timestamp: datetime = field(default_factory=utcnow)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class CheckRecord:
    """One persisted check. ``condition`` is None when the probe failed."""

    condition: bool | None
    timestamp: datetime
    source: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "condition": self.condition,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "error": self.error,
        }


class NotificationKind(str, Enum):
    ALERT = "alert"
    REPORT = "report"


@dataclass(frozen=True)
class Notification:
    """Rendered content ready for a sender."""

    kind: NotificationKind
    subject: str
    body: str
    metadata: dict[str, Any] = field(default_factory=dict)


# ── Protocols ────────────────────────────────────────────────────────────


@runtime_checkable
class ConditionProbe(Protocol):
    """Async callable that checks the monitored resource.

    May raise on network failure, or return a ``ProbeResult`` with
    ``error`` set.
    """

    async def __call__(self) -> ProbeResult: ...


@runtime_checkable
class CheckStore(Protocol):
    """Durable sink for check records."""

    async def append(self, record: CheckRecord) -> None:
        """Persist one record."""
        ...

    async def read_range(self, start: datetime, end: datetime) -> list[CheckRecord]:
        """Records with ``start <= timestamp < end``, oldest first."""
        ...


@runtime_checkable
class NotificationSender(Protocol):
    """Delivers notifications. Raises on failure."""

    async def send(self, notification: Notification) -> None: ...


@dataclass
class Collaborators:
    """The three collaborators plus the source identifier for records."""

    probe: ConditionProbe
    store: CheckStore
    sender: NotificationSender
    source: str = "stockwatch"


# ── In-process implementations ───────────────────────────────────────────


class InMemoryCheckStore:
    """Thread-safe list-backed ``CheckStore``."""

    def __init__(self, records: list[CheckRecord] | None = None):
        self._records: list[CheckRecord] = list(records or [])
        self._lock = threading.Lock()

    async def append(self, record: CheckRecord) -> None:
        with self._lock:
            self._records.append(record)

    async def read_range(self, start: datetime, end: datetime) -> list[CheckRecord]:
        with self._lock:
            selected = [r for r in self._records if start <= r.timestamp < end]
        return sorted(selected, key=lambda r: r.timestamp)

    @property
    def records(self) -> list[CheckRecord]:
        with self._lock:
            return list(self._records)


class LoggingSender:
    """``NotificationSender`` that logs instead of sending (for development)."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)
        logger.info(
            "notification_logged",
            kind=notification.kind.value,
            subject=notification.subject,
            body=notification.body,
        )


__all__ = [
    "CheckRecord",
    "CheckStore",
    "Collaborators",
    "ConditionProbe",
    "InMemoryCheckStore",
    "LoggingSender",
    "Notification",
    "NotificationKind",
    "NotificationSender",
    "ProbeResult",
]
