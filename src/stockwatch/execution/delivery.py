"""Bounded delivery queue for notifications that failed to send.

When an alert cannot be delivered right away (email API down, breaker open),
the workflow parks it here. ``drain`` retries queued items in FIFO order; an
item that fails again goes to the tail, and an item that has used up its
attempts is dropped with a failure record.

Capacity policy is drop-oldest: enqueuing into a full queue evicts the item
at the head.

Example:
    >>> queue = DeliveryQueue(max_queue_size=50, auto_drain=False)
    >>> queue.enqueue("Stock alert: Nintendo Switch 2", lambda: sender.send(alert))
    >>> report = await queue.drain()
    >>> report.delivered
    1
"""

from __future__ import annotations

import asyncio
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from stockwatch.core.errors import FailureRecord, FailureRecorder, PermanentDeliveryFailure
from stockwatch.core.logging import get_logger

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(eq=False)
class DeliveryItem:
    """One queued delivery.

    ``action`` is the zero-argument coroutine function that performs the
    delivery; it is called once per attempt.
    """

    description: str
    action: Callable[[], Awaitable[Any]] = field(repr=False)
    max_attempts: int = 3
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    enqueued_at: datetime = field(default_factory=utcnow)
    attempts: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "enqueued_at": self.enqueued_at.isoformat(),
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "last_error": self.last_error,
        }


@dataclass
class DrainReport:
    """What one drain pass did."""

    delivered: int = 0
    requeued: int = 0
    dropped: int = 0
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "delivered": self.delivered,
            "requeued": self.requeued,
            "dropped": self.dropped,
            "skipped": self.skipped,
        }


class DeliveryQueue:
    """FIFO retry queue with drop-oldest capacity and tail requeue."""

    def __init__(
        self,
        max_queue_size: int = 100,
        max_attempts: int = 3,
        inter_item_delay: float = 1.0,
        *,
        auto_drain: bool = True,
        on_failure: FailureRecorder | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.max_queue_size = max_queue_size
        self.max_attempts = max_attempts
        self.inter_item_delay = inter_item_delay
        self.auto_drain = auto_drain
        self._on_failure = on_failure
        self._sleep = sleep

        self._items: deque[DeliveryItem] = deque()
        self._processing = False
        self._evicted = 0
        self._drain_task: asyncio.Task[DrainReport] | None = None

    def __len__(self) -> int:
        return len(self._items)

    @property
    def processing(self) -> bool:
        return self._processing

    @property
    def items(self) -> list[DeliveryItem]:
        """Pending items, head first (a copy)."""
        return list(self._items)

    def enqueue(
        self,
        description: str,
        action: Callable[[], Awaitable[Any]],
        *,
        max_attempts: int | None = None,
    ) -> DeliveryItem:
        """Add a delivery to the tail, evicting the oldest item when full."""
        if len(self._items) >= self.max_queue_size:
            evicted = self._items.popleft()
            self._evicted += 1
            logger.warning(
                "delivery_evicted",
                item_id=evicted.id,
                description=evicted.description,
                max_queue_size=self.max_queue_size,
            )

        item = DeliveryItem(
            description=description,
            action=action,
            max_attempts=max_attempts or self.max_attempts,
        )
        self._items.append(item)
        logger.info("delivery_queued", item_id=item.id, description=description, queue_size=len(self._items))

        if self.auto_drain and not self._processing:
            self._schedule_drain()
        return item

    async def drain(self) -> DrainReport:
        """Deliver queued items until the queue is empty.

        Only one drain runs at a time; a concurrent call returns a report
        with ``skipped=True`` without touching the queue.
        """
        if self._processing:
            return DrainReport(skipped=True)
        if not self._items:
            return DrainReport()

        self._processing = True
        report = DrainReport()
        logger.info("delivery_drain_started", queue_size=len(self._items))

        try:
            while self._items:
                item = self._items[0]
                try:
                    await item.action()
                except Exception as e:
                    self._handle_failure(item, e, report)
                else:
                    self._discard(item)
                    report.delivered += 1
                    logger.info("delivery_sent", item_id=item.id, description=item.description)

                if self._items and self.inter_item_delay > 0:
                    await self._sleep(self.inter_item_delay)
        finally:
            self._processing = False

        logger.info("delivery_drain_finished", **report.to_dict())
        return report

    async def join(self) -> None:
        """Wait for a scheduled background drain, if any."""
        task = self._drain_task
        if task is not None and not task.done():
            await task

    def status(self) -> dict[str, Any]:
        return {
            "size": len(self._items),
            "capacity": self.max_queue_size,
            "processing": self._processing,
            "evicted": self._evicted,
            "items": [item.to_dict() for item in self._items],
        }

    # ── internals ────────────────────────────────────────────────

    def _handle_failure(self, item: DeliveryItem, error: Exception, report: DrainReport) -> None:
        item.attempts += 1
        item.last_error = str(error)

        if item.attempts >= item.max_attempts:
            self._discard(item)
            report.dropped += 1
            failure = PermanentDeliveryFailure(item.description, item.attempts, cause=error)
            logger.error(
                "delivery_dropped",
                item_id=item.id,
                description=item.description,
                attempts=item.attempts,
                error=str(error),
            )
            if self._on_failure is not None:
                self._on_failure(
                    FailureRecord.from_exception(
                        failure,
                        context="delivery-queue-permanent-failure",
                        attempt=item.attempts,
                        max_attempts=item.max_attempts,
                        final=True,
                        metadata={
                            "description": item.description,
                            "enqueued_at": item.enqueued_at.isoformat(),
                            "last_error": item.last_error,
                        },
                    )
                )
            return

        # Move to the tail so one broken item does not block the rest
        if self._discard(item):
            self._items.append(item)
        report.requeued += 1
        logger.warning(
            "delivery_attempt_failed",
            item_id=item.id,
            description=item.description,
            attempt=item.attempts,
            max_attempts=item.max_attempts,
            error=str(error),
        )

    def _discard(self, item: DeliveryItem) -> bool:
        """Remove ``item`` wherever it is; False if it was evicted meanwhile."""
        try:
            self._items.remove(item)
        except ValueError:
            return False
        return True

    def _schedule_drain(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = loop.create_task(self.drain())
