"""Daily report statistics and plain-text notification bodies.

Rendering stays deliberately plain: a subject line and a text body. HTML
templates belong to whatever ``NotificationSender`` is plugged in.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from stockwatch.coordination.collaborators import CheckRecord, Notification, NotificationKind

IN_STOCK = "In Stock"
OUT_OF_STOCK = "Out of Stock"
ERROR = "Error"
NO_DATA = "No Data"


def status_label(record: CheckRecord) -> str:
    if record.error is not None or record.condition is None:
        return ERROR
    return IN_STOCK if record.condition else OUT_OF_STOCK


@dataclass(frozen=True)
class StatusChange:
    from_status: str
    to_status: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.from_status, "to": self.to_status, "timestamp": self.timestamp.isoformat()}


@dataclass(frozen=True)
class ReportStats:
    """Statistics for one calendar day of check records."""

    day: date
    total_checks: int = 0
    in_stock_count: int = 0
    out_of_stock_count: int = 0
    error_count: int = 0
    status_changes: tuple[StatusChange, ...] = field(default_factory=tuple)
    current_status: str = NO_DATA

    @classmethod
    def from_records(cls, day: date, records: Sequence[CheckRecord]) -> ReportStats:
        ordered = sorted(records, key=lambda r: r.timestamp)
        labels = [status_label(r) for r in ordered]

        changes = tuple(
            StatusChange(from_status=labels[i - 1], to_status=labels[i], timestamp=ordered[i].timestamp)
            for i in range(1, len(ordered))
            if labels[i] != labels[i - 1]
        )
        return cls(
            day=day,
            total_checks=len(ordered),
            in_stock_count=labels.count(IN_STOCK),
            out_of_stock_count=labels.count(OUT_OF_STOCK),
            error_count=labels.count(ERROR),
            status_changes=changes,
            current_status=labels[-1] if labels else NO_DATA,
        )

    @property
    def uptime_percentage(self) -> float:
        """Share of checks that did not error."""
        if self.total_checks == 0:
            return 0.0
        return round((self.total_checks - self.error_count) / self.total_checks * 100, 1)

    @property
    def summary(self) -> str:
        if self.total_checks == 0:
            return (
                "No stock checks were recorded for this day. "
                "This may indicate a configuration or deployment issue."
            )
        text = (
            f"Current stock status: {self.current_status}. "
            f"Performed {self.total_checks} stock checks with {self.uptime_percentage}% uptime. "
        )
        if not self.status_changes:
            return text + "No status changes detected during this period."
        plural = "s" if len(self.status_changes) > 1 else ""
        changes = ", ".join(
            f"{c.from_status} -> {c.to_status} at {c.timestamp.isoformat()}" for c in self.status_changes
        )
        return text + f"Detected {len(self.status_changes)} status change{plural}: {changes}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "day": self.day.isoformat(),
            "total_checks": self.total_checks,
            "in_stock_count": self.in_stock_count,
            "out_of_stock_count": self.out_of_stock_count,
            "error_count": self.error_count,
            "uptime_percentage": self.uptime_percentage,
            "status_changes": [c.to_dict() for c in self.status_changes],
            "current_status": self.current_status,
        }


def _percent(count: int, total: int) -> float:
    return round(count / total * 100, 1) if total else 0.0


def compose_report(stats: ReportStats, product_name: str = "Nintendo Switch 2") -> Notification:
    """Daily summary notification for ``stats.day``."""
    total = stats.total_checks
    rule = "=" * 50
    lines = [
        "DAILY STOCK CHECK SUMMARY",
        stats.day.strftime("%A, %B %d, %Y"),
        rule,
        "",
        "SUMMARY STATISTICS:",
        f"- Total Checks: {total}",
        f"- In Stock: {stats.in_stock_count} ({_percent(stats.in_stock_count, total)}%)",
        f"- Out of Stock: {stats.out_of_stock_count} ({_percent(stats.out_of_stock_count, total)}%)",
        f"- Errors: {stats.error_count}",
        f"- Uptime: {stats.uptime_percentage}%",
        "",
        "STOCK STATUS CHANGES:",
    ]
    if stats.status_changes:
        lines.extend(
            f"- {c.timestamp.strftime('%H:%M %Z').strip()} {c.from_status} -> {c.to_status}"
            for c in stats.status_changes
        )
    else:
        lines.append("- No status changes detected.")
    lines.extend(["", stats.summary, rule, f"Generated by {product_name} Stock Monitor"])

    return Notification(
        kind=NotificationKind.REPORT,
        subject=f"Daily Stock Check Summary - {stats.day.isoformat()}",
        body="\n".join(lines),
        metadata=stats.to_dict(),
    )


def compose_alert(
    product_name: str,
    at: datetime,
    url: str | None = None,
) -> Notification:
    """Availability alert for a false -> true transition."""
    lines = [
        f"{product_name} is IN STOCK!",
        "",
        f"Detected at: {at.isoformat()}",
    ]
    if url:
        lines.append(f"Product page: {url}")
    lines.extend(["", "Stock availability can change quickly."])

    return Notification(
        kind=NotificationKind.ALERT,
        subject=f"{product_name} is IN STOCK",
        body="\n".join(lines),
        metadata={"product_name": product_name, "detected_at": at.isoformat(), "url": url},
    )


__all__ = [
    "ERROR",
    "IN_STOCK",
    "NO_DATA",
    "OUT_OF_STOCK",
    "ReportStats",
    "StatusChange",
    "compose_alert",
    "compose_report",
    "status_label",
]
