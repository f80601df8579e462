"""Tests for daily report statistics and notification composition."""

from datetime import UTC, date, datetime, timedelta

from stockwatch.coordination.collaborators import CheckRecord, NotificationKind
from stockwatch.coordination.reports import (
    ERROR,
    IN_STOCK,
    NO_DATA,
    OUT_OF_STOCK,
    ReportStats,
    compose_alert,
    compose_report,
    status_label,
)

DAY = date(2026, 6, 1)
START = datetime(2026, 6, 1, 8, 0, tzinfo=UTC)


def _records(*conditions):
    """CheckRecords 15 minutes apart; ``None`` means a failed probe."""
    return [
        CheckRecord(
            condition=c,
            timestamp=START + timedelta(minutes=15 * i),
            source="test",
            error="timeout" if c is None else None,
        )
        for i, c in enumerate(conditions)
    ]


class TestStatusLabel:
    def test_labels(self):
        a, b, c = _records(True, False, None)
        assert status_label(a) == IN_STOCK
        assert status_label(b) == OUT_OF_STOCK
        assert status_label(c) == ERROR


class TestReportStats:
    def test_counts_and_uptime(self):
        stats = ReportStats.from_records(DAY, _records(False, False, None, True))
        assert stats.total_checks == 4
        assert stats.in_stock_count == 1
        assert stats.out_of_stock_count == 2
        assert stats.error_count == 1
        assert stats.uptime_percentage == 75.0
        assert stats.current_status == IN_STOCK

    def test_status_changes(self):
        stats = ReportStats.from_records(DAY, _records(False, False, True, False))
        changes = [(c.from_status, c.to_status) for c in stats.status_changes]
        assert changes == [(OUT_OF_STOCK, IN_STOCK), (IN_STOCK, OUT_OF_STOCK)]
        assert stats.status_changes[0].timestamp == START + timedelta(minutes=30)

    def test_records_are_sorted(self):
        records = list(reversed(_records(False, True)))
        stats = ReportStats.from_records(DAY, records)
        assert stats.current_status == IN_STOCK

    def test_empty_day(self):
        stats = ReportStats.from_records(DAY, [])
        assert stats.total_checks == 0
        assert stats.current_status == NO_DATA
        assert stats.uptime_percentage == 0.0
        assert "No stock checks" in stats.summary

    def test_summary_text(self):
        stats = ReportStats.from_records(DAY, _records(False, True))
        assert "Current stock status: In Stock." in stats.summary
        assert "Performed 2 stock checks with 100.0% uptime." in stats.summary
        assert "Detected 1 status change:" in stats.summary

    def test_to_dict(self):
        d = ReportStats.from_records(DAY, _records(False, True)).to_dict()
        assert d["day"] == "2026-06-01"
        assert d["status_changes"][0]["from"] == OUT_OF_STOCK


class TestCompose:
    def test_compose_report(self):
        stats = ReportStats.from_records(DAY, _records(False, True))
        notification = compose_report(stats, "Nintendo Switch 2")
        assert notification.kind == NotificationKind.REPORT
        assert notification.subject == "Daily Stock Check Summary - 2026-06-01"
        assert "Total Checks: 2" in notification.body
        assert "In Stock: 1 (50.0%)" in notification.body
        assert "Nintendo Switch 2 Stock Monitor" in notification.body
        assert notification.metadata["total_checks"] == 2

    def test_compose_report_without_changes(self):
        notification = compose_report(ReportStats.from_records(DAY, []))
        assert "No status changes detected." in notification.body

    def test_compose_alert(self):
        at = datetime(2026, 6, 1, 9, 30, tzinfo=UTC)
        notification = compose_alert("Nintendo Switch 2", at, "https://shop.example/switch2")
        assert notification.kind == NotificationKind.ALERT
        assert notification.subject == "Nintendo Switch 2 is IN STOCK"
        assert "https://shop.example/switch2" in notification.body
        assert at.isoformat() in notification.body

    def test_compose_alert_without_url(self):
        notification = compose_alert("Widget", datetime(2026, 6, 1, tzinfo=UTC))
        assert "Product page" not in notification.body
