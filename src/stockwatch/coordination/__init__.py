"""stockwatch.coordination — shared state, collaborators, and workflows."""

from stockwatch.coordination.app import MonitorApp
from stockwatch.coordination.collaborators import (
    CheckRecord,
    CheckStore,
    Collaborators,
    ConditionProbe,
    InMemoryCheckStore,
    LoggingSender,
    Notification,
    NotificationKind,
    NotificationSender,
    ProbeResult,
)
from stockwatch.coordination.reports import ReportStats, compose_alert, compose_report
from stockwatch.coordination.state import ApplicationState, ApplicationStateCoordinator, ConditionUpdate
from stockwatch.coordination.workflows import CheckOutcome, MonitorWorkflows, ReportOutcome

__all__ = [
    "ApplicationState",
    "ApplicationStateCoordinator",
    "CheckOutcome",
    "CheckRecord",
    "CheckStore",
    "Collaborators",
    "ConditionProbe",
    "ConditionUpdate",
    "InMemoryCheckStore",
    "LoggingSender",
    "MonitorApp",
    "MonitorWorkflows",
    "Notification",
    "NotificationKind",
    "NotificationSender",
    "ProbeResult",
    "ReportOutcome",
    "ReportStats",
    "compose_alert",
    "compose_report",
]
