"""
CLI: one-shot workflow commands.

Each command builds a ``MonitorApp`` from settings plus ``--wiring``, runs a
single workflow, shuts the app down, and exits. Scheduling is left to cron or
CI; nothing here loops.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

import typer

from stockwatch.cli.utils import build_app, console, output_result, print_checks
from stockwatch.coordination.app import MonitorApp
from stockwatch.coordination.workflows import CheckOutcome, ReportOutcome
from stockwatch.execution.health import HealthReport, HealthStatus

WIRING_HELP = "Collaborator factory as 'module:factory' (default: STOCKWATCH_WIRING)."


async def _run_check(app: MonitorApp) -> CheckOutcome:
    await app.restore_from_store()
    try:
        return await app.workflows.run_check_workflow()
    finally:
        await app.shutdown()


async def _run_report(app: MonitorApp, day: datetime | None) -> list[ReportOutcome]:
    try:
        return await app.workflows.run_report_workflow(day.date() if day else None)
    finally:
        await app.shutdown()


def check(
    wiring: str | None = typer.Option(None, "--wiring", "-w", help=WIRING_HELP),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one availability check and alert on a change to in-stock."""
    app = build_app(wiring)
    outcome = asyncio.run(_run_check(app))
    output_result(outcome, as_json=json_out, title="Check")


def report(
    wiring: str | None = typer.Option(None, "--wiring", "-w", help=WIRING_HELP),
    day: datetime | None = typer.Option(  # noqa: UP007
        None,
        "--day",
        "-d",
        formats=["%Y-%m-%d"],
        help="Report date (default: yesterday, UTC).",
    ),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Send the daily summary report."""
    app = build_app(wiring)
    outcomes = asyncio.run(_run_report(app, day))
    output_result(outcomes, as_json=json_out, title="Report")


def health(
    wiring: str | None = typer.Option(None, "--wiring", "-w", help=WIRING_HELP),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run all health checks. Exits 1 when the overall status is unhealthy."""
    app = build_app(wiring)
    report: HealthReport = asyncio.run(app.health.run_all())

    if json_out:
        output_result(report, as_json=True)
    else:
        style = "green" if report.overall == HealthStatus.HEALTHY else "yellow"
        if report.overall == HealthStatus.UNHEALTHY:
            style = "red"
        console.print(
            f"[bold {style}]{report.overall.value}[/bold {style}] "
            f"({report.healthy_checks}/{report.total_checks} checks healthy, {report.duration_ms}ms)"
        )
        print_checks(report.checks, title="Health")

    if report.overall == HealthStatus.UNHEALTHY:
        raise typer.Exit(code=1)


def status(
    wiring: str | None = typer.Option(None, "--wiring", "-w", help=WIRING_HELP),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show coordinator, breaker, and queue status after restoring history."""
    app = build_app(wiring)
    asyncio.run(app.restore_from_store())
    output_result(app.status(), as_json=json_out, title="Status")
