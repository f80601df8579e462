"""
Root Typer application for the stockwatch CLI.
"""

from __future__ import annotations

import typer
from pydantic import ValidationError
from typer import Typer

from stockwatch.cli import commands
from stockwatch.core.logging import configure_logging
from stockwatch.core.settings import get_settings

app = Typer(
    name="stockwatch",
    help="stockwatch — one-shot availability checks and daily reports.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("stockwatch")
        except PackageNotFoundError:
            from stockwatch import __version__ as v
        typer.echo(f"stockwatch {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override STOCKWATCH_LOG_LEVEL."),
) -> None:
    """stockwatch CLI — run checks, reports, and health probes."""
    try:
        settings = get_settings()
    except ValidationError:
        # Reported by the command itself
        configure_logging(level=log_level or "INFO")
        return
    configure_logging(level=log_level or settings.log_level, json_format=settings.log_format == "json")


app.command("check")(commands.check)
app.command("report")(commands.report)
app.command("health")(commands.health)
app.command("status")(commands.status)
