"""
CLI utility helpers: output formatting, settings, and collaborator wiring.
"""

from __future__ import annotations

import importlib
import json
from dataclasses import asdict
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from stockwatch.coordination.app import MonitorApp
from stockwatch.coordination.collaborators import Collaborators
from stockwatch.core.errors import ConfigError
from stockwatch.core.settings import Settings, get_settings

console = Console()
err_console = Console(stderr=True)


# ── Settings + wiring ────────────────────────────────────────────────────


def load_settings() -> Settings:
    """Load settings, turning validation errors into ``ConfigError``."""
    try:
        return get_settings()
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}", cause=e) from e


def load_collaborators(wiring: str | None, settings: Settings) -> Collaborators:
    """Import ``module:factory`` and call ``factory(settings)``.

    Raises:
        ConfigError: No wiring given, the import fails, or the factory
            does not return ``Collaborators``
    """
    target = wiring or settings.wiring
    if not target:
        raise ConfigError("No collaborators configured. Pass --wiring module:factory or set STOCKWATCH_WIRING.")

    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Invalid wiring '{target}', expected 'module:factory'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import wiring module '{module_name}': {e}", cause=e) from e

    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ConfigError(f"Wiring module '{module_name}' has no callable '{attr}'")

    collaborators = factory(settings)
    if not isinstance(collaborators, Collaborators):
        raise ConfigError(f"Wiring factory '{target}' returned {type(collaborators).__name__}, not Collaborators")
    return collaborators


def build_app(wiring: str | None) -> MonitorApp:
    """Settings + wiring → ``MonitorApp``; exits with code 1 on config errors."""
    try:
        settings = load_settings()
        collaborators = load_collaborators(wiring, settings)
    except ConfigError as e:
        err_console.print(f"[bold red]Error[/bold red] (CONFIG): {escape(e.message)}")
        raise typer.Exit(code=1) from e
    return MonitorApp(collaborators, settings=settings)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert outcome / pydantic model / dataclass / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_result(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a result (or list of results) to the terminal."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list | tuple):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        for item in data:
            _print_dict(_to_dict(item), title=title)
        return
    _print_dict(_to_dict(data), title=title)


def print_checks(checks: dict[str, Any], *, title: str = "") -> None:
    """Render health check results as a Rich table."""
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in ("check", "status", "duration_ms", "error"):
        table.add_column(col, overflow="fold")
    for name, result in checks.items():
        style = "green" if result.status.value == "healthy" else "red"
        table.add_row(
            name,
            f"[{style}]{result.status.value}[/{style}]",
            str(result.duration_ms),
            escape(result.error or ""),
        )
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {escape(str(v))}")
