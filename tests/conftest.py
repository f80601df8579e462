"""
Shared pytest fixtures for stockwatch tests.

This module provides:
- Settings isolation (no STOCKWATCH_* leakage between tests)
- A recording ``sleep`` so backoff and inter-item delays cost nothing
- A list-backed failure recorder
"""

import os
import sys
from pathlib import Path

import pytest

# Ensure stockwatch package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stockwatch.core.errors import FailureRecord
from stockwatch.core.settings import clear_settings_cache


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests with the package area they cover."""
    root = Path(__file__).parent
    for item in items:
        area = Path(item.fspath).relative_to(root).parts[0]
        if area in {"core", "execution", "coordination", "cli"}:
            item.add_marker(getattr(pytest.mark, area))


def pytest_configure(config: pytest.Config) -> None:
    for area in ("core", "execution", "coordination", "cli"):
        config.addinivalue_line("markers", f"{area}: tests for stockwatch.{area}")


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Drop STOCKWATCH_* env vars and the settings cache around each test."""
    for key in list(os.environ):
        if key.startswith("STOCKWATCH_"):
            monkeypatch.delenv(key, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


class RecordingSleep:
    """Drop-in for ``asyncio.sleep`` that records delays and returns at once."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def failures() -> list[FailureRecord]:
    """Failure records collected by passing ``failures.append`` as recorder."""
    return []
