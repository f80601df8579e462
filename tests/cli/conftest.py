"""CLI test fixtures: keep log output out of captured stdout."""

from unittest.mock import patch

import pytest
from structlog.testing import capture_logs


@pytest.fixture(autouse=True)
def quiet_logging():
    """Skip the root callback's logging setup and capture log events instead."""
    with patch("stockwatch.cli.app.configure_logging"), capture_logs() as logs:
        yield logs
