"""
Centralized settings for stockwatch.

All fields can be set via ``STOCKWATCH_*`` environment variables (e.g.
``STOCKWATCH_BREAKER_FAILURE_THRESHOLD=3``) or a ``.env`` file in the working
directory.

Example:
    >>> from stockwatch.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.probe_max_attempts
    3
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """stockwatch configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STOCKWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Monitored resource ───────────────────────────────────────
    product_url: str = Field(default="", description="URL of the monitored product page")
    product_name: str = Field(default="Nintendo Switch 2")
    source_name: str = Field(default="stockwatch", description="Source identifier written to check records")

    # ── Probe retry ──────────────────────────────────────────────
    probe_max_attempts: int = Field(default=3, ge=1)
    probe_base_delay: float = Field(default=2.0, ge=0)
    probe_max_delay: float = Field(default=10.0, ge=0)
    probe_backoff_factor: float = Field(default=2.0, ge=1)

    # ── Notification retry + breaker ─────────────────────────────
    send_max_attempts: int = Field(default=2, ge=1)
    send_base_delay: float = Field(default=1.0, ge=0)
    send_max_delay: float = Field(default=5.0, ge=0)
    send_backoff_factor: float = Field(default=2.0, ge=1)
    breaker_failure_threshold: int = Field(default=5, ge=1)
    breaker_open_timeout: float = Field(default=300.0, gt=0, description="Seconds before a half-open probe")

    # ── Delivery queue ───────────────────────────────────────────
    queue_max_size: int = Field(default=50, ge=1)
    queue_max_attempts: int = Field(default=3, ge=1)
    queue_inter_item_delay: float = Field(default=1.0, ge=0)

    # ── Health ───────────────────────────────────────────────────
    health_check_timeout: float = Field(default=5.0, gt=0)
    health_network_url: str = Field(default="", description="Optional URL for the network health probe")
    max_consecutive_failures: int = Field(default=10, ge=1)

    # ── Reports ──────────────────────────────────────────────────
    report_catch_up_days: int = Field(
        default=0,
        ge=0,
        description="Missed report dates to backfill after downtime (0 = only yesterday)",
    )
    restore_window_hours: int = Field(default=48, ge=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console", pattern="^(json|console)$")

    # ── Wiring ───────────────────────────────────────────────────
    wiring: str = Field(default="", description="'module:factory' returning Collaborators")

    @model_validator(mode="after")
    def _check_delays(self) -> Settings:
        if self.probe_max_delay < self.probe_base_delay:
            raise ValueError("probe_max_delay must be >= probe_base_delay")
        if self.send_max_delay < self.send_base_delay:
            raise ValueError("send_max_delay must be >= send_base_delay")
        return self


_settings_cache: dict[str, Settings] = {}


def get_settings(*, _force_reload: bool = False) -> Settings:
    """Load, validate, and cache a :class:`Settings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = Settings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
