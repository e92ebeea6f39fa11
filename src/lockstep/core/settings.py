"""Centralized settings for lockstep.

One validated, cached settings object holds every tunable of the lock
manager, circuit breaker, and batch sync engine. All fields can be set via
``LOCKSTEP_*`` environment variables (e.g. ``LOCKSTEP_REDIS_URL``) or a
``.env`` file.

Durations are configured in milliseconds, matching the wire-level
conventions of the lock store; the ``*_seconds`` properties convert them
for the Python APIs, which take seconds.

Examples:
    >>> from lockstep.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.batch_size
    100
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LockstepSettings(BaseSettings):
    """lockstep configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCKSTEP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Lock store ───────────────────────────────────────────────
    redis_url: str | None = Field(
        default=None,
        description="Shared lock store; unset means process-local locking only",
    )
    redis_socket_timeout: float = Field(default=2.0, gt=0)

    # ── Locks ────────────────────────────────────────────────────
    lock_ttl_ms: int = Field(default=30_000, gt=0)
    sync_lock_ttl_ms: int = Field(default=60_000, gt=0)
    lock_attempts: int = Field(default=3, ge=1)
    lock_retry_delay_ms: int = Field(default=200, ge=0)
    lock_retry_jitter_ms: int = Field(default=200, ge=0)
    lock_sweep_interval_ms: int = Field(default=60_000, gt=0)

    # ── Batch sync ───────────────────────────────────────────────
    batch_size: int = Field(default=100, ge=1)
    max_retries: int = Field(default=3, ge=1, description="Attempts per batch")
    base_delay_ms: int = Field(default=1_000, ge=0)

    # ── Circuit breaker ──────────────────────────────────────────
    breaker_failure_threshold: int = Field(default=5, ge=1)
    breaker_cooldown_ms: int = Field(default=30_000, ge=0)

    # ── Sheets API ───────────────────────────────────────────────
    sheets_base_url: str = Field(default="https://sheets.googleapis.com/v4")
    sheets_timeout: float = Field(default=15.0, gt=0)
    sheets_access_token: str | None = Field(default=None, repr=False)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console", "auto"] = Field(default="auto")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level

    # ── Derived properties ───────────────────────────────────────

    @property
    def lock_ttl_seconds(self) -> float:
        return self.lock_ttl_ms / 1000

    @property
    def sync_lock_ttl_seconds(self) -> float:
        return self.sync_lock_ttl_ms / 1000

    @property
    def base_delay_seconds(self) -> float:
        return self.base_delay_ms / 1000

    @property
    def breaker_cooldown_seconds(self) -> float:
        return self.breaker_cooldown_ms / 1000

    @property
    def uses_redis(self) -> bool:
        return bool(self.redis_url)

    @property
    def json_logs(self) -> bool | None:
        """Map ``log_format`` onto :func:`configure_logging`'s tri-state flag."""
        if self.log_format == "auto":
            return None
        return self.log_format == "json"


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, LockstepSettings] = {}


def get_settings(*, _force_reload: bool = False) -> LockstepSettings:
    """Load, validate, and cache a :class:`LockstepSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = LockstepSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = ["LockstepSettings", "get_settings", "clear_settings_cache"]
