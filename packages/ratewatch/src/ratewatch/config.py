"""Ratewatch client configuration with sensible defaults for development."""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Ratewatch client configuration.

    All settings can be overridden via environment variables with RATEWATCH_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="RATEWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Ratewatch server base URL (endpoints live under /api)
    url: str = "http://localhost:8080"

    # Write key (allowlist updates) and optional read key
    api_key: str | None = None
    metrics_api_key: str | None = None

    # Live polling
    poll_interval_ms: int = 5000
    window_seconds: int = 60
    fetch_timeout_seconds: float = 5.0

    # Analytics dashboard refresh
    dashboard_interval_ms: int = 30_000

    @field_validator("poll_interval_ms", "dashboard_interval_ms")
    @classmethod
    def _positive_interval(cls, value: int) -> int:
        if value < 1:
            raise ValueError("interval must be >= 1 ms")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
