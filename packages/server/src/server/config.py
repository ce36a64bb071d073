import logging
from enum import StrEnum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from shared._version import __version__

logger = logging.getLogger(__name__)

_RATEWATCH_HOME = Path.home() / ".ratewatch"

DEFAULT_ROUTE_ALLOWLIST = (
    "/api/metrics-summary",
    "/api/errors",
    "/api/errors-stats",
    "/api/send-receipt",
    "/api/demo-trace",
)


class Environments(StrEnum):
    DEV = "dev"
    PROD = "prod"

    def is_production(self) -> bool:
        return self == self.PROD


class Settings(BaseSettings):
    """Server configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RATEWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    env: Environments = Environments.DEV
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    log_format: Literal["text", "json"] = "text"
    cors_allow_origins: str = "*"
    cors_allow_credentials: bool = False

    # Authentication. POSTs to the allowlists always need ``api_key``; reads
    # need ``metrics_api_key`` only when it is set.
    api_key: str | None = None
    metrics_api_key: str | None = None

    # Minute-bucket aggregation and anomaly detection.
    analytics_retention_minutes: int = 1440
    anomaly_window_minutes: int = 60
    anomaly_min_baseline_minutes: int = 10
    anomaly_z_threshold: float = 3.0
    anomaly_std_floor: float = 1.0
    anomalies_max: int = 100
    dashboard_minutes: int = 60

    # Rankings.
    topk_capacity: int = 200
    bucket_routes_capacity: int = 32
    ip_tracking_enabled: bool = True
    ip_retention_days: int = 7

    # Business hours (days use 0=Sunday).
    business_days: str = "0,1,2,3,4"
    business_hours_start: int = 8
    business_hours_end: int = 16
    business_timezone: str = "UTC"

    # Allowlist storage: Redis when configured, JSON files otherwise.
    redis_url: str | None = None
    allowlist_dir: str = str(_RATEWATCH_HOME / "allowlists")
    default_route_allowlist: str = ",".join(DEFAULT_ROUTE_ALLOWLIST)

    # Drill-down stores.
    audit_log_max: int = 1000
    csp_violations_max: int = 1000
    related_window_seconds: float = 300.0

    # Anomaly monitor and alert webhook.
    anomaly_monitor_interval_seconds: float = 15.0
    alert_webhook_url: str | None = None
    alert_webhook_timeout_seconds: float = 3.0
    alert_cooldown_seconds: int = 300

    version: str = __version__

    @field_validator("env", mode="before")
    @classmethod
    def _normalize_env_aliases(cls, value: object) -> object:
        """Accept `development` and `production` as spellings of dev and prod."""
        if isinstance(value, str):
            normalized = value.strip().lower()
            aliases = {
                "development": Environments.DEV.value,
                "production": Environments.PROD.value,
            }
            return aliases.get(normalized, normalized)
        return value

    @field_validator("business_hours_start", "business_hours_end")
    @classmethod
    def _validate_hour(cls, value: int) -> int:
        if not 0 <= value <= 24:
            raise ValueError("business hours must be within 0..24")
        return value

    @property
    def is_production(self) -> bool:
        return self.env.is_production()

    @property
    def cors_allow_origins_list(self) -> list[str]:
        """Parse comma-delimited CORS origins into a list."""
        origins = [origin.strip() for origin in self.cors_allow_origins.split(",")]
        cleaned = [origin for origin in origins if origin]
        return cleaned or ["*"]

    @property
    def default_route_allowlist_list(self) -> list[str]:
        routes = [route.strip() for route in self.default_route_allowlist.split(",")]
        return [route for route in routes if route]


@lru_cache
def get_settings() -> Settings:
    return Settings()
