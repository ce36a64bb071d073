"""Health and operational contract payloads."""

from pydantic import Field

from shared.contracts.common import WireModel


class AlertDeliveryStats(WireModel):
    """Anomaly webhook delivery counters surfaced by /api/health."""

    attempted: int = 0
    sent: int = 0
    failures: int = 0
    skipped_cooldown: int = 0
    last_attempt_at: str | None = None
    last_sent_at: str | None = None
    last_error: str | None = None


class HealthResponse(WireModel):
    ok: bool = True
    time: str
    version: str | None = None
    late_events: int = 0
    allowlist_backend: str | None = None
    alerts: AlertDeliveryStats = Field(default_factory=AlertDeliveryStats)


__all__ = [
    "AlertDeliveryStats",
    "HealthResponse",
]
