"""Background minute-closing loop and anomaly alert webhook."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx
from pydantic import BaseModel
from shared.contracts import AlertDeliveryStats, RouteCount
from shared.keys import anomaly_alert_key

from server.config import get_settings
from server.services.redis import get_redis
from server.services.telemetry import Anomaly, TelemetryHub, get_hub

logger = logging.getLogger(__name__)


@dataclass
class _AlertDeliveryStats:
    attempted: int = 0
    sent: int = 0
    failures: int = 0
    skipped_cooldown: int = 0
    last_attempt_at: str | None = None
    last_sent_at: str | None = None
    last_error: str | None = None


_ALERT_DELIVERY_STATS = _AlertDeliveryStats()


class AnomalyAlert(BaseModel):
    """Structured alert payload emitted to webhook targets."""

    id: str
    minute_ts: int
    count: int
    mean: float
    std: float
    z: float
    direction: str
    routes_top: list[RouteCount]
    at: str
    message: str

    @classmethod
    def from_anomaly(cls, anomaly: Anomaly) -> AnomalyAlert:
        direction = "spike" if anomaly.z > 0 else "lull"
        minute = datetime.fromtimestamp(anomaly.minute_ts / 1000, UTC)
        return cls(
            id=anomaly.id,
            minute_ts=anomaly.minute_ts,
            count=anomaly.count,
            mean=round(anomaly.mean, 3),
            std=round(anomaly.std, 3),
            z=round(anomaly.z, 3),
            direction=direction,
            routes_top=list(anomaly.routes_top),
            at=datetime.now(UTC).isoformat(),
            message=(
                f"Request {direction} at {minute:%Y-%m-%d %H:%M} UTC: "
                f"{anomaly.count} requests vs mean {anomaly.mean:.1f} (z {anomaly.z:+.2f})"
            ),
        )


def get_alert_delivery_stats() -> AlertDeliveryStats:
    """Return in-process alert delivery counters for diagnostics/health endpoints."""
    return AlertDeliveryStats(
        attempted=_ALERT_DELIVERY_STATS.attempted,
        sent=_ALERT_DELIVERY_STATS.sent,
        failures=_ALERT_DELIVERY_STATS.failures,
        skipped_cooldown=_ALERT_DELIVERY_STATS.skipped_cooldown,
        last_attempt_at=_ALERT_DELIVERY_STATS.last_attempt_at,
        last_sent_at=_ALERT_DELIVERY_STATS.last_sent_at,
        last_error=_ALERT_DELIVERY_STATS.last_error,
    )


def reset_alert_delivery_stats() -> None:
    global _ALERT_DELIVERY_STATS
    _ALERT_DELIVERY_STATS = _AlertDeliveryStats()


async def _emit_alerts(alerts: list[AnomalyAlert]) -> int:
    """Deliver alerts to the configured webhook. Returns count sent."""
    if not alerts:
        return 0

    settings = get_settings()
    webhook = settings.alert_webhook_url
    if not webhook:
        return 0

    _ALERT_DELIVERY_STATS.attempted += len(alerts)
    _ALERT_DELIVERY_STATS.last_attempt_at = datetime.now(UTC).isoformat()

    payload = {
        "source": "ratewatch-server",
        "at": datetime.now(UTC).isoformat(),
        "alerts": [alert.model_dump() for alert in alerts],
    }
    timeout_seconds = max(0.1, settings.alert_webhook_timeout_seconds)
    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.post(webhook, json=payload)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Failed to deliver anomaly webhook: %s", exc)
        _ALERT_DELIVERY_STATS.failures += len(alerts)
        _ALERT_DELIVERY_STATS.last_error = str(exc)
        return 0

    _ALERT_DELIVERY_STATS.sent += len(alerts)
    _ALERT_DELIVERY_STATS.last_sent_at = datetime.now(UTC).isoformat()
    _ALERT_DELIVERY_STATS.last_error = None
    return len(alerts)


async def emit_anomaly_alerts(anomalies: list[Anomaly]) -> int:
    """
    Deliver newly flagged anomalies to the configured webhook.

    With Redis connected, each anomaly id is claimed with ``SET NX EX`` so
    replicas sharing the Redis instance alert at most once per cooldown.
    Returns number of alerts sent.
    """
    settings = get_settings()
    if not settings.alert_webhook_url or not anomalies:
        return 0

    alerts = [AnomalyAlert.from_anomaly(anomaly) for anomaly in anomalies]

    redis_client = None
    try:
        redis_client = await get_redis()
    except RuntimeError:
        redis_client = None

    selected: list[AnomalyAlert] = []
    cooldown = max(1, settings.alert_cooldown_seconds)
    for alert in alerts:
        if redis_client is None:
            selected.append(alert)
            continue
        key = anomaly_alert_key(alert.id)
        try:
            was_set = await redis_client.set(key, alert.at, nx=True, ex=cooldown)
        except Exception as exc:
            logger.debug("Alert cooldown check failed, sending anyway: %s", exc)
            was_set = True
        if was_set:
            selected.append(alert)
        else:
            _ALERT_DELIVERY_STATS.skipped_cooldown += 1

    if not selected:
        return 0

    return await _emit_alerts(selected)


class AnomalyMonitorService:
    """Closes idle minute buckets on wall-clock time and alerts on anomalies."""

    def __init__(
        self,
        hub: TelemetryHub | None = None,
        interval_seconds: float = 15.0,
    ) -> None:
        self._hub = hub
        self._interval_seconds = max(0.05, interval_seconds)
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def tick(self) -> int:
        """Advance the aggregator to now and deliver pending anomalies."""
        hub = self._hub or get_hub()
        hub.advance()
        pending = hub.drain_anomalies()
        if not pending:
            return 0
        for anomaly in pending:
            logger.info(
                "Traffic anomaly: %d requests (mean %.1f, z %+.2f)",
                anomaly.count,
                anomaly.mean,
                anomaly.z,
                extra={"anomaly_id": anomaly.id, "minute_ts": anomaly.minute_ts},
            )
        return await emit_anomaly_alerts(pending)

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pragma: no cover - best effort background loop
                logger.debug("Anomaly monitor tick failed: %s", exc)

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._interval_seconds,
                )
            except TimeoutError:
                continue
