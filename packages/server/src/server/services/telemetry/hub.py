"""Process-wide telemetry state shared by the middleware and the routes."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable

from shared.contracts import GaugesResponse, IpStatsResponse, MetricsSummaryResponse

from server.services.telemetry.aggregator import (
    AggregatorConfig,
    AggregatorSnapshot,
    Anomaly,
    MinuteBucketAggregator,
)
from server.services.telemetry.counters import CumulativeCounters
from server.services.telemetry.events import RequestEvent

logger = logging.getLogger(__name__)

_hub: TelemetryHub | None = None


class TelemetryHub:
    """Single-writer owner of the counters and the minute aggregator.

    Every mutation happens under one lock. Readers get pydantic payloads or an
    ``AggregatorSnapshot`` built under the same lock, so they never observe a
    half-applied event.
    """

    def __init__(
        self,
        counters: CumulativeCounters | None = None,
        aggregator: MinuteBucketAggregator | None = None,
        *,
        clock: Callable[[], float] = time.time,
        pending_max: int = 1000,
    ) -> None:
        self.counters = counters or CumulativeCounters(clock=clock)
        self.aggregator = aggregator or MinuteBucketAggregator(AggregatorConfig())
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: deque[Anomaly] = deque(maxlen=pending_max)

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    def now(self) -> float:
        return self._clock()

    def record(self, event: RequestEvent) -> list[Anomaly]:
        with self._lock:
            self.counters.record(event)
            emitted = self.aggregator.ingest(event)
            self._pending.extend(emitted)
        return emitted

    def advance(self, now: float | None = None) -> list[Anomaly]:
        now = self._clock() if now is None else now
        with self._lock:
            emitted = self.aggregator.advance(now)
            self._pending.extend(emitted)
            pruned = self.counters.prune(now)
        if pruned:
            logger.debug("Pruned %d idle IP record(s)", pruned)
        return emitted

    def drain_anomalies(self) -> list[Anomaly]:
        """Anomalies emitted since the last drain, oldest first."""
        with self._lock:
            items = list(self._pending)
            self._pending.clear()
        return items

    def summary(self, *, route: str | None = None, ip: str | None = None) -> MetricsSummaryResponse:
        with self._lock:
            return self.counters.summary(route=route, ip=ip, now=self._clock())

    def ip_stats(self, ip: str | None = None, *, limit: int = 50) -> IpStatsResponse:
        with self._lock:
            return self.counters.ip_stats(ip, limit=limit)

    def gauges(self, routes: list[str], ips: list[str]) -> GaugesResponse:
        with self._lock:
            return self.counters.gauges(routes, ips)

    def snapshot(self) -> AggregatorSnapshot:
        with self._lock:
            return self.aggregator.snapshot()


def set_hub(hub: TelemetryHub | None) -> None:
    global _hub
    _hub = hub


def get_hub() -> TelemetryHub:
    if _hub is None:
        raise RuntimeError("Telemetry hub not initialized")
    return _hub
