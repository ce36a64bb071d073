"""Minute-bucket aggregation with trailing z-score anomaly detection.

Events are grouped into minute buckets keyed by ``floor(t / 60s)`` (epoch ms).
One bucket is open at a time; it closes when an event for a later minute
arrives or when ``advance(now)`` is called after the minute has passed. On
close the bucket is scored against the trailing ``window`` closed buckets
(the bucket itself is never part of its own baseline), appended to the
retained series, and tallied into the out-of-hours profile.

Minutes without traffic are zero-filled so lulls pull the baseline down and
can themselves be flagged. Events older than the open bucket are counted as
late and only feed the cumulative rankings; closed buckets are never reopened.

The aggregator is single-writer and not thread-safe; ``TelemetryHub`` owns the
lock. Closed buckets and anomalies are republished as tuples on every close so
readers always see a complete series.
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from statistics import fmean, pstdev

from shared.contracts import RouteCount, TelemetryCondition
from shared.correlation import anomaly_id

from server.services.telemetry.events import MINUTE_MS, RequestEvent, minute_floor_ms
from server.services.telemetry.hours import BusinessHours
from server.services.telemetry.sketch import LatencySketch
from server.services.telemetry.topk import TopK, TopKEntry

logger = logging.getLogger(__name__)

BUCKET_ROUTES_TOP = 3
MAX_DISTINCT_USERS = 100_000


@dataclass(frozen=True)
class MinuteBucket:
    minute_ts: int
    total: int = 0
    errors: int = 0
    p95_ms: float | None = None
    routes: tuple[RouteCount, ...] = ()

    @property
    def routes_top(self) -> tuple[RouteCount, ...]:
        return self.routes[:BUCKET_ROUTES_TOP]


@dataclass(frozen=True)
class Anomaly:
    minute_ts: int
    count: int
    mean: float
    std: float
    z: float
    routes_top: tuple[RouteCount, ...] = ()

    @property
    def id(self) -> str:
        return anomaly_id(self.minute_ts)


@dataclass(frozen=True)
class AggregatorConfig:
    window: int = 60
    min_baseline: int = 10
    threshold: float = 3.0
    std_floor: float = 1.0
    retention_minutes: int = 1440
    anomalies_max: int = 100
    topk_capacity: int = 200
    bucket_routes_capacity: int = 32
    business_hours: BusinessHours | None = None

    def __post_init__(self) -> None:
        if self.window < 1:
            raise ValueError("window must be >= 1")
        if self.threshold <= 0:
            raise ValueError("threshold must be > 0")
        if self.std_floor <= 0:
            raise ValueError("std_floor must be > 0")
        if self.retention_minutes < self.window:
            raise ValueError("retention_minutes must cover the anomaly window")


@dataclass(frozen=True)
class AggregatorSnapshot:
    """Immutable view of the aggregator at one instant."""

    series: tuple[MinuteBucket, ...]
    open_bucket: MinuteBucket | None
    anomalies: tuple[Anomaly, ...]
    top_routes: tuple[TopKEntry, ...]
    top_ips: tuple[TopKEntry, ...]
    top_users: tuple[TopKEntry, ...]
    tracked_users: int
    out_of_hours_total: int
    out_of_hours_by_hour: tuple[tuple[int, int], ...]
    out_of_hours_by_route: tuple[TopKEntry, ...]
    late_events: int
    config: AggregatorConfig = field(default_factory=AggregatorConfig)

    def window(self, minutes: int, now: float) -> list[MinuteBucket]:
        """The ``minutes`` buckets ending at the minute of ``now``, zero-filled."""
        if minutes <= 0:
            return []
        end = minute_floor_ms(now)
        start = end - (minutes - 1) * MINUTE_MS
        known = {bucket.minute_ts: bucket for bucket in self.series}
        if self.open_bucket is not None:
            known[self.open_bucket.minute_ts] = self.open_bucket
        return [
            known.get(ts) or MinuteBucket(minute_ts=ts)
            for ts in range(start, end + MINUTE_MS, MINUTE_MS)
        ]

    def window_routes(self, minutes: int, now: float, limit: int = 10) -> list[RouteCount]:
        """Route totals summed over the same buckets as ``window()``."""
        totals: Counter[str] = Counter()
        for bucket in self.window(minutes, now):
            for item in bucket.routes:
                totals[item.route] += item.count
        ranked = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))
        return [RouteCount(route=route, count=count) for route, count in ranked[:limit]]


def score(total: int, baseline: Sequence[int], std_floor: float) -> tuple[float, float, float]:
    """Return ``(mean, std, z)`` of ``total`` against a population baseline."""
    mean = fmean(baseline)
    std = pstdev(baseline, mu=mean)
    z = (total - mean) / max(std, std_floor)
    return mean, std, z


def detect_anomalies(
    series: Sequence[MinuteBucket],
    *,
    window: int,
    threshold: float,
    std_floor: float = 1.0,
    min_baseline: int = 1,
) -> list[Anomaly]:
    """Score every bucket of an ascending series against its trailing window."""
    found: list[Anomaly] = []
    need = max(1, min_baseline)
    for index, bucket in enumerate(series):
        baseline = [b.total for b in series[max(0, index - window) : index]]
        if len(baseline) < need:
            continue
        mean, std, z = score(bucket.total, baseline, std_floor)
        if abs(z) >= threshold:
            found.append(
                Anomaly(
                    minute_ts=bucket.minute_ts,
                    count=bucket.total,
                    mean=mean,
                    std=std,
                    z=z,
                    routes_top=bucket.routes_top,
                )
            )
    return found


class _OpenBucket:
    __slots__ = ("minute_ts", "total", "errors", "routes", "latency")

    def __init__(self, minute_ts: int, routes_capacity: int) -> None:
        self.minute_ts = minute_ts
        self.total = 0
        self.errors = 0
        self.routes = TopK(routes_capacity)
        self.latency = LatencySketch()

    def add(self, event: RequestEvent) -> None:
        self.total += 1
        if event.is_error:
            self.errors += 1
        self.routes.increment(event.route)
        self.latency.add(event.latency_ms)

    def freeze(self) -> MinuteBucket:
        return MinuteBucket(
            minute_ts=self.minute_ts,
            total=self.total,
            errors=self.errors,
            p95_ms=self.latency.quantile(0.95),
            routes=tuple(
                RouteCount(route=entry.key, count=entry.count)
                for entry in self.routes.top_n(self.routes.capacity)
            ),
        )


class MinuteBucketAggregator:
    """Single-writer minute aggregation, rankings and anomaly flags."""

    def __init__(self, config: AggregatorConfig | None = None) -> None:
        self.config = config or AggregatorConfig()
        cfg = self.config

        self._closed: deque[MinuteBucket] = deque(maxlen=cfg.retention_minutes)
        self._open: _OpenBucket | None = None
        self._anomalies: deque[Anomaly] = deque(maxlen=cfg.anomalies_max)

        self._routes = TopK(cfg.topk_capacity)
        self._ips = TopK(cfg.topk_capacity)
        self._users = TopK(cfg.topk_capacity)
        self._seen_users: set[str] = set()

        self._ooh_by_hour: Counter[int] = Counter()
        self._ooh_routes = TopK(cfg.topk_capacity)
        self._ooh_total = 0
        self._late_events = 0

        # Republished on every close.
        self._series_view: tuple[MinuteBucket, ...] = ()
        self._anomalies_view: tuple[Anomaly, ...] = ()

    @property
    def late_events(self) -> int:
        return self._late_events

    def ingest(self, event: RequestEvent) -> list[Anomaly]:
        """Record one event; return anomalies flagged by buckets it closed."""
        minute = minute_floor_ms(event.t)
        emitted: list[Anomaly] = []

        self._rank(event)

        if self._is_late(minute):
            self._late_events += 1
            logger.debug(
                "Late event for minute %d not added to a closed bucket",
                minute,
            )
            return emitted

        if self._open is None or minute > self._open.minute_ts:
            emitted = self._roll_to(minute)
            self._open = _OpenBucket(minute, self.config.bucket_routes_capacity)

        self._open.add(event)
        return emitted

    def advance(self, now: float) -> list[Anomaly]:
        """Close every bucket older than the minute of ``now``."""
        return self._roll_to(minute_floor_ms(now))

    def snapshot(self) -> AggregatorSnapshot:
        return AggregatorSnapshot(
            series=self._series_view,
            open_bucket=self._open.freeze() if self._open is not None else None,
            anomalies=self._anomalies_view,
            top_routes=tuple(self._routes.top_n(self.config.topk_capacity)),
            top_ips=tuple(self._ips.top_n(self.config.topk_capacity)),
            top_users=tuple(self._users.top_n(self.config.topk_capacity)),
            tracked_users=len(self._seen_users),
            out_of_hours_total=self._ooh_total,
            out_of_hours_by_hour=tuple(sorted(self._ooh_by_hour.items())),
            out_of_hours_by_route=tuple(self._ooh_routes.top_n(self.config.topk_capacity)),
            late_events=self._late_events,
            config=self.config,
        )

    def _is_late(self, minute: int) -> bool:
        if self._open is not None:
            return minute < self._open.minute_ts
        if self._closed:
            return minute <= self._closed[-1].minute_ts
        return False

    def _rank(self, event: RequestEvent) -> None:
        self._routes.increment(event.route)
        if event.ip:
            self._ips.increment(event.ip)
        if event.user_id:
            self._users.increment(event.user_id)
            if len(self._seen_users) < MAX_DISTINCT_USERS:
                self._seen_users.add(event.user_id)

        hours = self.config.business_hours
        if hours is not None and hours.is_out_of_hours(event.t):
            self._ooh_total += 1
            self._ooh_routes.increment(event.route)

    def _roll_to(self, minute: int) -> list[Anomaly]:
        emitted: list[Anomaly] = []
        if self._open is not None:
            if self._open.minute_ts >= minute:
                return emitted
            last = self._open.minute_ts
            bucket = self._open.freeze()
            self._open = None
            emitted.extend(self._close(bucket))
        elif self._closed:
            last = self._closed[-1].minute_ts
        else:
            return emitted

        gap = (minute - last) // MINUTE_MS - 1
        if gap > 0:
            emitted.extend(self._fill_gap(last, gap))

        self._series_view = tuple(self._closed)
        self._anomalies_view = tuple(self._anomalies)
        return emitted

    def _fill_gap(self, last: int, gap: int) -> list[Anomaly]:
        logger.debug(
            "Zero-filling %d empty minute bucket(s) after %d",
            gap,
            last,
            extra={"condition": TelemetryCondition.AGGREGATION_GAP, "minute_ts": last},
        )
        emitted: list[Anomaly] = []
        scored = min(gap, self.config.window)
        for step in range(1, scored + 1):
            emitted.extend(self._close(MinuteBucket(minute_ts=last + step * MINUTE_MS)))

        # Beyond one full window of zeros the baseline is all zeros and a zero
        # bucket scores z=0, so the rest are appended without scoring.
        remaining = gap - scored
        if remaining > 0:
            keep = min(remaining, self.config.retention_minutes)
            first = last + (gap - keep + 1) * MINUTE_MS
            for step in range(keep):
                self._closed.append(MinuteBucket(minute_ts=first + step * MINUTE_MS))
        return emitted

    def _close(self, bucket: MinuteBucket) -> list[Anomaly]:
        cfg = self.config
        emitted: list[Anomaly] = []

        baseline = [b.total for b in list(self._closed)[-cfg.window :]]
        if baseline and len(baseline) >= cfg.min_baseline:
            mean, std, z = score(bucket.total, baseline, cfg.std_floor)
            if abs(z) >= cfg.threshold:
                anomaly = Anomaly(
                    minute_ts=bucket.minute_ts,
                    count=bucket.total,
                    mean=mean,
                    std=std,
                    z=z,
                    routes_top=bucket.routes_top,
                )
                self._anomalies.append(anomaly)
                emitted.append(anomaly)
                logger.info(
                    "Anomaly at minute %d: count=%d mean=%.2f std=%.2f z=%+.2f",
                    bucket.minute_ts,
                    bucket.total,
                    mean,
                    std,
                    z,
                )

        hours = cfg.business_hours
        if hours is not None and bucket.total > 0:
            epoch = bucket.minute_ts / 1000
            if hours.is_out_of_hours(epoch):
                self._ooh_by_hour[hours.local_hour(epoch)] += bucket.total

        self._closed.append(bucket)
        return emitted
