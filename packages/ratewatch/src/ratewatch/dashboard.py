"""Interpretation of the analytics dashboard payload for display."""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from shared.contracts import (
    AnalyticsDashboardResponse,
    AnomalyRecord,
    HourCount,
    RouteCount,
    SeriesPoint,
    UserCount,
)

from ratewatch.models import CounterSnapshot

MINUTE_MS = 60_000


class AnomalyDirection(StrEnum):
    SPIKE = "spike"
    LULL = "lull"


def anomaly_direction(anomaly: AnomalyRecord) -> AnomalyDirection:
    return AnomalyDirection.SPIKE if anomaly.z >= 0 else AnomalyDirection.LULL


def fill_series_gaps(points: Iterable[SeriesPoint]) -> list[SeriesPoint]:
    """Sort by minute and insert zero buckets for missing minutes.

    A minute with no samples is a real zero, not missing data.
    """
    by_minute: dict[int, SeriesPoint] = {}
    for point in points:
        minute = point.minute_ts - point.minute_ts % MINUTE_MS
        by_minute[minute] = point
    if not by_minute:
        return []

    first, last = min(by_minute), max(by_minute)
    return [
        by_minute.get(ts) or SeriesPoint(minute_ts=ts, total=0, errors=0)
        for ts in range(first, last + MINUTE_MS, MINUTE_MS)
    ]


def staleness_seconds(snapshot: CounterSnapshot | None, now: float | None = None) -> float | None:
    if snapshot is None:
        return None
    now = time.time() if now is None else now
    return max(0.0, now - snapshot.captured_at)


def is_stale(
    snapshot: CounterSnapshot | None,
    poll_interval_ms: int,
    *,
    now: float | None = None,
    missed_polls: int = 2,
) -> bool:
    """True once ``missed_polls`` intervals pass without a fresh snapshot."""
    age = staleness_seconds(snapshot, now)
    if age is None:
        return True
    return age > missed_polls * poll_interval_ms / 1000


def newest_first(anomalies: Sequence[AnomalyRecord]) -> list[AnomalyRecord]:
    return sorted(anomalies, key=lambda a: (-a.minute_ts, a.id))


@dataclass(frozen=True)
class DashboardView:
    minutes: int
    series: tuple[SeriesPoint, ...]
    top_routes: tuple[RouteCount, ...]
    anomalies: tuple[AnomalyRecord, ...]
    out_of_hours: tuple[HourCount, ...]
    users: tuple[UserCount, ...]
    generated_at: str | None

    @property
    def total(self) -> int:
        return sum(p.total for p in self.series)

    @property
    def peak(self) -> SeriesPoint | None:
        return max(self.series, key=lambda p: p.total, default=None)

    @property
    def spikes(self) -> int:
        return sum(1 for a in self.anomalies if anomaly_direction(a) is AnomalyDirection.SPIKE)

    @property
    def lulls(self) -> int:
        return len(self.anomalies) - self.spikes


def build_view(resp: AnalyticsDashboardResponse) -> DashboardView:
    """Normalize a dashboard payload: gap-filled series, ranked lists."""
    return DashboardView(
        minutes=resp.minutes,
        series=tuple(fill_series_gaps(resp.series)),
        top_routes=tuple(sorted(resp.top_routes, key=lambda r: (-r.count, r.route))),
        anomalies=tuple(newest_first(resp.anomalies)),
        out_of_hours=tuple(sorted(resp.out_of_hours_top, key=lambda h: (-h.count, h.hour))),
        users=tuple(sorted(resp.users_top, key=lambda u: (-u.count, u.id))),
        generated_at=resp.generated_at,
    )


__all__ = [
    "AnomalyDirection",
    "DashboardView",
    "anomaly_direction",
    "build_view",
    "fill_series_gaps",
    "is_stale",
    "newest_first",
    "staleness_seconds",
]
