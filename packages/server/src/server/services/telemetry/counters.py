"""Process-lifetime cumulative counters behind ``GET /api/metrics-summary``."""

from __future__ import annotations

import time
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from shared.contracts import (
    GaugesResponse,
    IpCount,
    IpGauge,
    IpStats,
    IpStatsResponse,
    LatencySummary,
    MetricsSummaryResponse,
    RouteCount,
    RouteGauge,
    RouteLatency,
    RouteStatusBreakdown,
    StatusClass,
    StatusClassCounts,
)

from server.services.telemetry.events import RequestEvent
from server.services.telemetry.sketch import LatencySketch
from server.services.telemetry.topk import TopK

ROUTES_TOP = 10
IPS_TOP = 10
PER_ROUTE_TOP = 50
IP_ROUTES_CAPACITY = 100


def _status_counts(counts: Counter[StatusClass]) -> StatusClassCounts:
    return StatusClassCounts(
        s2xx=counts[StatusClass.S2XX],
        s3xx=counts[StatusClass.S3XX],
        s4xx=counts[StatusClass.S4XX],
        s5xx=counts[StatusClass.S5XX],
        other=counts[StatusClass.OTHER],
    )


def _latency(sketch: LatencySketch) -> LatencySummary:
    summary = sketch.summary()
    return LatencySummary(
        avg_ms=summary.avg,
        p50_ms=summary.p50,
        p95_ms=summary.p95,
        p99_ms=summary.p99,
    )


def _error_rate(total: int, counts: Counter[StatusClass]) -> float:
    if total <= 0:
        return 0.0
    errors = counts[StatusClass.S4XX] + counts[StatusClass.S5XX]
    return round(min(1.0, errors / total), 6)


@dataclass
class _IpRecord:
    total: int = 0
    by_status: Counter[StatusClass] = field(default_factory=Counter)
    last_seen: float = 0.0
    routes: TopK = field(default_factory=lambda: TopK(IP_ROUTES_CAPACITY))

    def to_stats(self, ip: str, limit: int = ROUTES_TOP) -> IpStats:
        return IpStats(
            ip=ip,
            total=self.total,
            by_status=_status_counts(self.by_status),
            last_seen=int(self.last_seen * 1000),
            routes=[
                RouteCount(route=entry.key, count=entry.count)
                for entry in self.routes.top_n(limit)
            ],
        )


class CumulativeCounters:
    """Monotonic totals since process start.

    Totals and status-class counts are exact. Route and IP rankings are
    ``TopK`` tables; per-route status counts and latency sketches are kept only
    for tracked routes and released when a route is evicted. IP detail is
    pruned once an IP has not been seen for ``ip_retention_seconds``.
    """

    def __init__(
        self,
        *,
        topk_capacity: int = 200,
        ip_tracking: bool = True,
        ip_retention_seconds: float = 7 * 24 * 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self._started_at = clock()
        self._ip_tracking = ip_tracking
        self._ip_retention_seconds = ip_retention_seconds

        self._total = 0
        self._by_status: Counter[StatusClass] = Counter()
        self._latency = LatencySketch()

        self._routes = TopK(topk_capacity)
        self._route_status: dict[str, Counter[StatusClass]] = {}
        self._route_latency: dict[str, LatencySketch] = {}

        self._ips = TopK(topk_capacity)
        self._ip_detail: dict[str, _IpRecord] = {}

    @property
    def total(self) -> int:
        return self._total

    @property
    def ip_tracking(self) -> bool:
        return self._ip_tracking

    def record(self, event: RequestEvent) -> None:
        klass = event.status_class
        self._total += 1
        self._by_status[klass] += 1
        self._latency.add(event.latency_ms)

        evicted = self._routes.increment(event.route)
        if evicted is not None:
            self._route_status.pop(evicted, None)
            self._route_latency.pop(evicted, None)
        self._route_status.setdefault(event.route, Counter())[klass] += 1
        self._route_latency.setdefault(event.route, LatencySketch()).add(event.latency_ms)

        if self._ip_tracking and event.ip:
            evicted_ip = self._ips.increment(event.ip)
            if evicted_ip is not None:
                self._ip_detail.pop(evicted_ip, None)
            detail = self._ip_detail.setdefault(event.ip, _IpRecord())
            detail.total += 1
            detail.by_status[klass] += 1
            detail.last_seen = max(detail.last_seen, event.t)
            detail.routes.increment(event.route)

    def prune(self, now: float | None = None) -> int:
        """Drop IP detail older than the retention horizon; return how many."""
        now = self._clock() if now is None else now
        cutoff = now - self._ip_retention_seconds
        stale = [ip for ip, record in self._ip_detail.items() if record.last_seen < cutoff]
        for ip in stale:
            self._ip_detail.pop(ip, None)
            self._ips.discard(ip)
        return len(stale)

    def summary(
        self,
        *,
        route: str | None = None,
        ip: str | None = None,
        now: float | None = None,
    ) -> MetricsSummaryResponse:
        now = self._clock() if now is None else now

        ips_top: list[IpCount] | None = None
        if self._ip_tracking:
            ips_top = []
            for entry in self._ips.top_n(IPS_TOP):
                detail = self._ip_detail.get(entry.key)
                ips_top.append(
                    IpCount(
                        ip=entry.key,
                        count=entry.count,
                        last_seen=int(detail.last_seen * 1000) if detail else None,
                    )
                )

        per_route = [
            RouteStatusBreakdown(
                route=entry.key,
                total=entry.count,
                by_status=_status_counts(self._route_status.get(entry.key, Counter())),
            )
            for entry in self._routes.top_n(PER_ROUTE_TOP)
        ]

        route_latency: RouteLatency | None = None
        if route:
            sketch = self._route_latency.get(route)
            if sketch is None:
                route_latency = RouteLatency(route=route, count=0)
            else:
                latency = _latency(sketch)
                route_latency = RouteLatency(
                    route=route,
                    count=sketch.count,
                    **latency.model_dump(),
                )

        ip_stats: IpStats | None = None
        if ip and self._ip_tracking:
            detail = self._ip_detail.get(ip)
            ip_stats = detail.to_stats(ip) if detail else IpStats(ip=ip)

        return MetricsSummaryResponse(
            time=datetime.fromtimestamp(now, UTC).isoformat(),
            uptime_sec=round(max(0.0, now - self._started_at), 3),
            total_requests=self._total,
            by_status=_status_counts(self._by_status),
            latency=_latency(self._latency),
            routes_top=[
                RouteCount(route=entry.key, count=entry.count)
                for entry in self._routes.top_n(ROUTES_TOP)
            ],
            ips_top=ips_top,
            per_route=per_route,
            route_latency=route_latency,
            ip_stats=ip_stats,
        )

    def ip_stats(self, ip: str | None = None, *, limit: int = 50) -> IpStatsResponse:
        if ip:
            detail = self._ip_detail.get(ip)
            item = detail.to_stats(ip) if detail else None
            return IpStatsResponse(
                items=[item] if item else [],
                total=len(self._ip_detail),
                item=item,
            )
        items = [
            self._ip_detail[entry.key].to_stats(entry.key)
            for entry in self._ips.top_n(max(1, limit))
            if entry.key in self._ip_detail
        ]
        return IpStatsResponse(items=items, total=len(self._ip_detail))

    def gauges(self, routes: Iterable[str], ips: Iterable[str]) -> GaugesResponse:
        """Gauges for the named routes and IPs, zeroed when nothing was recorded.

        Routes evicted from the ranking read as zero, as do IPs whose detail
        was pruned.
        """
        route_gauges = []
        for route in routes:
            status = self._route_status.get(route, Counter())
            total = sum(status.values())
            sketch = self._route_latency.get(route)
            latency = _latency(sketch) if sketch is not None else LatencySummary()
            route_gauges.append(
                RouteGauge(
                    route=route,
                    count=total,
                    error_rate=_error_rate(total, status),
                    **latency.model_dump(),
                )
            )

        ip_gauges: list[IpGauge] | None = None
        if self._ip_tracking:
            ip_gauges = []
            for ip in ips:
                detail = self._ip_detail.get(ip)
                if detail is None:
                    ip_gauges.append(IpGauge(ip=ip))
                    continue
                ip_gauges.append(
                    IpGauge(
                        ip=ip,
                        total=detail.total,
                        error_rate=_error_rate(detail.total, detail.by_status),
                    )
                )

        return GaugesResponse(routes=route_gauges, ips=ip_gauges)
