"""Cumulative counter snapshot payloads (``GET /api/metrics-summary``)."""

from pydantic import Field

from shared.contracts.common import WireModel


class StatusClassCounts(WireModel):
    """Request counts grouped by HTTP status class."""

    s2xx: int = Field(default=0, ge=0, alias="2xx")
    s3xx: int = Field(default=0, ge=0, alias="3xx")
    s4xx: int = Field(default=0, ge=0, alias="4xx")
    s5xx: int = Field(default=0, ge=0, alias="5xx")
    other: int = Field(default=0, ge=0)

    @property
    def errors(self) -> int:
        return self.s4xx + self.s5xx

    @property
    def total(self) -> int:
        return self.s2xx + self.s3xx + self.s4xx + self.s5xx + self.other


class LatencySummary(WireModel):
    """Latency percentiles in milliseconds; null when nothing was observed."""

    avg_ms: float | None = None
    p50_ms: float | None = None
    p95_ms: float | None = None
    p99_ms: float | None = None


class RouteCount(WireModel):
    route: str
    count: int = Field(ge=0)


class IpCount(WireModel):
    ip: str
    count: int = Field(ge=0)
    last_seen: int | None = None  # epoch ms


class RouteStatusBreakdown(WireModel):
    route: str
    total: int = Field(ge=0)
    by_status: StatusClassCounts = Field(default_factory=StatusClassCounts)


class RouteLatency(LatencySummary):
    """Latency summary restricted to one route (``?route=``)."""

    route: str
    count: int = 0


class IpStats(WireModel):
    """Per-IP detail (``?ip=`` and ``GET /api/ip-stats``)."""

    ip: str
    total: int = 0
    by_status: StatusClassCounts = Field(default_factory=StatusClassCounts)
    last_seen: int | None = None
    routes: list[RouteCount] = Field(default_factory=list)


class MetricsSummaryResponse(WireModel):
    """Cumulative counters captured at call time."""

    ok: bool = True
    time: str | None = None
    uptime_sec: float = 0.0
    total_requests: int = Field(default=0, ge=0)
    by_status: StatusClassCounts = Field(default_factory=StatusClassCounts)
    latency: LatencySummary = Field(default_factory=LatencySummary)
    routes_top: list[RouteCount] = Field(default_factory=list)
    ips_top: list[IpCount] | None = None
    per_route: list[RouteStatusBreakdown] = Field(default_factory=list)
    route_latency: RouteLatency | None = None
    ip_stats: IpStats | None = None


class IpStatsResponse(WireModel):
    ok: bool = True
    items: list[IpStats] = Field(default_factory=list)
    total: int = 0
    item: IpStats | None = None


class RouteGauge(LatencySummary):
    """Latency and error rate for one allowlisted route."""

    route: str
    count: int = 0
    error_rate: float = Field(default=0.0, ge=0, le=1)


class IpGauge(WireModel):
    ip: str
    total: int = 0
    error_rate: float = Field(default=0.0, ge=0, le=1)


class GaugesResponse(WireModel):
    """Gauges for the routes and IPs named in the allowlists.

    ``ips`` is null when IP tracking is disabled.
    """

    ok: bool = True
    routes: list[RouteGauge] = Field(default_factory=list)
    ips: list[IpGauge] | None = None


__all__ = [
    "StatusClassCounts",
    "LatencySummary",
    "RouteCount",
    "IpCount",
    "RouteStatusBreakdown",
    "RouteLatency",
    "IpStats",
    "MetricsSummaryResponse",
    "RouteGauge",
    "IpGauge",
    "GaugesResponse",
    "IpStatsResponse",
]
