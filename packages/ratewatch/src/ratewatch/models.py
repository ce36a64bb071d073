"""Immutable values flowing through the live-rate pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field

from shared.contracts import MetricsSummaryResponse


@dataclass(frozen=True)
class StatusCounts:
    s2xx: int = 0
    s3xx: int = 0
    s4xx: int = 0
    s5xx: int = 0
    other: int = 0

    @property
    def errors(self) -> int:
        return self.s4xx + self.s5xx


@dataclass(frozen=True)
class Latency:
    avg_ms: float | None = None
    p50_ms: float | None = None
    p95_ms: float | None = None
    p99_ms: float | None = None


@dataclass(frozen=True)
class IpEntry:
    ip: str
    count: int
    last_seen: int | None = None


@dataclass(frozen=True)
class CounterSnapshot:
    """Cumulative counters read at ``captured_at`` (epoch seconds, client clock)."""

    captured_at: float
    total_requests: int
    by_status: StatusCounts = field(default_factory=StatusCounts)
    latency: Latency = field(default_factory=Latency)
    top_routes: tuple[tuple[str, int], ...] = ()
    top_ips: tuple[IpEntry, ...] = ()

    @property
    def errors(self) -> int:
        return self.by_status.errors

    @classmethod
    def from_summary(cls, summary: MetricsSummaryResponse, captured_at: float) -> CounterSnapshot:
        status = summary.by_status
        latency = summary.latency
        return cls(
            captured_at=captured_at,
            total_requests=summary.total_requests,
            by_status=StatusCounts(
                s2xx=status.s2xx,
                s3xx=status.s3xx,
                s4xx=status.s4xx,
                s5xx=status.s5xx,
                other=status.other,
            ),
            latency=Latency(
                avg_ms=latency.avg_ms,
                p50_ms=latency.p50_ms,
                p95_ms=latency.p95_ms,
                p99_ms=latency.p99_ms,
            ),
            top_routes=tuple((item.route, item.count) for item in summary.routes_top),
            top_ips=tuple(
                IpEntry(ip=item.ip, count=item.count, last_seen=item.last_seen)
                for item in summary.ips_top or ()
            ),
        )


@dataclass(frozen=True)
class RateSample:
    """Rates derived from two adjacent snapshots, stamped with the later one."""

    t: float
    rps: float
    error_rate_pct: float
