"""Minute-bucket analytics payloads (``GET /api/analytics/*``)."""

from pydantic import Field

from shared.contracts.common import WireModel
from shared.contracts.telemetry import RouteCount


class SeriesPoint(WireModel):
    """One minute bucket. ``minute_ts`` is epoch milliseconds floored to the minute."""

    minute_ts: int
    total: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0)
    p95_ms: float | None = None


class AnomalyRecord(WireModel):
    """A minute whose total deviates from its trailing baseline by ``|z| >= threshold``."""

    id: str
    minute_ts: int
    count: int
    mean: float
    std: float
    z: float
    routes_top: list[RouteCount] = Field(default_factory=list)


class HourCount(WireModel):
    hour: int = Field(ge=0, le=23)
    count: int = Field(ge=0)


class UserCount(WireModel):
    id: str
    count: int = Field(ge=0)


class AnalyticsDashboardResponse(WireModel):
    ok: bool = True
    minutes: int = 60
    series: list[SeriesPoint] = Field(default_factory=list)
    top_routes: list[RouteCount] = Field(default_factory=list)
    anomalies: list[AnomalyRecord] = Field(default_factory=list)
    out_of_hours_top: list[HourCount] = Field(default_factory=list)
    users_top: list[UserCount] = Field(default_factory=list)
    generated_at: str | None = None


class SeriesResponse(WireModel):
    ok: bool = True
    minutes: int
    series: list[SeriesPoint] = Field(default_factory=list)


class AnomaliesResponse(WireModel):
    ok: bool = True
    count: int = 0
    window: int
    threshold: float
    items: list[AnomalyRecord] = Field(default_factory=list)


class OutOfHoursResponse(WireModel):
    ok: bool = True
    total: int = 0
    by_hour: list[HourCount] = Field(default_factory=list)
    by_route: list[RouteCount] = Field(default_factory=list)


class BehaviorSummaryResponse(WireModel):
    ok: bool = True
    users: list[UserCount] = Field(default_factory=list)
    total_users: int = 0


__all__ = [
    "SeriesPoint",
    "AnomalyRecord",
    "HourCount",
    "UserCount",
    "AnalyticsDashboardResponse",
    "SeriesResponse",
    "AnomaliesResponse",
    "OutOfHoursResponse",
    "BehaviorSummaryResponse",
]
