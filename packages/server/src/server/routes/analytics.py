"""Minute-bucket analytics routes."""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query
from shared.contracts import (
    AnalyticsDashboardResponse,
    AnomaliesResponse,
    AnomalyRecord,
    BehaviorSummaryResponse,
    HourCount,
    OutOfHoursResponse,
    RelatedResponse,
    RouteCount,
    SeriesPoint,
    SeriesResponse,
    UserCount,
)
from shared.correlation import find_related

from server.config import get_settings
from server.routes.depends import require_audit_log, require_csp_store, require_hub
from server.services.audit import AuditLog, CspViolationStore
from server.services.telemetry import Anomaly, MinuteBucket, TelemetryHub, detect_anomalies

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])

DASHBOARD_TOP = 10
DASHBOARD_ANOMALIES = 10


def _series_point(bucket: MinuteBucket) -> SeriesPoint:
    return SeriesPoint(
        minute_ts=bucket.minute_ts,
        total=bucket.total,
        errors=bucket.errors,
        p95_ms=bucket.p95_ms,
    )


def _anomaly_record(anomaly: Anomaly) -> AnomalyRecord:
    return AnomalyRecord(
        id=anomaly.id,
        minute_ts=anomaly.minute_ts,
        count=anomaly.count,
        mean=round(anomaly.mean, 3),
        std=round(anomaly.std, 3),
        z=round(anomaly.z, 3),
        routes_top=list(anomaly.routes_top),
    )


def _clamp_minutes(minutes: int | None) -> int:
    settings = get_settings()
    value = minutes if minutes is not None else settings.dashboard_minutes
    return max(1, min(value, settings.analytics_retention_minutes))


@router.get("/dashboard", response_model=AnalyticsDashboardResponse)
async def get_dashboard(
    minutes: int | None = Query(default=None, ge=1),
    hub: TelemetryHub = Depends(require_hub),
) -> AnalyticsDashboardResponse:
    """Series, rankings and recent anomalies for the dashboard panel."""
    window = _clamp_minutes(minutes)
    now = hub.now()
    snapshot = hub.snapshot()

    return AnalyticsDashboardResponse(
        minutes=window,
        series=[_series_point(bucket) for bucket in snapshot.window(window, now)],
        top_routes=snapshot.window_routes(window, now, DASHBOARD_TOP),
        anomalies=[_anomaly_record(a) for a in snapshot.anomalies[-DASHBOARD_ANOMALIES:]],
        out_of_hours_top=[
            HourCount(hour=hour, count=count)
            for hour, count in sorted(
                snapshot.out_of_hours_by_hour, key=lambda item: (-item[1], item[0])
            )[:DASHBOARD_TOP]
        ],
        users_top=[
            UserCount(id=entry.key, count=entry.count)
            for entry in snapshot.top_users[:DASHBOARD_TOP]
        ],
        generated_at=datetime.fromtimestamp(now, UTC).isoformat(),
    )


@router.get("/series", response_model=SeriesResponse)
async def get_series(
    minutes: int | None = Query(default=None, ge=1),
    hub: TelemetryHub = Depends(require_hub),
) -> SeriesResponse:
    window = _clamp_minutes(minutes)
    snapshot = hub.snapshot()
    return SeriesResponse(
        minutes=window,
        series=[_series_point(bucket) for bucket in snapshot.window(window, hub.now())],
    )


@router.get("/anomalies", response_model=AnomaliesResponse)
async def get_anomalies(
    window: int | None = Query(default=None, ge=1),
    z: float | None = Query(default=None, gt=0),
    hub: TelemetryHub = Depends(require_hub),
) -> AnomaliesResponse:
    """Anomalies flagged on close, or recomputed when ``window``/``z`` differ."""
    snapshot = hub.snapshot()
    config = snapshot.config
    resolved_window = window or config.window
    resolved_z = z or config.threshold

    if resolved_window == config.window and resolved_z == config.threshold:
        items = list(snapshot.anomalies)
    else:
        items = detect_anomalies(
            snapshot.series,
            window=resolved_window,
            threshold=resolved_z,
            std_floor=config.std_floor,
            min_baseline=min(config.min_baseline, resolved_window),
        )

    return AnomaliesResponse(
        count=len(items),
        window=resolved_window,
        threshold=resolved_z,
        items=[_anomaly_record(item) for item in items],
    )


@router.get("/out-of-hours", response_model=OutOfHoursResponse)
async def get_out_of_hours(
    hub: TelemetryHub = Depends(require_hub),
) -> OutOfHoursResponse:
    snapshot = hub.snapshot()
    return OutOfHoursResponse(
        total=snapshot.out_of_hours_total,
        by_hour=[
            HourCount(hour=hour, count=count) for hour, count in snapshot.out_of_hours_by_hour
        ],
        by_route=[
            RouteCount(route=entry.key, count=entry.count)
            for entry in snapshot.out_of_hours_by_route[:DASHBOARD_TOP]
        ],
    )


@router.get("/behavior-summary", response_model=BehaviorSummaryResponse)
async def get_behavior_summary(
    limit: int = Query(default=DASHBOARD_TOP, ge=1, le=200),
    hub: TelemetryHub = Depends(require_hub),
) -> BehaviorSummaryResponse:
    snapshot = hub.snapshot()
    return BehaviorSummaryResponse(
        users=[UserCount(id=entry.key, count=entry.count) for entry in snapshot.top_users[:limit]],
        total_users=snapshot.tracked_users,
    )


@router.get("/related/{record_id}", response_model=RelatedResponse)
async def get_related(
    record_id: str,
    window: float | None = Query(default=None, ge=0, description="Time window in seconds."),
    hub: TelemetryHub = Depends(require_hub),
    audit_log: AuditLog = Depends(require_audit_log),
    csp_store: CspViolationStore = Depends(require_csp_store),
) -> RelatedResponse:
    """Records joined to ``record_id`` by identifier or time proximity."""
    snapshot = hub.snapshot()
    items = find_related(
        record_id,
        anomalies=[_anomaly_record(a) for a in snapshot.anomalies],
        audit_entries=audit_log.entries(),
        csp_violations=csp_store.items(),
        window_seconds=window if window is not None else get_settings().related_window_seconds,
    )
    return RelatedResponse(id=record_id, items=items)
