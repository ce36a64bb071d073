"""Cumulative counter snapshot and allowlisted gauge routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from shared.contracts import (
    ErrorResponse,
    GaugesResponse,
    IpStatsResponse,
    MetricsSummaryResponse,
)

from server.routes.depends import require_allowlist_store, require_hub
from server.services.allowlists import AllowlistKind, BaseAllowlistStore
from server.services.telemetry import TelemetryHub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["metrics"])


@router.get(
    "/metrics-summary",
    response_model=MetricsSummaryResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Missing x-api-key."},
        403: {"model": ErrorResponse, "description": "Invalid x-api-key."},
    },
)
async def get_metrics_summary(
    route: str | None = Query(default=None, description="Route template for routeLatency."),
    ip: str | None = Query(default=None, description="Client IP for ipStats."),
    hub: TelemetryHub = Depends(require_hub),
) -> MetricsSummaryResponse:
    """Cumulative request counters since process start.

    Clients derive live rates by differencing two consecutive snapshots.
    """
    return hub.summary(route=route or None, ip=ip or None)


@router.get(
    "/ip-stats",
    response_model=IpStatsResponse,
    responses={503: {"model": ErrorResponse, "description": "IP tracking disabled."}},
)
async def get_ip_stats(
    ip: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    hub: TelemetryHub = Depends(require_hub),
) -> IpStatsResponse:
    """Per-IP totals, status breakdown and last-seen time."""
    if not hub.counters.ip_tracking:
        raise HTTPException(status_code=503, detail="IP tracking disabled")
    return hub.ip_stats(ip or None, limit=limit)


@router.get("/metrics/gauges", response_model=GaugesResponse)
async def get_gauges(
    hub: TelemetryHub = Depends(require_hub),
    store: BaseAllowlistStore = Depends(require_allowlist_store),
) -> GaugesResponse:
    """Latency and error-rate gauges for allowlisted routes, totals for allowlisted IPs.

    Only entries named in the allowlists are reported, so label cardinality
    stays under operator control.
    """
    routes = await store.get(AllowlistKind.ROUTE)
    ips = await store.get(AllowlistKind.IP) if hub.counters.ip_tracking else []
    return hub.gauges(routes, ips)
