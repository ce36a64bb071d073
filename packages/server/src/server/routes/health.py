"""Health check routes."""

from datetime import UTC, datetime

from fastapi import APIRouter
from shared.contracts import HealthResponse

from server.config import get_settings
from server.services.allowlists import get_allowlist_store
from server.services.operations import get_alert_delivery_stats
from server.services.telemetry import get_hub

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness, late-event and alert delivery counters, and where allowlists live."""
    try:
        late_events = get_hub().snapshot().late_events
    except RuntimeError:
        late_events = 0
    try:
        allowlist_backend = get_allowlist_store().backend_name
    except RuntimeError:
        allowlist_backend = None
    return HealthResponse(
        time=datetime.now(UTC).isoformat(),
        version=get_settings().version,
        late_events=late_events,
        allowlist_backend=allowlist_backend,
        alerts=get_alert_delivery_stats(),
    )
