"""API routes."""

from fastapi import APIRouter, Depends

from server.auth import require_metrics_key
from server.routes.allowlists import router as allowlists_router
from server.routes.analytics import router as analytics_router
from server.routes.csp import router as csp_router
from server.routes.health import router as health_router
from server.routes.metrics_summary import router as metrics_summary_router

# Public routes, or routes that guard themselves per method.
api_public_router = APIRouter(prefix="/api")
api_public_router.include_router(health_router)
api_public_router.include_router(allowlists_router)
api_public_router.include_router(csp_router)

# Telemetry reads (x-api-key required once a metrics or API key is configured).
api_router = APIRouter(prefix="/api", dependencies=[Depends(require_metrics_key)])
api_router.include_router(metrics_summary_router)
api_router.include_router(analytics_router)

__all__ = [
    "api_public_router",
    "api_router",
]
