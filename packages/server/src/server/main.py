"""Ratewatch telemetry server."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from shared.contracts import ErrorResponse

from server.config import Settings, get_settings
from server.logging import configure_logging
from server.middleware import CorrelationIDMiddleware, RequestTelemetryMiddleware
from server.routes import api_public_router, api_router
from server.services.allowlists import (
    FileAllowlistStore,
    RedisAllowlistStore,
    set_allowlist_store,
)
from server.services.audit import AuditLog, CspViolationStore, set_stores
from server.services.operations import AnomalyMonitorService
from server.services.redis import close_redis, connect_redis
from server.services.telemetry import (
    AggregatorConfig,
    BusinessHours,
    CumulativeCounters,
    MinuteBucketAggregator,
    TelemetryHub,
    parse_days,
    set_hub,
)

logger = logging.getLogger(__name__)


def build_hub(settings: Settings) -> TelemetryHub:
    """Construct counters and aggregator from settings."""
    hours = BusinessHours(
        days=parse_days(settings.business_days),
        start_hour=settings.business_hours_start,
        end_hour=settings.business_hours_end,
        timezone=settings.business_timezone,
    )
    config = AggregatorConfig(
        window=settings.anomaly_window_minutes,
        min_baseline=settings.anomaly_min_baseline_minutes,
        threshold=settings.anomaly_z_threshold,
        std_floor=settings.anomaly_std_floor,
        retention_minutes=max(
            settings.analytics_retention_minutes, settings.anomaly_window_minutes
        ),
        anomalies_max=settings.anomalies_max,
        topk_capacity=settings.topk_capacity,
        bucket_routes_capacity=settings.bucket_routes_capacity,
        business_hours=hours,
    )
    counters = CumulativeCounters(
        topk_capacity=settings.topk_capacity,
        ip_tracking=settings.ip_tracking_enabled,
        ip_retention_seconds=settings.ip_retention_days * 86_400,
    )
    return TelemetryHub(counters, MinuteBucketAggregator(config))


async def _http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = ErrorResponse(error=str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(by_alias=True),
        headers=getattr(exc, "headers", None),
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI app and install the process-wide telemetry state."""
    settings = settings or get_settings()

    hub = build_hub(settings)
    set_hub(hub)
    set_stores(
        AuditLog(maxlen=settings.audit_log_max),
        CspViolationStore(maxlen=settings.csp_violations_max),
    )
    set_allowlist_store(
        FileAllowlistStore(settings.allowlist_dir, settings.default_route_allowlist_list)
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("Starting ratewatch server...")

        redis_client = None
        if settings.redis_url:
            redis_client = await connect_redis(settings.redis_url)
        if redis_client is not None:
            set_allowlist_store(
                RedisAllowlistStore(redis_client, settings.default_route_allowlist_list)
            )
            logger.info("Allowlists stored in Redis")
        else:
            logger.info("Allowlists stored in %s", settings.allowlist_dir)

        if not settings.api_key:
            logger.warning("RATEWATCH_API_KEY not set; allowlist updates are disabled")

        monitor = AnomalyMonitorService(
            hub=hub,
            interval_seconds=settings.anomaly_monitor_interval_seconds,
        )
        await monitor.start()

        yield

        logger.info("Shutting down ratewatch server...")
        await monitor.stop()
        if redis_client:
            await close_redis()
            logger.info("Redis disconnected")

    app = FastAPI(
        title="Ratewatch API",
        description="Request telemetry counters, minute-bucket analytics and anomaly flags",
        version=settings.version,
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
    )

    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)

    # Innermost: sees the matched route template once routing has run.
    app.add_middleware(RequestTelemetryMiddleware, hub=hub)
    app.add_middleware(CorrelationIDMiddleware)

    allow_origins = settings.cors_allow_origins_list
    allow_credentials = settings.cors_allow_credentials and "*" not in allow_origins
    if settings.cors_allow_credentials and "*" in allow_origins:
        logger.warning(
            "CORS credentials disabled because wildcard origins are configured. "
            "Set RATEWATCH_CORS_ALLOW_ORIGINS to explicit origins to enable credentials."
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_public_router)
    app.include_router(api_router)
    return app


def main():
    """Run the server."""
    import uvicorn

    settings = get_settings()
    configure_logging(log_format=settings.log_format, debug=settings.debug)

    uvicorn.run(
        "server.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    main()
