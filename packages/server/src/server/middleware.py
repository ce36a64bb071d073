"""Server middleware."""

import logging
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from server.services.telemetry import (
    RequestEvent,
    TelemetryHub,
    client_ip,
    get_hub,
    pseudo_user_id,
)

logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Request-ID"

# ContextVar so the correlation ID is available to any code in the request path,
# including the logging filter below.
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Attach a unique request ID to every request/response cycle.

    If the client sends an ``X-Request-ID`` header, it is preserved;
    otherwise a new UUID4 is generated.  The ID is set on
    ``request.state.correlation_id`` **and** stored in a ``ContextVar``
    so downstream logging can include it automatically.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = cid
        correlation_id_var.set(cid)
        response = await call_next(request)
        response.headers[CORRELATION_ID_HEADER] = cid
        return response


class CorrelationIDFilter(logging.Filter):
    """Logging filter that injects ``correlation_id`` into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()  # type: ignore[attr-defined]
        return True


@dataclass
class RequestTelemetryConfig:
    """Controls which requests are recorded and how they are keyed."""

    normalize_paths: bool = True
    track_ips: bool = True
    exclude_paths: frozenset[str] = field(default_factory=lambda: frozenset({"/api/health"}))


class RequestTelemetryMiddleware(BaseHTTPMiddleware):
    """Record one ``RequestEvent`` per served request into the telemetry hub."""

    def __init__(
        self,
        app: Any,
        hub: TelemetryHub | None = None,
        config: RequestTelemetryConfig | None = None,
    ) -> None:
        super().__init__(app)
        self._hub = hub
        self._config = config or RequestTelemetryConfig()

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            # The server error middleware answers 500 after this re-raise.
            self._safe_record(request, 500, (time.perf_counter() - start) * 1000)
            raise

        self._safe_record(request, response.status_code, (time.perf_counter() - start) * 1000)
        return response

    def _safe_record(self, request: Request, status: int, latency_ms: float) -> None:
        try:
            self._record(request, status, latency_ms)
        except Exception as exc:
            # Never fail requests for tracking.
            logger.debug("Request telemetry not recorded: %s", exc)

    def _normalize_path(self, request: Request) -> str:
        """Prefer route templates (e.g. /items/{id}) to avoid key cardinality blow-up."""
        path = request.url.path
        if not self._config.normalize_paths:
            return path

        route = request.scope.get("route")
        if route is None:
            return path

        route_template = getattr(route, "path_format", None) or getattr(route, "path", None)
        if isinstance(route_template, str) and route_template.startswith("/"):
            return route_template
        return path

    def _record(self, request: Request, status: int, latency_ms: float) -> None:
        route = self._normalize_path(request)
        if route in self._config.exclude_paths:
            return

        hub = self._hub or get_hub()
        peer = request.client.host if request.client else None
        ip = client_ip(request.headers, peer)
        user_agent = request.headers.get("user-agent", "")
        user = getattr(request.state, "user_id", None)

        hub.record(
            RequestEvent(
                t=hub.now(),
                route=route,
                status=status,
                latency_ms=latency_ms,
                ip=ip if self._config.track_ips else None,
                user_id=pseudo_user_id(ip, user_agent, user),
            )
        )
