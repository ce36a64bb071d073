"""API key dependencies for ratewatch routes."""

import hmac
import logging

from fastapi import HTTPException, Request

from server.config import get_settings

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"


def _check_key(request: Request, expected: str) -> None:
    provided = request.headers.get(API_KEY_HEADER)
    if not provided:
        raise HTTPException(status_code=401, detail="Missing x-api-key header")
    if not hmac.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(status_code=403, detail="Invalid API key")


async def require_api_key(request: Request) -> None:
    """FastAPI dependency guarding configuration writes.

    Writes are refused outright (403) when no ``RATEWATCH_API_KEY`` is
    configured, so an unconfigured server never accepts allowlist changes.
    """
    settings = get_settings()
    if not settings.api_key:
        logger.warning("Rejected %s %s: no API key configured", request.method, request.url.path)
        raise HTTPException(status_code=403, detail="Writes disabled: no API key configured")
    _check_key(request, settings.api_key)


async def require_metrics_key(request: Request) -> None:
    """FastAPI dependency guarding telemetry reads.

    A no-op unless ``RATEWATCH_METRICS_API_KEY`` or ``RATEWATCH_API_KEY`` is
    set; either key is then accepted.
    """
    settings = get_settings()
    accepted = [key for key in (settings.metrics_api_key, settings.api_key) if key]
    if not accepted:
        return

    provided = request.headers.get(API_KEY_HEADER)
    if not provided:
        raise HTTPException(status_code=401, detail="Missing x-api-key header")
    if not any(hmac.compare_digest(provided.encode(), key.encode()) for key in accepted):
        raise HTTPException(status_code=403, detail="Invalid API key")
