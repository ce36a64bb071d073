"""Route and IP gauge allowlist routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from shared.contracts import AllowlistRequest, AllowlistResponse, ErrorResponse

from server.auth import require_api_key, require_metrics_key
from server.config import get_settings
from server.routes.depends import require_allowlist_store, require_audit_log
from server.services.allowlists import AllowlistKind, BaseAllowlistStore
from server.services.audit import AuditLog

logger = logging.getLogger(__name__)

router = APIRouter(tags=["allowlists"])

_WRITE_RESPONSES: dict[int | str, dict[str, object]] = {
    401: {"model": ErrorResponse, "description": "Missing x-api-key."},
    403: {"model": ErrorResponse, "description": "Invalid or unconfigured API key."},
}


def _require_ip_tracking() -> None:
    if not get_settings().ip_tracking_enabled:
        raise HTTPException(status_code=503, detail="IP tracking disabled")


async def _save(
    kind: AllowlistKind,
    body: AllowlistRequest,
    request: Request,
    store: BaseAllowlistStore,
    audit_log: AuditLog,
) -> AllowlistResponse:
    saved = await store.set(kind, body.allowlist)
    audit_log.record(
        "allowlist.update",
        f"{kind}-allowlist",
        entity_id=getattr(request.state, "correlation_id", None),
        actor=request.client.host if request.client else None,
        detail=f"{len(saved)} entries",
    )
    return AllowlistResponse(allowlist=saved)


@router.get(
    "/route-allowlist",
    response_model=AllowlistResponse,
    dependencies=[Depends(require_metrics_key)],
)
async def get_route_allowlist(
    store: BaseAllowlistStore = Depends(require_allowlist_store),
) -> AllowlistResponse:
    return AllowlistResponse(allowlist=await store.get(AllowlistKind.ROUTE))


@router.post(
    "/route-allowlist",
    response_model=AllowlistResponse,
    responses=_WRITE_RESPONSES,
    dependencies=[Depends(require_api_key)],
)
async def set_route_allowlist(
    body: AllowlistRequest,
    request: Request,
    store: BaseAllowlistStore = Depends(require_allowlist_store),
    audit_log: AuditLog = Depends(require_audit_log),
) -> AllowlistResponse:
    """Replace the route allowlist (stripped, de-blanked, capped at 100)."""
    return await _save(AllowlistKind.ROUTE, body, request, store, audit_log)


@router.get(
    "/ip-allowlist",
    response_model=AllowlistResponse,
    dependencies=[Depends(require_metrics_key), Depends(_require_ip_tracking)],
)
async def get_ip_allowlist(
    store: BaseAllowlistStore = Depends(require_allowlist_store),
) -> AllowlistResponse:
    return AllowlistResponse(allowlist=await store.get(AllowlistKind.IP))


@router.post(
    "/ip-allowlist",
    response_model=AllowlistResponse,
    responses={
        **_WRITE_RESPONSES,
        503: {"model": ErrorResponse, "description": "IP tracking disabled."},
    },
    dependencies=[Depends(require_api_key), Depends(_require_ip_tracking)],
)
async def set_ip_allowlist(
    body: AllowlistRequest,
    request: Request,
    store: BaseAllowlistStore = Depends(require_allowlist_store),
    audit_log: AuditLog = Depends(require_audit_log),
) -> AllowlistResponse:
    """Replace the IP allowlist (stripped, de-blanked, capped at 200)."""
    return await _save(AllowlistKind.IP, body, request, store, audit_log)
