"""Content-Security-Policy report intake."""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from shared.contracts import CspViolationsResponse

from server.auth import require_metrics_key
from server.routes.depends import require_csp_store
from server.services.audit import CspViolationStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["csp"])


@router.post("/csp-report", status_code=status.HTTP_204_NO_CONTENT)
async def receive_csp_report(
    request: Request,
    store: CspViolationStore = Depends(require_csp_store),
) -> Response:
    """Accept a browser report (``application/csp-report`` or JSON)."""
    raw = await request.body()
    try:
        body = json.loads(raw) if raw else {}
    except ValueError:
        raise HTTPException(status_code=400, detail="CSP report must be JSON")
    if isinstance(body, list):
        # Reporting API batches several reports per POST.
        reports = [item.get("body", item) for item in body if isinstance(item, dict)]
    elif isinstance(body, dict):
        reports = [body]
    else:
        raise HTTPException(status_code=400, detail="CSP report must be a JSON object")

    cid = getattr(request.state, "correlation_id", None)
    for report in reports:
        violation = store.add(report, correlation_id=cid)
        logger.info(
            "CSP violation %s: %s blocked %s",
            violation.id,
            violation.violated_directive or violation.effective_directive,
            violation.blocked_uri,
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/csp-violations",
    response_model=CspViolationsResponse,
    dependencies=[Depends(require_metrics_key)],
)
async def list_csp_violations(
    limit: int = Query(default=100, ge=1, le=1000),
    store: CspViolationStore = Depends(require_csp_store),
) -> CspViolationsResponse:
    """Stored reports, newest first."""
    return CspViolationsResponse(items=store.newest(limit), total=len(store))
