"""Shared FastAPI dependencies for route handlers."""

from fastapi import HTTPException

from server.services.allowlists import BaseAllowlistStore, get_allowlist_store
from server.services.audit import (
    AuditLog,
    CspViolationStore,
    get_audit_log,
    get_csp_store,
)
from server.services.telemetry import TelemetryHub, get_hub


def require_hub() -> TelemetryHub:
    """FastAPI dependency that returns the telemetry hub or raises 503."""
    try:
        return get_hub()
    except RuntimeError:
        raise HTTPException(status_code=503, detail="Telemetry not available")


def require_allowlist_store() -> BaseAllowlistStore:
    try:
        return get_allowlist_store()
    except RuntimeError:
        raise HTTPException(status_code=503, detail="Allowlist storage not available")


def require_audit_log() -> AuditLog:
    try:
        return get_audit_log()
    except RuntimeError:
        raise HTTPException(status_code=503, detail="Audit log not available")


def require_csp_store() -> CspViolationStore:
    try:
        return get_csp_store()
    except RuntimeError:
        raise HTTPException(status_code=503, detail="CSP store not available")
