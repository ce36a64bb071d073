"""API services layer."""

from server.services.allowlists import (
    AllowlistKind,
    BaseAllowlistStore,
    FileAllowlistStore,
    RedisAllowlistStore,
    get_allowlist_store,
    set_allowlist_store,
)
from server.services.audit import (
    AuditLog,
    CspViolationStore,
    get_audit_log,
    get_csp_store,
    set_stores,
)
from server.services.redis import close_redis, connect_redis, get_redis
from server.services.telemetry import TelemetryHub, get_hub, set_hub

__all__ = [
    # Redis
    "connect_redis",
    "get_redis",
    "close_redis",
    # Telemetry
    "TelemetryHub",
    "get_hub",
    "set_hub",
    # Allowlists
    "AllowlistKind",
    "BaseAllowlistStore",
    "FileAllowlistStore",
    "RedisAllowlistStore",
    "get_allowlist_store",
    "set_allowlist_store",
    # Drill-down stores
    "AuditLog",
    "CspViolationStore",
    "get_audit_log",
    "get_csp_store",
    "set_stores",
]
