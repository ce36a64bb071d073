"""Allowlist administration and drill-down record payloads."""

from pydantic import Field

from shared.contracts.common import RecordKind, WireModel


class AllowlistRequest(WireModel):
    """Body for ``POST /api/route-allowlist`` and ``POST /api/ip-allowlist``."""

    allowlist: list[str]


class AllowlistResponse(WireModel):
    ok: bool = True
    allowlist: list[str] = Field(default_factory=list)


class AuditEntry(WireModel):
    """Audit-log row; ``entity_id`` may reference another record's id."""

    id: str
    at: str
    action: str
    entity: str
    entity_id: str | None = None
    actor: str | None = None
    detail: str | None = None


class CspViolation(WireModel):
    """Normalized browser CSP violation report."""

    id: str
    at: str
    blocked_uri: str | None = None
    document_uri: str | None = None
    violated_directive: str | None = None
    effective_directive: str | None = None
    original_policy: str | None = None
    disposition: str | None = None
    referrer: str | None = None
    status_code: int | None = None
    source_file: str | None = None
    line_number: int | None = None
    column_number: int | None = None
    correlation_id: str | None = None


class CspViolationsResponse(WireModel):
    ok: bool = True
    items: list[CspViolation] = Field(default_factory=list)
    total: int = 0


class RelatedRecord(WireModel):
    """A record joined to an anchor id for operator drill-down."""

    kind: RecordKind
    id: str
    at: str
    reason: str
    summary: str


class RelatedResponse(WireModel):
    ok: bool = True
    id: str
    items: list[RelatedRecord] = Field(default_factory=list)


__all__ = [
    "AllowlistRequest",
    "AllowlistResponse",
    "AuditEntry",
    "CspViolation",
    "CspViolationsResponse",
    "RelatedRecord",
    "RelatedResponse",
]
