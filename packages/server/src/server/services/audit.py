"""In-memory drill-down stores: configuration audit trail and CSP violations."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from shared.contracts import AuditEntry, CspViolation

logger = logging.getLogger(__name__)

_audit_log: AuditLog | None = None
_csp_store: CspViolationStore | None = None

# Browser report field -> CspViolation field.
_CSP_FIELDS = {
    "blocked-uri": "blocked_uri",
    "document-uri": "document_uri",
    "violated-directive": "violated_directive",
    "effective-directive": "effective_directive",
    "original-policy": "original_policy",
    "disposition": "disposition",
    "referrer": "referrer",
    "status-code": "status_code",
    "source-file": "source_file",
    "line-number": "line_number",
    "column-number": "column_number",
}
_CSP_INT_FIELDS = frozenset({"status_code", "line_number", "column_number"})


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditLog:
    """Bounded, append-only record of accepted configuration changes."""

    def __init__(self, maxlen: int = 1000) -> None:
        self._entries: deque[AuditEntry] = deque(maxlen=max(1, maxlen))

    def record(
        self,
        action: str,
        entity: str,
        *,
        entity_id: str | None = None,
        actor: str | None = None,
        detail: str | None = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            id=f"audit:{uuid4().hex}",
            at=_now_iso(),
            action=action,
            entity=entity,
            entity_id=entity_id,
            actor=actor,
            detail=detail,
        )
        self._entries.append(entry)
        logger.info("Audit %s %s (%s)", action, entity, entry.id)
        return entry

    def entries(self) -> tuple[AuditEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class CspViolationStore:
    """Bounded store of browser Content-Security-Policy reports."""

    def __init__(self, maxlen: int = 1000) -> None:
        self._items: deque[CspViolation] = deque(maxlen=max(1, maxlen))

    def add(self, body: Mapping[str, Any], correlation_id: str | None = None) -> CspViolation:
        """Store one report; accepts ``{"csp-report": {...}}`` or the bare report."""
        report = body.get("csp-report", body)
        if not isinstance(report, Mapping):
            report = {}

        fields: dict[str, Any] = {}
        for raw_key, field_name in _CSP_FIELDS.items():
            value = report.get(raw_key)
            if value is None:
                # Reporting API bodies use camelCase keys.
                value = report.get(_camel(raw_key))
            if value is None:
                continue
            if field_name in _CSP_INT_FIELDS:
                value = _as_int(value)
                if value is None:
                    continue
            else:
                value = str(value)
            fields[field_name] = value

        violation = CspViolation(
            id=f"csp:{uuid4().hex}",
            at=_now_iso(),
            correlation_id=correlation_id,
            **fields,
        )
        self._items.append(violation)
        return violation

    def items(self) -> tuple[CspViolation, ...]:
        return tuple(self._items)

    def newest(self, limit: int = 100) -> list[CspViolation]:
        return list(reversed(self._items))[: max(0, limit)]

    def __len__(self) -> int:
        return len(self._items)


def _camel(name: str) -> str:
    head, *rest = name.split("-")
    return head + "".join(part.capitalize() for part in rest)


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def set_stores(audit_log: AuditLog | None, csp_store: CspViolationStore | None) -> None:
    global _audit_log, _csp_store
    _audit_log = audit_log
    _csp_store = csp_store


def get_audit_log() -> AuditLog:
    if _audit_log is None:
        raise RuntimeError("Audit log not initialized")
    return _audit_log


def get_csp_store() -> CspViolationStore:
    if _csp_store is None:
        raise RuntimeError("CSP violation store not initialized")
    return _csp_store
