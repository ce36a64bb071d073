"""Read-only join of anomalies, audit entries and CSP violations.

Operators drill down from one record (usually an anomaly) to everything that
plausibly relates to it. Two join rules apply:

- identifier: a record whose id equals the anchor id, or that references it
  (``AuditEntry.entity_id``, ``CspViolation.correlation_id``), or that the
  anchor itself references.
- time window: a record of a *different* kind whose time span lies within
  ``window_seconds`` of the anchor's span. Anomalies span their whole minute.

The inputs are never mutated; unknown ids yield an empty list.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from shared.contracts.admin import AuditEntry, CspViolation, RelatedRecord
from shared.contracts.analytics import AnomalyRecord
from shared.contracts.common import RecordKind

ANOMALY_ID_PREFIX = "anomaly:"
MINUTE_MS = 60_000


def anomaly_id(minute_ts: int) -> str:
    """Stable identifier for the anomaly flagged on ``minute_ts`` (epoch ms)."""
    return f"{ANOMALY_ID_PREFIX}{minute_ts}"


def _parse_at(value: str | None) -> float | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


def _iso_ms(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, UTC).isoformat()


@dataclass(frozen=True)
class _Candidate:
    kind: RecordKind
    id: str
    at: str
    start: float | None
    end: float | None
    refs: frozenset[str]
    summary: str

    def distance(self, other: _Candidate) -> float | None:
        if self.start is None or self.end is None:
            return None
        if other.start is None or other.end is None:
            return None
        return max(0.0, self.start - other.end, other.start - self.end)


def _from_anomalies(items: Iterable[AnomalyRecord]) -> list[_Candidate]:
    out: list[_Candidate] = []
    for item in items:
        start = item.minute_ts / 1000
        out.append(
            _Candidate(
                kind=RecordKind.ANOMALY,
                id=item.id,
                at=_iso_ms(item.minute_ts),
                start=start,
                end=start + MINUTE_MS / 1000,
                refs=frozenset(),
                summary=f"{item.count} requests (mean {item.mean:.1f}, z {item.z:+.2f})",
            )
        )
    return out


def _from_audit(items: Iterable[AuditEntry]) -> list[_Candidate]:
    out: list[_Candidate] = []
    for item in items:
        ts = _parse_at(item.at)
        out.append(
            _Candidate(
                kind=RecordKind.AUDIT,
                id=item.id,
                at=item.at,
                start=ts,
                end=ts,
                refs=frozenset({item.entity_id} if item.entity_id else ()),
                summary=f"{item.action} {item.entity}".strip(),
            )
        )
    return out


def _from_csp(items: Iterable[CspViolation]) -> list[_Candidate]:
    out: list[_Candidate] = []
    for item in items:
        ts = _parse_at(item.at)
        directive = item.violated_directive or item.effective_directive or "csp"
        out.append(
            _Candidate(
                kind=RecordKind.CSP_VIOLATION,
                id=item.id,
                at=item.at,
                start=ts,
                end=ts,
                refs=frozenset({item.correlation_id} if item.correlation_id else ()),
                summary=f"{directive} blocked {item.blocked_uri or 'unknown'}",
            )
        )
    return out


def find_related(
    record_id: str,
    *,
    anomalies: Sequence[AnomalyRecord] = (),
    audit_entries: Sequence[AuditEntry] = (),
    csp_violations: Sequence[CspViolation] = (),
    window_seconds: float = 300.0,
) -> list[RelatedRecord]:
    """Return records related to ``record_id``, closest first."""
    candidates = (
        _from_anomalies(tuple(anomalies))
        + _from_audit(tuple(audit_entries))
        + _from_csp(tuple(csp_violations))
    )
    anchor = next((c for c in candidates if c.id == record_id), None)
    window = max(0.0, float(window_seconds))

    ranked: list[tuple[int, float, str, RelatedRecord]] = []
    for candidate in candidates:
        if candidate is anchor:
            continue

        by_id = candidate.id == record_id or record_id in candidate.refs or (
            anchor is not None and candidate.id in anchor.refs
        )
        distance = candidate.distance(anchor) if anchor is not None else None

        if by_id:
            reason = "id"
            rank = 0
        elif (
            anchor is not None
            and candidate.kind != anchor.kind
            and distance is not None
            and distance <= window
        ):
            reason = "time-window"
            rank = 1
        else:
            continue

        ranked.append(
            (
                rank,
                distance if distance is not None else float("inf"),
                candidate.id,
                RelatedRecord(
                    kind=candidate.kind,
                    id=candidate.id,
                    at=candidate.at,
                    reason=reason,
                    summary=candidate.summary,
                ),
            )
        )

    ranked.sort(key=lambda item: (item[0], item[1], item[2]))
    return [item[3] for item in ranked]


__all__ = ["ANOMALY_ID_PREFIX", "anomaly_id", "find_related"]
