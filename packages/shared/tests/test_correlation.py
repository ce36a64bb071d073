from __future__ import annotations

import copy

from shared.contracts import AnomalyRecord, AuditEntry, CspViolation
from shared.correlation import anomaly_id, find_related

# 2023-11-14T22:14:00Z
MINUTE_TS = 1_700_000_040_000


def _anomaly(minute_ts: int = MINUTE_TS) -> AnomalyRecord:
    return AnomalyRecord(
        id=anomaly_id(minute_ts),
        minute_ts=minute_ts,
        count=40,
        mean=10.0,
        std=1.0,
        z=30.0,
    )


def _fixtures() -> tuple[list[AnomalyRecord], list[AuditEntry], list[CspViolation]]:
    anomalies = [_anomaly(), _anomaly(MINUTE_TS + 120_000)]
    audit = [
        AuditEntry(
            id="audit:near",
            at="2023-11-14T22:16:00+00:00",
            action="allowlist.update",
            entity="route-allowlist",
        ),
        AuditEntry(
            id="audit:far",
            at="2023-11-14T22:30:00+00:00",
            action="allowlist.update",
            entity="ip-allowlist",
        ),
        AuditEntry(
            id="audit:ref",
            at="2023-11-15T09:00:00+00:00",
            action="anomaly.ack",
            entity="anomaly",
            entity_id=anomaly_id(MINUTE_TS),
        ),
    ]
    csp = [
        CspViolation(
            id="csp:inside",
            at="2023-11-14T22:14:30+00:00",
            blocked_uri="https://evil.example",
            violated_directive="script-src",
            correlation_id="req-1",
        )
    ]
    return anomalies, audit, csp


def test_anomaly_id_format() -> None:
    assert anomaly_id(MINUTE_TS) == "anomaly:1700000040000"


def test_related_orders_id_matches_then_by_time_distance() -> None:
    anomalies, audit, csp = _fixtures()

    related = find_related(
        anomaly_id(MINUTE_TS),
        anomalies=anomalies,
        audit_entries=audit,
        csp_violations=csp,
        window_seconds=300,
    )

    assert [(r.id, r.reason) for r in related] == [
        ("audit:ref", "id"),
        ("csp:inside", "time-window"),
        ("audit:near", "time-window"),
    ]
    assert related[1].summary == "script-src blocked https://evil.example"


def test_window_limits_time_matches() -> None:
    anomalies, audit, csp = _fixtures()

    related = find_related(
        anomaly_id(MINUTE_TS),
        anomalies=anomalies,
        audit_entries=audit,
        csp_violations=csp,
        window_seconds=0,
    )

    assert [r.id for r in related] == ["audit:ref", "csp:inside"]


def test_reference_ids_and_reverse_lookup() -> None:
    anomalies, audit, csp = _fixtures()

    by_correlation = find_related("req-1", csp_violations=csp)
    assert [(r.kind, r.id, r.reason) for r in by_correlation] == [
        ("csp_violation", "csp:inside", "id")
    ]

    from_audit = find_related("audit:ref", anomalies=anomalies, audit_entries=audit)
    assert [(r.kind, r.id, r.reason) for r in from_audit] == [
        ("anomaly", anomaly_id(MINUTE_TS), "id")
    ]


def test_unknown_id_is_empty_and_inputs_untouched() -> None:
    anomalies, audit, csp = _fixtures()
    before = copy.deepcopy((anomalies, audit, csp))

    assert find_related("nope", anomalies=anomalies, audit_entries=audit, csp_violations=csp) == []
    find_related(anomaly_id(MINUTE_TS), anomalies=anomalies, audit_entries=audit, csp_violations=csp)

    assert (anomalies, audit, csp) == before
