from __future__ import annotations

import json

import pytest

from server.services.allowlists import (
    AllowlistKind,
    FileAllowlistStore,
    RedisAllowlistStore,
    clean_allowlist,
)
from server.services.audit import AuditLog, CspViolationStore


def test_clean_allowlist_strips_drops_blanks_and_caps() -> None:
    assert clean_allowlist([" /a ", "", "  ", "/b", 7], AllowlistKind.ROUTE) == ["/a", "/b", "7"]
    assert len(clean_allowlist([f"/r{i}" for i in range(150)], AllowlistKind.ROUTE)) == 100
    assert len(clean_allowlist([f"10.0.0.{i}" for i in range(250)], AllowlistKind.IP)) == 200


@pytest.mark.asyncio
async def test_file_store_defaults_and_persists(tmp_path) -> None:
    store = FileAllowlistStore(tmp_path / "lists", default_routes=["/api/metrics-summary", " "])

    assert await store.get(AllowlistKind.ROUTE) == ["/api/metrics-summary"]
    assert await store.get(AllowlistKind.IP) == []

    saved = await store.set(AllowlistKind.IP, [" 10.0.0.1", "", "10.0.0.2 "])
    assert saved == ["10.0.0.1", "10.0.0.2"]

    on_disk = json.loads(store.path_for(AllowlistKind.IP).read_text(encoding="utf-8"))
    assert on_disk == saved
    reopened = FileAllowlistStore(tmp_path / "lists")
    assert await reopened.get(AllowlistKind.IP) == saved


@pytest.mark.asyncio
async def test_file_store_ignores_corrupt_file(tmp_path) -> None:
    store = FileAllowlistStore(tmp_path, default_routes=["/x"])
    store.path_for(AllowlistKind.ROUTE).write_text("{not json", encoding="utf-8")

    assert await store.get(AllowlistKind.ROUTE) == ["/x"]


@pytest.mark.asyncio
async def test_redis_store_round_trips_and_ignores_malformed(fake_redis) -> None:
    store = RedisAllowlistStore(fake_redis, default_routes=["/default"])

    assert await store.get(AllowlistKind.ROUTE) == ["/default"]
    await store.set(AllowlistKind.ROUTE, ["/a", "/b"])
    assert await store.get(AllowlistKind.ROUTE) == ["/a", "/b"]
    assert json.loads(await fake_redis.get("ratewatch:allowlist:route")) == ["/a", "/b"]

    await fake_redis.set("ratewatch:allowlist:ip", b"oops")
    assert await store.get(AllowlistKind.IP) == []


def test_audit_log_is_bounded_and_ordered() -> None:
    log = AuditLog(maxlen=2)
    first = log.record("allowlist.update", "route-allowlist", entity_id="req-1")
    log.record("allowlist.update", "ip-allowlist")
    log.record("allowlist.update", "route-allowlist", detail="3 entries")

    entries = log.entries()
    assert len(log) == 2
    assert first not in entries
    assert entries[-1].detail == "3 entries"
    assert first.id.startswith("audit:")


def test_csp_store_normalizes_report_variants() -> None:
    store = CspViolationStore(maxlen=10)

    legacy = store.add(
        {
            "csp-report": {
                "blocked-uri": "https://evil.example/x.js",
                "violated-directive": "script-src",
                "line-number": "12",
                "status-code": "not-a-number",
            }
        },
        correlation_id="req-9",
    )
    modern = store.add({"blockedURL": "ignored", "effectiveDirective": "img-src", "columnNumber": 4})

    assert legacy.blocked_uri == "https://evil.example/x.js"
    assert legacy.violated_directive == "script-src"
    assert legacy.line_number == 12
    assert legacy.status_code is None
    assert legacy.correlation_id == "req-9"
    assert modern.effective_directive == "img-src"
    assert modern.column_number == 4
    assert [v.id for v in store.newest(5)] == [modern.id, legacy.id]
    assert store.newest(1) == [modern]
