from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from ratewatch.cli._client import build_source
from ratewatch.config import Settings, get_settings
from ratewatch.errors import AllowlistUpdateError, FetchFailure
from ratewatch.source import API_KEY_HEADER, SnapshotSource

SUMMARY = {
    "ok": True,
    "time": "2023-11-14T22:13:20Z",
    "uptimeSec": 12.0,
    "totalRequests": 10,
    "byStatus": {"2xx": 7, "4xx": 1, "5xx": 2},
    "latency": {"avgMs": 11.0, "p95Ms": 12.5},
    "routesTop": [{"route": "/a", "count": 10}],
    "ipsTop": [{"ip": "10.0.0.1", "count": 10, "lastSeen": 1_700_000_000_000}],
}


def _source(
    handler: Callable[[httpx.Request], httpx.Response],
    **kwargs,
) -> tuple[SnapshotSource, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    source = SnapshotSource("http://rw.test/", client=client, **kwargs)
    return source, client


@pytest.mark.asyncio
async def test_fetch_snapshot_sends_read_key_and_stamps_local_clock() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=SUMMARY)

    source, client = _source(handler, api_key="write", metrics_api_key="read", clock=lambda: 42.0)
    async with source:
        snapshot = await source.fetch_snapshot()

    assert seen[0].url == httpx.URL("http://rw.test/api/metrics-summary")
    assert seen[0].headers[API_KEY_HEADER] == "read"
    assert snapshot.captured_at == 42.0
    assert snapshot.total_requests == 10
    assert snapshot.errors == 3
    assert snapshot.latency.p95_ms == 12.5
    assert snapshot.top_routes == (("/a", 10),)
    assert snapshot.top_ips[0].last_seen == 1_700_000_000_000
    # Injected clients belong to the caller.
    assert not client.is_closed
    await client.aclose()


@pytest.mark.asyncio
async def test_summary_detail_params_and_write_key_fallback() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=SUMMARY)

    source, _ = _source(handler, api_key="write")
    await source.fetch_summary(route="/a", ip="10.0.0.1")

    assert seen[0].url.params["route"] == "/a"
    assert seen[0].url.params["ip"] == "10.0.0.1"
    assert seen[0].headers[API_KEY_HEADER] == "write"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "status_code"),
    [
        (httpx.Response(500, json={"ok": False, "error": "boom"}), 500),
        (httpx.Response(401, json={"ok": False, "error": "invalid api key"}), 401),
        (httpx.Response(200, text="<html>maintenance</html>"), None),
        (httpx.Response(200, json={"ok": False}), None),
        (httpx.Response(200, json=[1, 2, 3]), None),
        (httpx.Response(200, json={"ok": True, "totalRequests": -1}), None),
    ],
)
async def test_bad_responses_raise_fetch_failure(
    response: httpx.Response, status_code: int | None
) -> None:
    source, _ = _source(lambda request: response)

    with pytest.raises(FetchFailure) as exc_info:
        await source.fetch_snapshot()

    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
async def test_transport_error_raises_fetch_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    source, _ = _source(handler)

    with pytest.raises(FetchFailure, match="connection refused"):
        await source.fetch_dashboard()


@pytest.mark.asyncio
async def test_allowlist_save_posts_entries_with_write_key() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "allowlist": body["allowlist"]})

    source, _ = _source(handler, api_key="write", metrics_api_key="read")
    saved = await source.set_ip_allowlist(["10.0.0.1", "10.0.0.2"])

    assert saved == ["10.0.0.1", "10.0.0.2"]
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/api/ip-allowlist"
    assert seen[0].headers[API_KEY_HEADER] == "write"


@pytest.mark.asyncio
async def test_rejected_allowlist_save_surfaces_server_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"ok": False, "error": "writes are disabled"})

    source, _ = _source(handler)

    with pytest.raises(AllowlistUpdateError) as exc_info:
        await source.set_route_allowlist(["/api/health"])

    assert str(exc_info.value) == "writes are disabled"
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_rejected_allowlist_save_with_validation_detail() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"detail": "allowlist must be a list"})

    source, _ = _source(handler, api_key="write")

    with pytest.raises(AllowlistUpdateError, match="allowlist must be a list"):
        await source.set_route_allowlist([])


@pytest.mark.asyncio
async def test_related_and_csp_reads() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.startswith("/api/analytics/related/"):
            return httpx.Response(
                200,
                json={
                    "ok": True,
                    "id": "anomaly:1",
                    "items": [
                        {
                            "kind": "audit",
                            "id": "a1",
                            "at": "2023-11-14T22:13:20Z",
                            "reason": "time_window",
                            "summary": "route_allowlist updated",
                        }
                    ],
                },
            )
        return httpx.Response(200, json={"ok": True, "items": [], "total": 0})

    source, _ = _source(handler)
    related = await source.fetch_related("anomaly:1", window_seconds=300)
    violations = await source.list_csp_violations(limit=5)

    assert related.items[0].kind == "audit"
    assert seen[0].url.params["window"] == "300"
    assert seen[1].url.params["limit"] == "5"
    assert violations.total == 0


def test_from_settings_uses_configured_keys() -> None:
    settings = Settings(url="http://example.test:9000", api_key="w", fetch_timeout_seconds=2.0)

    source = SnapshotSource.from_settings(settings)

    assert source._base_url == "http://example.test:9000/api"
    assert source._read_key == "w"
    assert source._timeout == 2.0


def test_cli_source_uses_environment_and_url_override(monkeypatch) -> None:
    monkeypatch.setenv("RATEWATCH_URL", "http://configured.test")
    monkeypatch.setenv("RATEWATCH_METRICS_API_KEY", "read")
    get_settings.cache_clear()

    assert build_source()._base_url == "http://configured.test/api"

    overridden = build_source("http://other.test/")
    assert overridden._base_url == "http://other.test/api"
    assert overridden._read_key == "read"
