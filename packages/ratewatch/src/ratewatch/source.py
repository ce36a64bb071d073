"""HTTP access to a ratewatch server."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, Self, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from shared.contracts import (
    AllowlistRequest,
    AllowlistResponse,
    AnalyticsDashboardResponse,
    CspViolationsResponse,
    ErrorResponse,
    MetricsSummaryResponse,
    RelatedResponse,
)

from ratewatch.config import Settings, get_settings
from ratewatch.errors import AllowlistUpdateError, FetchFailure
from ratewatch.models import CounterSnapshot

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"

M = TypeVar("M", bound=BaseModel)


class SnapshotSource:
    """Reads telemetry from ``{base_url}/api`` and saves allowlists.

    Every read failure (transport error, non-2xx status, undecodable body,
    ``ok`` not true) is raised as ``FetchFailure``. Allowlist saves raise
    ``AllowlistUpdateError`` instead so the operator sees them.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        metrics_api_key: str | None = None,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._base_url = f"{base_url.rstrip('/')}/api"
        self._api_key = api_key
        self._read_key = metrics_api_key or api_key
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> SnapshotSource:
        settings = settings or get_settings()
        return cls(
            settings.url,
            api_key=settings.api_key,
            metrics_api_key=settings.metrics_api_key,
            timeout=settings.fetch_timeout_seconds,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: Any,
    ) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        client = self._client
        if client is None or not self._owns_client:
            return
        if not client.is_closed:
            await client.aclose()
        self._client = None

    def _read_headers(self) -> dict[str, str]:
        if self._read_key:
            return {API_KEY_HEADER: self._read_key}
        return {}

    async def _get_json(
        self,
        path: str,
        model: type[M],
        *,
        params: dict[str, Any] | None = None,
    ) -> M:
        url = f"{self._base_url}{path}"
        client = self._ensure_client()
        try:
            resp = await client.get(url, params=params, headers=self._read_headers())
        except httpx.HTTPError as exc:
            raise FetchFailure(f"GET {path} failed: {exc}") from exc

        if not resp.is_success:
            raise FetchFailure(
                f"GET {path} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise FetchFailure(f"GET {path} returned a non-JSON body") from exc

        if not isinstance(payload, dict) or payload.get("ok") is not True:
            raise FetchFailure(f"GET {path} did not report ok")

        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise FetchFailure(f"GET {path} returned an invalid payload: {exc}") from exc

    async def fetch_summary(
        self, *, route: str | None = None, ip: str | None = None
    ) -> MetricsSummaryResponse:
        params = {k: v for k, v in (("route", route), ("ip", ip)) if v}
        return await self._get_json(
            "/metrics-summary", MetricsSummaryResponse, params=params or None
        )

    async def fetch_snapshot(self) -> CounterSnapshot:
        """Fetch cumulative counters, stamped with the local clock on arrival."""
        summary = await self.fetch_summary()
        return CounterSnapshot.from_summary(summary, captured_at=self._clock())

    async def fetch_dashboard(self, minutes: int = 60) -> AnalyticsDashboardResponse:
        return await self._get_json(
            "/analytics/dashboard",
            AnalyticsDashboardResponse,
            params={"minutes": minutes},
        )

    async def list_csp_violations(self, limit: int = 50) -> CspViolationsResponse:
        return await self._get_json(
            "/csp-violations", CspViolationsResponse, params={"limit": limit}
        )

    async def fetch_related(
        self, record_id: str, *, window_seconds: int | None = None
    ) -> RelatedResponse:
        params = {"window": window_seconds} if window_seconds is not None else None
        return await self._get_json(
            f"/analytics/related/{record_id}", RelatedResponse, params=params
        )

    async def get_route_allowlist(self) -> list[str]:
        resp = await self._get_json("/route-allowlist", AllowlistResponse)
        return resp.allowlist

    async def get_ip_allowlist(self) -> list[str]:
        resp = await self._get_json("/ip-allowlist", AllowlistResponse)
        return resp.allowlist

    async def set_route_allowlist(self, entries: list[str]) -> list[str]:
        return await self._save_allowlist("/route-allowlist", entries)

    async def set_ip_allowlist(self, entries: list[str]) -> list[str]:
        return await self._save_allowlist("/ip-allowlist", entries)

    async def _save_allowlist(self, path: str, entries: list[str]) -> list[str]:
        url = f"{self._base_url}{path}"
        headers = {API_KEY_HEADER: self._api_key} if self._api_key else {}
        body = AllowlistRequest(allowlist=entries).model_dump(by_alias=True)
        client = self._ensure_client()
        try:
            resp = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise AllowlistUpdateError(f"Saving {path} failed: {exc}") from exc

        if not resp.is_success:
            raise AllowlistUpdateError(
                _error_message(resp), status_code=resp.status_code
            )

        try:
            saved = AllowlistResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise AllowlistUpdateError(
                f"Saving {path} returned an invalid payload",
                status_code=resp.status_code,
            ) from exc

        logger.debug("Saved %d entries to %s", len(saved.allowlist), path)
        return saved.allowlist


def _error_message(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"

    if isinstance(payload, dict):
        try:
            return ErrorResponse.model_validate(payload).error
        except ValidationError:
            detail = payload.get("detail")
            if isinstance(detail, str):
                return detail
    return f"HTTP {resp.status_code}"


__all__ = ["API_KEY_HEADER", "SnapshotSource"]
