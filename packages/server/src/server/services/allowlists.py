"""Gauge allowlist storage backends.

Two lists are kept: route templates and client IPs whose counters an operator
wants surfaced. Updates are cleaned before they are stored: values are
stripped, empties dropped, and the list capped (100 routes, 200 IPs).
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from enum import StrEnum
from pathlib import Path
from typing import Any

from shared.keys import allowlist_key

logger = logging.getLogger(__name__)

_store: BaseAllowlistStore | None = None


class AllowlistKind(StrEnum):
    ROUTE = "route"
    IP = "ip"

    @property
    def limit(self) -> int:
        return 100 if self == AllowlistKind.ROUTE else 200

    @property
    def filename(self) -> str:
        return f"{self.value}-allowlist.json"


def clean_allowlist(values: Iterable[Any], kind: AllowlistKind) -> list[str]:
    cleaned = [str(value).strip() for value in values]
    return [value for value in cleaned if value][: kind.limit]


class BaseAllowlistStore(ABC):
    """Abstract allowlist storage backend."""

    def __init__(self, default_routes: Sequence[str] = ()) -> None:
        self._default_routes = clean_allowlist(default_routes, AllowlistKind.ROUTE)

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Short backend identifier for logs and health output."""

    @abstractmethod
    async def _load(self, kind: AllowlistKind) -> list[str] | None:
        """Return the stored list, or None when nothing was ever saved."""

    @abstractmethod
    async def _save(self, kind: AllowlistKind, values: list[str]) -> None:
        """Persist an already-cleaned list."""

    async def get(self, kind: AllowlistKind) -> list[str]:
        stored = await self._load(kind)
        if stored:
            return clean_allowlist(stored, kind)
        if kind == AllowlistKind.ROUTE:
            return list(self._default_routes)
        return []

    async def set(self, kind: AllowlistKind, values: Iterable[Any]) -> list[str]:
        cleaned = clean_allowlist(values, kind)
        await self._save(kind, cleaned)
        logger.info("Saved %s allowlist (%d entries, %s)", kind, len(cleaned), self.backend_name)
        return cleaned


class FileAllowlistStore(BaseAllowlistStore):
    """Store allowlists as JSON arrays under a local directory."""

    def __init__(self, directory: str | Path, default_routes: Sequence[str] = ()) -> None:
        super().__init__(default_routes)
        self._directory = Path(directory).expanduser()

    @property
    def backend_name(self) -> str:
        return "file"

    def path_for(self, kind: AllowlistKind) -> Path:
        return self._directory / kind.filename

    async def _load(self, kind: AllowlistKind) -> list[str] | None:
        target = self.path_for(kind)

        def _read() -> list[str] | None:
            if not target.exists():
                return None
            try:
                data = json.loads(target.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("Ignoring unreadable allowlist %s: %s", target, exc)
                return None
            if not isinstance(data, list):
                return None
            return [str(item) for item in data]

        return await asyncio.to_thread(_read)

    async def _save(self, kind: AllowlistKind, values: list[str]) -> None:
        target = self.path_for(kind)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(json.dumps(values, indent=2), encoding="utf-8")

        await asyncio.to_thread(_write)


class RedisAllowlistStore(BaseAllowlistStore):
    """Store allowlists as JSON strings in Redis."""

    def __init__(self, redis_client: Any, default_routes: Sequence[str] = ()) -> None:
        super().__init__(default_routes)
        self._redis = redis_client

    @property
    def backend_name(self) -> str:
        return "redis"

    async def _load(self, kind: AllowlistKind) -> list[str] | None:
        raw = await self._redis.get(allowlist_key(kind.value))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed %s allowlist in Redis", kind)
            return None
        if not isinstance(data, list):
            return None
        return [str(item) for item in data]

    async def _save(self, kind: AllowlistKind, values: list[str]) -> None:
        await self._redis.set(allowlist_key(kind.value), json.dumps(values))


def set_allowlist_store(store: BaseAllowlistStore | None) -> None:
    global _store
    _store = store


def get_allowlist_store() -> BaseAllowlistStore:
    if _store is None:
        raise RuntimeError("Allowlist store not initialized")
    return _store
