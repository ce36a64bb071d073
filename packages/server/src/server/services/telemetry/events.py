"""Raw per-request telemetry events."""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass

from shared.contracts import StatusClass

MINUTE_MS = 60_000


@dataclass(frozen=True)
class RequestEvent:
    """One served request. ``t`` is epoch seconds."""

    t: float
    route: str
    status: int
    latency_ms: float
    ip: str | None = None
    user_id: str | None = None

    @property
    def status_class(self) -> StatusClass:
        return StatusClass.from_status(self.status)

    @property
    def is_error(self) -> bool:
        return self.status_class.is_error


def minute_floor_ms(epoch_seconds: float) -> int:
    """Floor an epoch-seconds timestamp to its minute, in epoch milliseconds."""
    return int(epoch_seconds // 60) * MINUTE_MS


def client_ip(headers: Mapping[str, str], peer: str | None) -> str:
    """First ``X-Forwarded-For`` hop, else the socket peer (IPv4-mapped prefix stripped)."""
    forwarded = headers.get("x-forwarded-for", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if not peer:
        return "unknown"
    return peer.removeprefix("::ffff:")


def pseudo_user_id(ip: str, user_agent: str, user: str | None = None) -> str:
    """Pseudonymous user key: ``u:<id>`` when authenticated, else a hash of ip and agent."""
    if user:
        return f"u:{user}"
    digest = hashlib.sha256(f"{ip}|{user_agent}".encode()).hexdigest()
    return f"g:{digest[:16]}"
