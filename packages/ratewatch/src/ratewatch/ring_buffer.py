"""Fixed-capacity FIFO windows kept as immutable tuples."""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def capacity_for(window_seconds: float, poll_interval_ms: float) -> int:
    """Samples needed for the window to span ``window_seconds`` of wall clock."""
    if poll_interval_ms <= 0:
        raise ValueError("poll_interval_ms must be > 0")
    return max(1, math.floor(window_seconds * 1000 / poll_interval_ms + 0.5))


def push(buf: Sequence[T], value: T, limit: int) -> tuple[T, ...]:
    """Append ``value``, dropping the oldest items beyond ``limit``."""
    if limit < 1:
        raise ValueError("limit must be >= 1")
    items = (*buf, value)
    if len(items) > limit:
        return items[-limit:]
    return items


def truncate(buf: Sequence[T], limit: int) -> tuple[T, ...]:
    """Keep the newest ``limit`` items (used when the capacity shrinks)."""
    if limit < 1:
        raise ValueError("limit must be >= 1")
    items = tuple(buf)
    if len(items) > limit:
        return items[-limit:]
    return items
