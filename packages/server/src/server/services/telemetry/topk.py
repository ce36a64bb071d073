"""Bounded heavy-hitter ranking (Space-Saving).

``TopK`` tracks at most ``capacity`` keys no matter how many distinct keys the
stream contains. When a new key arrives while the table is full, the entry with
the lowest count is replaced and the newcomer inherits that count as its
``error``.

Error bound, with ``N`` the sum of all increments and ``C`` the capacity:

- a reported ``count`` never underestimates the true count and overestimates
  it by at most the entry's ``error``, which is at most ``N / C``;
- every key whose true count exceeds ``N / C`` is present;
- an entry whose ``count - error`` is at least the next entry's ``count`` is
  ranked correctly.

For skewed route/IP/user streams the hot keys are inserted before the table
fills and are never the minimum, so they carry ``error == 0`` and the top-N is
exact. Long-tail entries may be ordered approximately.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class TopKEntry:
    key: str
    count: int
    error: int = 0

    @property
    def lower_bound(self) -> int:
        return self.count - self.error


class TopK:
    """Space-Saving counter keeping the ``capacity`` heaviest keys."""

    __slots__ = ("_capacity", "_entries", "_total")

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        # key -> [count, error]; insertion order breaks ties on eviction.
        self._entries: dict[str, list[int]] = {}
        self._total = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def total(self) -> int:
        """Sum of all increments, including those of evicted keys."""
        return self._total

    @property
    def error_bound(self) -> int:
        """Largest possible overestimate of any reported count."""
        if len(self._entries) < self._capacity:
            return 0
        return self._total // self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def increment(self, key: str, by: int = 1) -> str | None:
        """Count ``by`` occurrences of ``key``; return the evicted key, if any."""
        if by <= 0:
            return None
        self._total += by

        entry = self._entries.get(key)
        if entry is not None:
            entry[0] += by
            return None

        if len(self._entries) < self._capacity:
            self._entries[key] = [by, 0]
            return None

        victim = min(self._entries, key=lambda k: self._entries[k][0])
        floor = self._entries.pop(victim)[0]
        self._entries[key] = [floor + by, floor]
        return victim

    def count(self, key: str) -> int:
        entry = self._entries.get(key)
        return entry[0] if entry is not None else 0

    def entry(self, key: str) -> TopKEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return TopKEntry(key=key, count=entry[0], error=entry[1])

    def top_n(self, n: int) -> list[TopKEntry]:
        """Highest counts first; ties ordered by key for stable output."""
        if n <= 0:
            return []
        ranked = sorted(self._entries.items(), key=lambda kv: (-kv[1][0], kv[0]))
        return [
            TopKEntry(key=key, count=count, error=error)
            for key, (count, error) in ranked[:n]
        ]

    def discard(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._total = 0
