"""Streaming latency quantiles with a relative-error guarantee.

Values are counted in logarithmic buckets ``(gamma**(i-1), gamma**i]`` with
``gamma = (1 + alpha) / (1 - alpha)``. Any quantile estimate is within
``alpha`` relative error of the true sample quantile (1% by default), which
holds at p95/p99 under any load shape. When more than ``max_buckets`` buckets
are populated the lowest ones are merged, which only degrades the accuracy of
the smallest values.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

DEFAULT_RELATIVE_ACCURACY = 0.01
DEFAULT_MAX_BUCKETS = 2048


@dataclass(frozen=True)
class QuantileSummary:
    count: int
    avg: float | None
    p50: float | None
    p95: float | None
    p99: float | None


class LatencySketch:
    """Mergeable log-bucket quantile sketch for non-negative values."""

    __slots__ = (
        "_alpha",
        "_gamma",
        "_log_gamma",
        "_max_buckets",
        "_bins",
        "_zero_count",
        "_count",
        "_sum",
        "_min",
        "_max",
    )

    def __init__(
        self,
        relative_accuracy: float = DEFAULT_RELATIVE_ACCURACY,
        max_buckets: int = DEFAULT_MAX_BUCKETS,
    ) -> None:
        if not 0 < relative_accuracy < 1:
            raise ValueError("relative_accuracy must be in (0, 1)")
        self._alpha = relative_accuracy
        self._gamma = (1 + relative_accuracy) / (1 - relative_accuracy)
        self._log_gamma = math.log(self._gamma)
        self._max_buckets = max(16, max_buckets)
        self._bins: dict[int, int] = {}
        self._zero_count = 0
        self._count = 0
        self._sum = 0.0
        self._min = math.inf
        self._max = -math.inf

    @property
    def relative_accuracy(self) -> float:
        return self._alpha

    @property
    def count(self) -> int:
        return self._count

    @property
    def avg(self) -> float | None:
        if self._count == 0:
            return None
        return self._sum / self._count

    def _index(self, value: float) -> int:
        return math.ceil(math.log(value) / self._log_gamma)

    def _value(self, index: int) -> float:
        return 2 * self._gamma**index / (self._gamma + 1)

    def add(self, value: float) -> None:
        if value != value or value < 0:  # NaN or negative
            return
        self._count += 1
        self._sum += value
        self._min = min(self._min, value)
        self._max = max(self._max, value)

        if value <= 1e-9:
            self._zero_count += 1
            return

        index = self._index(value)
        self._bins[index] = self._bins.get(index, 0) + 1
        if len(self._bins) > self._max_buckets:
            self._collapse()

    def _collapse(self) -> None:
        ordered = sorted(self._bins)
        excess = len(ordered) - self._max_buckets
        target = ordered[excess]
        merged = sum(self._bins.pop(index) for index in ordered[:excess])
        self._bins[target] += merged

    def merge(self, other: LatencySketch) -> None:
        if other._gamma != self._gamma:
            raise ValueError("cannot merge sketches with different accuracy")
        if other._count == 0:
            return
        for index, value in other._bins.items():
            self._bins[index] = self._bins.get(index, 0) + value
        self._zero_count += other._zero_count
        self._count += other._count
        self._sum += other._sum
        self._min = min(self._min, other._min)
        self._max = max(self._max, other._max)
        if len(self._bins) > self._max_buckets:
            self._collapse()

    def quantile(self, q: float) -> float | None:
        if self._count == 0:
            return None
        q = min(max(q, 0.0), 1.0)
        rank = q * (self._count - 1)

        if rank < self._zero_count:
            return 0.0

        cumulative = self._zero_count
        estimate = self._max
        for index in sorted(self._bins):
            cumulative += self._bins[index]
            if cumulative > rank:
                estimate = self._value(index)
                break
        return min(max(estimate, self._min), self._max)

    def summary(self) -> QuantileSummary:
        return QuantileSummary(
            count=self._count,
            avg=self.avg,
            p50=self.quantile(0.5),
            p95=self.quantile(0.95),
            p99=self.quantile(0.99),
        )
