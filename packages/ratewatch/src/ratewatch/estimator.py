"""Delta rate estimation over cumulative counter snapshots."""

from __future__ import annotations

import logging

from shared.contracts import TelemetryCondition

from ratewatch.models import CounterSnapshot, RateSample

logger = logging.getLogger(__name__)

MIN_DT_SECONDS = 1.0


def is_counter_reset(prev: CounterSnapshot, curr: CounterSnapshot) -> bool:
    """True when the server's cumulative total went backwards (process restart)."""
    return curr.total_requests < prev.total_requests


def estimate(prev: CounterSnapshot | None, curr: CounterSnapshot) -> RateSample | None:
    """Rates between two snapshots, or None when there is no usable baseline.

    ``dt`` is wall-clock seconds between captures clamped to at least one
    second, so retries and bursts of back-to-back polls cannot blow the rate
    up. A decreasing total is a counter reset: no sample is produced and the
    caller re-baselines on ``curr``. This function never updates a baseline.
    """
    if prev is None:
        return None

    if is_counter_reset(prev, curr):
        logger.info(
            "Counter reset detected (%d -> %d); re-baselining",
            prev.total_requests,
            curr.total_requests,
            extra={"condition": TelemetryCondition.COUNTER_RESET},
        )
        return None

    dt = max(MIN_DT_SECONDS, curr.captured_at - prev.captured_at)
    d_req = curr.total_requests - prev.total_requests
    d_err = max(0, curr.errors - prev.errors)

    rps = d_req / dt
    error_rate_pct = min(100.0, 100.0 * d_err / d_req) if d_req > 0 else 0.0
    return RateSample(t=curr.captured_at, rps=rps, error_rate_pct=error_rate_pct)
