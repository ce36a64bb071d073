from __future__ import annotations

import pytest
from shared.contracts import RouteCount

from server.services.telemetry import (
    MINUTE_MS,
    AggregatorConfig,
    BusinessHours,
    MinuteBucketAggregator,
    RequestEvent,
    detect_anomalies,
    minute_floor_ms,
)

# 2023-11-14T22:13:00Z, a Tuesday.
T0 = 1_699_999_980.0


def _at(minute: int, offset: float = 0.0) -> float:
    return T0 + minute * 60 + offset


def _fill(
    agg: MinuteBucketAggregator,
    minute: int,
    count: int,
    *,
    route: str = "/a",
    status: int = 200,
) -> list:
    emitted = []
    for i in range(count):
        emitted.extend(
            agg.ingest(
                RequestEvent(t=_at(minute, i % 59), route=route, status=status, latency_ms=10.0)
            )
        )
    return emitted


def _aggregator(**overrides) -> MinuteBucketAggregator:  # type: ignore[no-untyped-def]
    params = {"window": 10, "min_baseline": 5, "threshold": 3.0, "retention_minutes": 60}
    params.update(overrides)
    return MinuteBucketAggregator(AggregatorConfig(**params))


def _alternating_baseline(agg: MinuteBucketAggregator, minutes: int = 10) -> None:
    for minute in range(minutes):
        assert _fill(agg, minute, 10 if minute % 2 == 0 else 12) == []


def test_spike_four_sigma_above_mean_is_flagged() -> None:
    agg = _aggregator()
    _alternating_baseline(agg)
    _fill(agg, 10, 15)

    emitted = agg.advance(_at(11))

    assert len(emitted) == 1
    anomaly = emitted[0]
    assert anomaly.minute_ts == minute_floor_ms(_at(10))
    assert anomaly.count == 15
    assert anomaly.mean == pytest.approx(11.0)
    assert anomaly.std == pytest.approx(1.0)
    assert anomaly.z == pytest.approx(4.0)
    assert anomaly.routes_top == (RouteCount(route="/a", count=15),)
    assert anomaly.id == f"anomaly:{anomaly.minute_ts}"
    assert agg.snapshot().anomalies == (anomaly,)


def test_one_sigma_deviation_is_not_flagged() -> None:
    agg = _aggregator()
    _alternating_baseline(agg)
    _fill(agg, 10, 12)

    assert agg.advance(_at(11)) == []
    assert agg.snapshot().anomalies == ()


def test_closing_bucket_is_returned_by_next_minute_ingest() -> None:
    agg = _aggregator()
    _alternating_baseline(agg)
    _fill(agg, 10, 15)

    emitted = _fill(agg, 11, 1)

    assert [a.count for a in emitted] == [15]


def test_no_flags_until_baseline_is_long_enough() -> None:
    agg = _aggregator()
    _fill(agg, 0, 1)
    for minute in (1, 2, 3):
        _fill(agg, minute, 100)
    agg.advance(_at(4))

    assert agg.snapshot().anomalies == ()


def test_empty_minutes_are_zero_filled_and_can_flag_a_lull() -> None:
    agg = _aggregator()
    for minute in range(10):
        _fill(agg, minute, 10)

    emitted = _fill(agg, 11, 10)

    assert len(emitted) == 1
    lull = emitted[0]
    assert lull.count == 0
    assert lull.z == pytest.approx(-10.0)
    assert lull.routes_top == ()

    series = agg.snapshot().series
    assert [b.total for b in series[-2:]] == [10, 0]
    assert series[-1].minute_ts == minute_floor_ms(_at(10))


def test_long_gap_is_bounded_by_retention() -> None:
    agg = _aggregator(retention_minutes=30)
    _fill(agg, 0, 5)
    _fill(agg, 100, 5)

    series = agg.snapshot().series
    expected = [minute_floor_ms(_at(m)) for m in range(70, 100)]
    assert [b.minute_ts for b in series] == expected
    assert all(b.total == 0 for b in series)


def test_late_events_do_not_reopen_closed_buckets() -> None:
    agg = _aggregator()
    _fill(agg, 0, 3)
    _fill(agg, 2, 1)

    assert agg.ingest(RequestEvent(t=_at(0, 30), route="/late", status=200, latency_ms=1.0)) == []

    snapshot = agg.snapshot()
    assert snapshot.late_events == 1
    assert snapshot.series[0].total == 3
    assert "/late" in {entry.key for entry in snapshot.top_routes}

    agg.advance(_at(5))
    agg.ingest(RequestEvent(t=_at(4), route="/late", status=200, latency_ms=1.0))
    assert agg.late_events == 2


def test_window_zero_fills_and_includes_open_bucket() -> None:
    agg = _aggregator()
    _fill(agg, 0, 2, route="/x")
    _fill(agg, 3, 1, route="/y", status=503)

    snapshot = agg.snapshot()
    window = snapshot.window(5, _at(4, 1))

    assert [b.total for b in window] == [2, 0, 0, 1, 0]
    assert [b.minute_ts for b in window] == [
        minute_floor_ms(_at(0)) + i * MINUTE_MS for i in range(5)
    ]
    assert window[3].errors == 1
    assert window[0].p95_ms == pytest.approx(10.0, rel=0.02)
    assert snapshot.window_routes(5, _at(4, 1)) == [
        RouteCount(route="/x", count=2),
        RouteCount(route="/y", count=1),
    ]
    assert snapshot.window(0, _at(4)) == []


def test_detect_anomalies_recomputes_over_series() -> None:
    agg = _aggregator()
    _alternating_baseline(agg)
    _fill(agg, 10, 15)
    agg.advance(_at(11))

    series = agg.snapshot().series
    strict = detect_anomalies(series, window=10, threshold=3.0, min_baseline=5)
    loose = detect_anomalies(series, window=10, threshold=0.5, min_baseline=5)

    assert [a.count for a in strict] == [15]
    assert len(loose) > len(strict)


def test_out_of_hours_profile_counts_events_and_closed_buckets() -> None:
    agg = MinuteBucketAggregator(AggregatorConfig(business_hours=BusinessHours()))
    in_hours = 1_699_956_000.0  # Tuesday 10:00 UTC
    after_hours = 1_700_000_000.0  # Tuesday 22:13 UTC

    for _ in range(3):
        agg.ingest(RequestEvent(t=in_hours, route="/day", status=200, latency_ms=5.0))
    for _ in range(2):
        agg.ingest(RequestEvent(t=after_hours, route="/night", status=200, latency_ms=5.0))
    agg.advance(after_hours + 60)

    snapshot = agg.snapshot()
    assert snapshot.out_of_hours_total == 2
    assert dict(snapshot.out_of_hours_by_hour) == {22: 2}
    assert [entry.key for entry in snapshot.out_of_hours_by_route] == ["/night"]


def test_config_rejects_retention_shorter_than_window() -> None:
    with pytest.raises(ValueError):
        AggregatorConfig(window=60, retention_minutes=30)
