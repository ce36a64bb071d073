from __future__ import annotations

from shared.contracts import AnalyticsDashboardResponse, AnomalyRecord, SeriesPoint

from ratewatch.cli._display import SPARK_CHARS, sparkline
from ratewatch.dashboard import (
    MINUTE_MS,
    AnomalyDirection,
    anomaly_direction,
    build_view,
    fill_series_gaps,
    is_stale,
    staleness_seconds,
)
from ratewatch.models import CounterSnapshot

T0 = 1_700_000_040_000


def _anomaly(minute_ts: int, z: float) -> AnomalyRecord:
    return AnomalyRecord(
        id=f"anomaly:{minute_ts}", minute_ts=minute_ts, count=1, mean=1.0, std=1.0, z=z
    )


def test_fill_series_gaps_sorts_and_zero_fills() -> None:
    points = [
        SeriesPoint(minute_ts=T0 + 3 * MINUTE_MS, total=4, errors=1),
        SeriesPoint(minute_ts=T0, total=2),
    ]

    filled = fill_series_gaps(points)

    assert [p.minute_ts for p in filled] == [T0 + i * MINUTE_MS for i in range(4)]
    assert [p.total for p in filled] == [2, 0, 0, 4]
    assert filled[3].errors == 1
    assert fill_series_gaps([]) == []


def test_staleness_after_two_missed_polls() -> None:
    snapshot = CounterSnapshot(captured_at=100.0, total_requests=1)

    assert staleness_seconds(snapshot, now=103.0) == 3.0
    assert staleness_seconds(None) is None
    assert is_stale(snapshot, 5000, now=110.0) is False
    assert is_stale(snapshot, 5000, now=110.5) is True
    assert is_stale(snapshot, 5000, now=104.0, missed_polls=0) is True
    assert is_stale(None, 5000) is True


def test_anomaly_direction_from_sign_of_z() -> None:
    assert anomaly_direction(_anomaly(T0, 4.2)) is AnomalyDirection.SPIKE
    assert anomaly_direction(_anomaly(T0, -3.5)) is AnomalyDirection.LULL


def test_build_view_orders_lists_for_display() -> None:
    resp = AnalyticsDashboardResponse.model_validate(
        {
            "ok": True,
            "minutes": 5,
            "series": [
                {"minuteTs": T0 + MINUTE_MS, "total": 9},
                {"minuteTs": T0 - MINUTE_MS, "total": 3},
            ],
            "topRoutes": [
                {"route": "/b", "count": 2},
                {"route": "/a", "count": 7},
                {"route": "/c", "count": 2},
            ],
            "anomalies": [
                _anomaly(T0 - MINUTE_MS, 3.4).model_dump(by_alias=True),
                _anomaly(T0 + MINUTE_MS, -4.0).model_dump(by_alias=True),
            ],
            "outOfHoursTop": [{"hour": 23, "count": 1}, {"hour": 2, "count": 5}],
            "usersTop": [{"id": "u-1", "count": 1}, {"id": "u-2", "count": 4}],
        }
    )

    view = build_view(resp)

    assert len(view.series) == 3
    assert view.total == 12
    assert view.peak is not None
    assert view.peak.total == 9
    assert [r.route for r in view.top_routes] == ["/a", "/b", "/c"]
    assert [a.minute_ts for a in view.anomalies] == [T0 + MINUTE_MS, T0 - MINUTE_MS]
    assert (view.spikes, view.lulls) == (1, 1)
    assert [h.hour for h in view.out_of_hours] == [2, 23]
    assert [u.id for u in view.users] == ["u-2", "u-1"]


def test_sparkline_scales_to_range() -> None:
    assert sparkline([]) == ""
    assert sparkline([3, 3]) == SPARK_CHARS[0] * 2
    assert sparkline([0, 7]) == SPARK_CHARS[0] + SPARK_CHARS[-1]
    assert sparkline(list(range(8))) == SPARK_CHARS
