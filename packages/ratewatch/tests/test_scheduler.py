from __future__ import annotations

import asyncio

import pytest

from ratewatch.errors import FetchFailure
from ratewatch.models import CounterSnapshot, RateSample
from ratewatch.scheduler import PollingScheduler


def _snap(t: float, total: int) -> CounterSnapshot:
    return CounterSnapshot(captured_at=t, total_requests=total)


class _ScriptedFetcher:
    """Returns queued snapshots in order; queued exceptions are raised."""

    def __init__(self, *items: CounterSnapshot | Exception) -> None:
        self.items = list(items)
        self.calls = 0

    async def __call__(self) -> CounterSnapshot:
        self.calls += 1
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class _BlockingFetcher:
    """Holds each fetch open until ``release`` is set."""

    def __init__(self, snapshot: CounterSnapshot) -> None:
        self.snapshot = snapshot
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def __call__(self) -> CounterSnapshot:
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return self.snapshot


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        PollingScheduler(_ScriptedFetcher(), poll_interval_ms=0)


@pytest.mark.asyncio
async def test_first_tick_only_baselines() -> None:
    fetcher = _ScriptedFetcher(_snap(0, 100), _snap(5, 150))
    scheduler = PollingScheduler(fetcher, poll_interval_ms=5000, window_seconds=60)

    assert await scheduler.tick() is None
    assert scheduler.baseline is not None
    assert scheduler.samples == ()

    sample = await scheduler.tick()
    assert sample is not None
    assert sample.rps == pytest.approx(10.0)
    assert scheduler.samples == (sample,)
    assert scheduler.limit == 12


@pytest.mark.asyncio
async def test_failed_fetch_keeps_baseline_for_next_delta() -> None:
    fetcher = _ScriptedFetcher(_snap(0, 100), FetchFailure("boom"), _snap(10, 200))
    scheduler = PollingScheduler(fetcher, poll_interval_ms=5000)

    await scheduler.tick()
    assert await scheduler.tick() is None
    assert scheduler.stats.failures == 1
    assert scheduler.baseline is not None
    assert scheduler.baseline.captured_at == 0

    sample = await scheduler.tick()
    assert sample is not None
    assert sample.rps == pytest.approx(10.0)


@pytest.mark.asyncio
async def test_counter_reset_rebaselines_without_sample() -> None:
    fetcher = _ScriptedFetcher(_snap(0, 100), _snap(5, 150), _snap(10, 120), _snap(15, 170))
    received: list[RateSample] = []
    scheduler = PollingScheduler(fetcher, on_sample=received.append)

    results = [await scheduler.tick() for _ in range(4)]

    assert results[0] is None
    assert results[2] is None
    assert scheduler.stats.counter_resets == 1
    assert [s.rps for s in received] == pytest.approx([10.0, 10.0])
    assert scheduler.baseline is not None
    assert scheduler.baseline.total_requests == 170


@pytest.mark.asyncio
async def test_pause_stops_fetching_and_resume_rebaselines() -> None:
    fetcher = _ScriptedFetcher(_snap(0, 100), _snap(100, 600), _snap(105, 650))
    scheduler = PollingScheduler(fetcher)

    await scheduler.tick()
    await scheduler.pause()
    assert scheduler.paused
    assert await scheduler.tick() is None
    assert fetcher.calls == 1

    await scheduler.resume()
    assert not scheduler.paused
    # The paused gap must not be folded into a rate.
    assert await scheduler.tick() is None
    assert scheduler.samples == ()

    sample = await scheduler.tick()
    assert sample is not None
    assert sample.rps == pytest.approx(10.0)


@pytest.mark.asyncio
async def test_result_from_previous_generation_is_discarded() -> None:
    fetcher = _BlockingFetcher(_snap(10, 500))
    scheduler = PollingScheduler(fetcher, poll_interval_ms=1000, window_seconds=10)

    pending = asyncio.create_task(scheduler.tick())
    await fetcher.started.wait()
    generation = scheduler.generation

    await scheduler.set_interval_ms(2000)
    assert scheduler.generation == generation + 1

    fetcher.release.set()
    assert await pending is None
    assert scheduler.baseline is None
    assert scheduler.stats.stale_discarded == 1


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped() -> None:
    fetcher = _BlockingFetcher(_snap(0, 100))
    scheduler = PollingScheduler(fetcher)

    first = asyncio.create_task(scheduler.tick())
    await fetcher.started.wait()

    assert await scheduler.tick() is None
    assert scheduler.stats.skipped_in_flight == 1

    fetcher.release.set()
    await first
    assert fetcher.calls == 1
    assert scheduler.baseline is not None


@pytest.mark.asyncio
async def test_older_snapshot_than_baseline_is_discarded() -> None:
    fetcher = _ScriptedFetcher(_snap(10, 100), _snap(5, 50))
    scheduler = PollingScheduler(fetcher)

    await scheduler.tick()
    assert await scheduler.tick() is None
    assert scheduler.stats.stale_discarded == 1
    assert scheduler.baseline is not None
    assert scheduler.baseline.captured_at == 10


@pytest.mark.asyncio
async def test_set_interval_resizes_window_and_keeps_newest() -> None:
    snapshots = [_snap(float(i), i * 10) for i in range(8)]
    scheduler = PollingScheduler(
        _ScriptedFetcher(*snapshots), poll_interval_ms=1000, window_seconds=5
    )
    for _ in snapshots:
        await scheduler.tick()

    assert scheduler.limit == 5
    assert len(scheduler.samples) == 5

    await scheduler.set_interval_ms(2500)

    assert scheduler.limit == 2
    assert [s.t for s in scheduler.samples] == [6.0, 7.0]
    assert not scheduler.running

    scheduler.set_window_seconds(1)
    assert scheduler.limit == 1
    assert [s.t for s in scheduler.samples] == [7.0]


@pytest.mark.asyncio
async def test_timer_polls_until_stopped() -> None:
    counter = {"n": 0}
    got_two = asyncio.Event()

    async def fetch() -> CounterSnapshot:
        counter["n"] += 1
        return _snap(float(counter["n"]), counter["n"] * 10)

    def on_sample(_: RateSample) -> None:
        if len(scheduler.samples) >= 2:
            got_two.set()

    scheduler = PollingScheduler(fetch, poll_interval_ms=5, window_seconds=1, on_sample=on_sample)

    await scheduler.start()
    assert scheduler.running
    await asyncio.wait_for(got_two.wait(), timeout=2)

    await scheduler.stop()
    assert not scheduler.running
    calls = counter["n"]
    await asyncio.sleep(0.03)
    assert counter["n"] == calls
    assert all(s.rps == pytest.approx(10.0) for s in scheduler.samples)


class _CountingFetcher:
    """Returns a fresh snapshot on every call, 10 requests per second apart."""

    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> CounterSnapshot:
        self.calls += 1
        return _snap(float(self.calls), self.calls * 10)


def _live_timers() -> int:
    return sum(
        1
        for task in asyncio.all_tasks()
        if not task.done() and getattr(task.get_coro(), "__name__", "") == "_run"
    )


async def _assert_quiet_after_stop(
    scheduler: PollingScheduler, fetcher: _CountingFetcher
) -> None:
    await scheduler.stop()
    await asyncio.sleep(0.01)
    calls = fetcher.calls
    await asyncio.sleep(0.05)
    assert fetcher.calls == calls
    assert _live_timers() == 0
    assert not scheduler.running


@pytest.mark.asyncio
async def test_sequential_starts_leave_one_timer() -> None:
    fetcher = _CountingFetcher()
    scheduler = PollingScheduler(fetcher, poll_interval_ms=5)

    await scheduler.start()
    await scheduler.start()
    await scheduler.start()
    await asyncio.sleep(0.01)

    assert _live_timers() == 1
    await _assert_quiet_after_stop(scheduler, fetcher)


@pytest.mark.asyncio
async def test_concurrent_starts_leave_one_timer() -> None:
    fetcher = _CountingFetcher()
    scheduler = PollingScheduler(fetcher, poll_interval_ms=5)

    await scheduler.start()
    await asyncio.gather(scheduler.start(), scheduler.start())
    await asyncio.sleep(0.01)

    assert _live_timers() == 1
    assert scheduler.running
    await _assert_quiet_after_stop(scheduler, fetcher)


@pytest.mark.asyncio
async def test_reconfigure_racing_start_leaves_one_timer() -> None:
    fetcher = _CountingFetcher()
    scheduler = PollingScheduler(fetcher, poll_interval_ms=5)

    await scheduler.start()
    await asyncio.gather(scheduler.set_interval_ms(10), scheduler.start())
    await asyncio.sleep(0.01)

    assert _live_timers() == 1
    await _assert_quiet_after_stop(scheduler, fetcher)


@pytest.mark.asyncio
async def test_first_snapshot_after_stop_only_rebaselines() -> None:
    fetcher = _ScriptedFetcher(_snap(0, 100), _snap(1000, 101_000), _snap(1005, 101_050))
    scheduler = PollingScheduler(fetcher, poll_interval_ms=60_000)

    await scheduler.tick()
    await scheduler.start()
    await scheduler.stop()
    calls = fetcher.calls

    # No rate may span the 1000s the scheduler sat stopped.
    assert await scheduler.tick() is None
    assert fetcher.calls == calls + 1
    assert scheduler.samples == ()
    assert scheduler.baseline is not None
    assert scheduler.baseline.captured_at == 1000

    sample = await scheduler.tick()
    assert sample is not None
    assert sample.rps == pytest.approx(10.0)


@pytest.mark.asyncio
async def test_stop_abandons_in_flight_fetch() -> None:
    fetcher = _BlockingFetcher(_snap(0, 100))
    scheduler = PollingScheduler(fetcher, poll_interval_ms=60_000)

    await scheduler.start()
    await asyncio.wait_for(fetcher.started.wait(), timeout=1)
    await scheduler.stop()

    fetcher.release.set()
    await asyncio.sleep(0)
    assert scheduler.baseline is None
    assert not scheduler.running
    assert scheduler.view().running is False


@pytest.mark.asyncio
async def test_start_after_pause_rebaselines() -> None:
    fetcher = _ScriptedFetcher(_snap(0, 100), _snap(50, 600))
    scheduler = PollingScheduler(fetcher, poll_interval_ms=60_000)

    await scheduler.tick()
    await scheduler.pause()
    generation = scheduler.generation

    await scheduler.start()
    try:
        assert not scheduler.paused
        assert scheduler.generation == generation + 1
        for _ in range(20):
            if fetcher.calls == 2:
                break
            await asyncio.sleep(0.01)
        assert fetcher.calls == 2
        assert scheduler.samples == ()
        assert scheduler.baseline is not None
        assert scheduler.baseline.captured_at == 50
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_fetch_completing_after_pause_is_discarded() -> None:
    fetcher = _BlockingFetcher(_snap(10, 500))
    scheduler = PollingScheduler(fetcher)

    pending = asyncio.create_task(scheduler.tick())
    await fetcher.started.wait()
    await scheduler.pause()

    fetcher.release.set()
    assert await pending is None
    assert scheduler.baseline is None
    assert scheduler.stats.stale_discarded == 1
