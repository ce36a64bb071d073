"""Cancellable, pausable polling of the snapshot source.

``PollingScheduler`` owns the only mutable state of the live-rate pipeline:
its timer task, the last successful ``CounterSnapshot`` (the baseline), the
ring buffer of ``RateSample``s and a generation token.

The generation token is bumped on pause, resume, reconfiguration and stop.
Each fetch captures the token when it starts; a result that completes under a
different token is discarded instead of being applied out of order.

At most one fetch is in flight. A tick that fires while the previous fetch is
still running is skipped. Failed fetches leave the baseline untouched, so the
next successful tick measures its delta over the whole gap.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from shared.contracts import TelemetryCondition

from ratewatch.errors import FetchFailure
from ratewatch.estimator import estimate, is_counter_reset
from ratewatch.models import CounterSnapshot, RateSample
from ratewatch.ring_buffer import capacity_for, push, truncate

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[CounterSnapshot]]
SampleCallback = Callable[[RateSample], None]


@dataclass
class SchedulerStats:
    ticks: int = 0
    fetches: int = 0
    samples: int = 0
    skipped_in_flight: int = 0
    failures: int = 0
    stale_discarded: int = 0
    counter_resets: int = 0


@dataclass(frozen=True)
class SchedulerView:
    """Read-only copy of the scheduler state for rendering."""

    samples: tuple[RateSample, ...]
    baseline: CounterSnapshot | None
    limit: int
    poll_interval_ms: int
    window_seconds: float
    running: bool
    paused: bool
    generation: int

    @property
    def latest(self) -> RateSample | None:
        return self.samples[-1] if self.samples else None


class PollingScheduler:
    """Drive ``fetcher`` every ``poll_interval_ms`` and keep a window of rates."""

    def __init__(
        self,
        fetcher: Fetcher,
        *,
        poll_interval_ms: int = 5000,
        window_seconds: float = 60,
        on_sample: SampleCallback | None = None,
    ) -> None:
        if poll_interval_ms < 1:
            raise ValueError("poll_interval_ms must be >= 1")
        self._fetcher = fetcher
        self._poll_interval_ms = poll_interval_ms
        self._window_seconds = window_seconds
        self._limit = capacity_for(window_seconds, poll_interval_ms)
        self._on_sample = on_sample

        self._timer: asyncio.Task[None] | None = None
        self._fetch_task: asyncio.Task[RateSample | None] | None = None
        self._in_flight = False
        self._wanted = False
        self._paused = False
        self._rebaseline = False
        self._generation = 0

        self._baseline: CounterSnapshot | None = None
        self._samples: tuple[RateSample, ...] = ()
        self.stats = SchedulerStats()

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def baseline(self) -> CounterSnapshot | None:
        return self._baseline

    @property
    def samples(self) -> tuple[RateSample, ...]:
        return self._samples

    def view(self) -> SchedulerView:
        return SchedulerView(
            samples=self._samples,
            baseline=self._baseline,
            limit=self._limit,
            poll_interval_ms=self._poll_interval_ms,
            window_seconds=self._window_seconds,
            running=self.running,
            paused=self._paused,
            generation=self._generation,
        )

    async def start(self) -> None:
        """Start polling; restarting replaces any existing timer."""
        await self._cancel_timer()
        if self._paused:
            self._paused = False
            self._rebaseline = True
            self._generation += 1
        self._wanted = True
        self._start_timer()

    async def stop(self) -> None:
        """Stop polling and abandon any in-flight fetch.

        The baseline is kept for display, but the first snapshot after the next
        `start()` only re-baselines so no rate spans the stopped period.
        """
        self._wanted = False
        self._paused = False
        self._rebaseline = self._baseline is not None
        self._generation += 1
        await self._cancel_timer()
        task, self._fetch_task = self._fetch_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def pause(self) -> None:
        """Stop issuing fetches; the baseline is kept but not reused for a rate."""
        if self._paused:
            return
        self._paused = True
        self._generation += 1
        await self._cancel_timer()

    async def resume(self) -> None:
        """Resume polling; the first snapshot after resuming only re-baselines."""
        if not self._paused:
            return
        self._paused = False
        self._rebaseline = True
        self._generation += 1
        if self._wanted:
            self._start_timer()

    async def set_interval_ms(self, poll_interval_ms: int) -> None:
        """Apply a new cadence: stop the timer, resize the window, restart."""
        if poll_interval_ms < 1:
            raise ValueError("poll_interval_ms must be >= 1")
        restart = self.running
        await self._cancel_timer()
        self._generation += 1
        self._poll_interval_ms = poll_interval_ms
        self._resize()
        if restart and self._wanted and not self._paused:
            self._start_timer()

    def set_window_seconds(self, window_seconds: float) -> None:
        self._window_seconds = window_seconds
        self._resize()

    def _resize(self) -> None:
        self._limit = capacity_for(self._window_seconds, self._poll_interval_ms)
        self._samples = truncate(self._samples, self._limit)

    async def tick(self) -> RateSample | None:
        """Fetch once and apply the result; returns the new sample, if any."""
        self.stats.ticks += 1
        if self._paused:
            return None
        if self._in_flight:
            self.stats.skipped_in_flight += 1
            logger.debug("Previous fetch still in flight; skipping tick")
            return None

        generation = self._generation
        self._in_flight = True
        try:
            self.stats.fetches += 1
            snapshot = await self._fetcher()
        except FetchFailure as exc:
            self.stats.failures += 1
            logger.debug(
                "Snapshot fetch failed: %s",
                exc,
                extra={"condition": TelemetryCondition.FETCH_FAILURE},
            )
            return None
        finally:
            self._in_flight = False

        return self._apply(snapshot, generation)

    def _apply(self, snapshot: CounterSnapshot, generation: int) -> RateSample | None:
        prev = self._baseline
        if generation != self._generation or (
            prev is not None and snapshot.captured_at < prev.captured_at
        ):
            self.stats.stale_discarded += 1
            logger.debug(
                "Discarding snapshot from generation %d (current %d)",
                generation,
                self._generation,
                extra={"condition": TelemetryCondition.STALE_GENERATION},
            )
            return None

        self._baseline = snapshot

        if self._rebaseline:
            self._rebaseline = False
            logger.debug("Re-baselined on first snapshot after pause or stop")
            return None

        if prev is not None and is_counter_reset(prev, snapshot):
            self.stats.counter_resets += 1

        sample = estimate(prev, snapshot)
        if sample is None:
            return None

        self._samples = push(self._samples, sample, self._limit)
        self.stats.samples += 1
        if self._on_sample is not None:
            self._on_sample(sample)
        return sample

    def _spawn_tick(self) -> None:
        if self._in_flight or (self._fetch_task is not None and not self._fetch_task.done()):
            self.stats.ticks += 1
            self.stats.skipped_in_flight += 1
            logger.debug("Previous fetch still in flight; skipping tick")
            return
        self._fetch_task = asyncio.create_task(self._guarded_tick())

    async def _guarded_tick(self) -> RateSample | None:
        try:
            return await self.tick()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Polling tick failed: %s", exc)
            return None

    async def _run(self) -> None:
        interval = self._poll_interval_ms / 1000
        while True:
            self._spawn_tick()
            await asyncio.sleep(interval)

    def _start_timer(self) -> None:
        # Another start/resume may have installed a timer while this call was
        # awaiting the previous one; only one timer may survive.
        previous = self._timer
        if previous is not None and not previous.done():
            previous.cancel()
        self._timer = asyncio.create_task(self._run())

    async def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None or timer.done():
            return
        timer.cancel()
        try:
            await timer
        except asyncio.CancelledError:
            pass
