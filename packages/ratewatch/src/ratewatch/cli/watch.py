"""Live request-rate view driven by the polling scheduler."""

import asyncio

import typer
from rich.live import Live

from ratewatch.cli import _client
from ratewatch.cli._console import console, error_panel, setup_logging
from ratewatch.cli._display import rates_panel
from ratewatch.config import get_settings
from ratewatch.models import RateSample
from ratewatch.scheduler import PollingScheduler
from ratewatch.source import SnapshotSource


async def _watch(
    source: SnapshotSource,
    *,
    interval_ms: int,
    window_seconds: int,
    count: int | None,
) -> PollingScheduler:
    done = asyncio.Event()
    seen = 0

    def on_sample(_: RateSample) -> None:
        nonlocal seen
        seen += 1
        if count is not None and seen >= count:
            done.set()

    scheduler = PollingScheduler(
        source.fetch_snapshot,
        poll_interval_ms=interval_ms,
        window_seconds=window_seconds,
        on_sample=on_sample,
    )

    async with source:
        with Live(rates_panel(scheduler.view()), console=console, refresh_per_second=4) as live:
            await scheduler.start()
            try:
                while not done.is_set():
                    try:
                        await asyncio.wait_for(done.wait(), timeout=interval_ms / 1000)
                    except TimeoutError:
                        pass
                    live.update(rates_panel(scheduler.view()))
            finally:
                await scheduler.stop()
    return scheduler


def watch(
    url: str | None = typer.Option(None, "--url", help="Ratewatch server URL"),
    interval_ms: int | None = typer.Option(
        None, "--interval-ms", "-i", min=1, help="Poll interval in milliseconds"
    ),
    window_seconds: int | None = typer.Option(
        None, "--window", "-w", min=1, help="Seconds of history to keep"
    ),
    count: int | None = typer.Option(
        None, "--count", "-n", min=1, help="Exit after this many rate samples"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """
    Watch live requests/sec and error rate.

    Fetch failures are retried on the next tick; the view keeps the last
    known values and marks them stale.
    """
    setup_logging(verbose=verbose)
    settings = get_settings()
    source = _client.build_source(url)

    try:
        asyncio.run(
            _watch(
                source,
                interval_ms=interval_ms or settings.poll_interval_ms,
                window_seconds=window_seconds or settings.window_seconds,
                count=count,
            )
        )
    except KeyboardInterrupt:
        pass
    except Exception as e:
        error_panel(str(e), title="Watch failed")
        raise typer.Exit(1) from e
