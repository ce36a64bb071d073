"""Analytics dashboard summary."""

import asyncio
import logging

import typer
from rich.live import Live

from ratewatch.cli import _client
from ratewatch.cli._console import console, error_panel, nl, setup_logging
from ratewatch.cli._display import dashboard_group
from ratewatch.config import get_settings
from ratewatch.dashboard import DashboardView, build_view
from ratewatch.errors import FetchFailure
from ratewatch.source import SnapshotSource

logger = logging.getLogger(__name__)


async def _fetch(source: SnapshotSource, minutes: int) -> DashboardView:
    async with source:
        return build_view(await source.fetch_dashboard(minutes))


async def _follow(source: SnapshotSource, minutes: int, interval_ms: int) -> None:
    """Redraw every ``interval_ms``; a failed refresh keeps the previous view."""
    async with source:
        view = build_view(await source.fetch_dashboard(minutes))
        with Live(dashboard_group(view), console=console, refresh_per_second=1) as live:
            while True:
                await asyncio.sleep(interval_ms / 1000)
                try:
                    view = build_view(await source.fetch_dashboard(minutes))
                except FetchFailure as e:
                    logger.debug("Dashboard refresh failed: %s", e)
                    continue
                live.update(dashboard_group(view))


def dashboard(
    url: str | None = typer.Option(None, "--url", help="Ratewatch server URL"),
    minutes: int = typer.Option(60, "--minutes", "-m", min=1, max=1440, help="Minutes of history"),
    follow: bool = typer.Option(
        False, "--follow", "-f", help="Keep refreshing (RATEWATCH_DASHBOARD_INTERVAL_MS)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Show minute buckets, anomalies, top routes and out-of-hours traffic."""
    setup_logging(verbose=verbose)
    source = _client.build_source(url)

    if follow:
        try:
            asyncio.run(_follow(source, minutes, get_settings().dashboard_interval_ms))
        except KeyboardInterrupt:
            pass
        except FetchFailure as e:
            error_panel(str(e), title="Dashboard unavailable")
            raise typer.Exit(1) from e
        return

    try:
        view = asyncio.run(_fetch(source, minutes))
    except FetchFailure as e:
        error_panel(str(e), title="Dashboard unavailable")
        raise typer.Exit(1) from e

    nl()
    console.print(dashboard_group(view))
    nl()
