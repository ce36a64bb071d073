"""Drill down from one record to related anomalies, audit entries and CSP reports."""

import asyncio

import typer
from shared.contracts import RelatedResponse

from ratewatch.cli import _client
from ratewatch.cli._console import console, dim, error_panel, nl, setup_logging
from ratewatch.cli._display import related_table
from ratewatch.errors import FetchFailure


async def _fetch(url: str | None, record_id: str, window: int | None) -> RelatedResponse:
    async with _client.build_source(url) as source:
        return await source.fetch_related(record_id, window_seconds=window)


def related(
    record_id: str = typer.Argument(..., help="Record id, e.g. anomaly:1700000000000"),
    window: int | None = typer.Option(
        None, "--window", "-w", min=0, help="Time window in seconds"
    ),
    url: str | None = typer.Option(None, "--url", help="Ratewatch server URL"),
) -> None:
    """List records related to an anomaly, audit entry or CSP violation."""
    setup_logging()
    try:
        resp = asyncio.run(_fetch(url, record_id, window))
    except FetchFailure as e:
        error_panel(str(e), title="Lookup failed")
        raise typer.Exit(1) from e

    nl()
    if not resp.items:
        dim(f"No records related to {record_id}")
    else:
        console.print(related_table(record_id, resp.items))
    nl()
