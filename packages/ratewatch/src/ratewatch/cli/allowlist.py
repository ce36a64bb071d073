"""Route and IP allowlist commands."""

import asyncio
from enum import StrEnum

import typer

from ratewatch.cli import _client
from ratewatch.cli._console import dim, error_panel, header, nl, setup_logging, success
from ratewatch.errors import AllowlistUpdateError, FetchFailure


class Kind(StrEnum):
    ROUTE = "route"
    IP = "ip"


async def _show(url: str | None, kind: Kind) -> list[str]:
    async with _client.build_source(url) as source:
        if kind is Kind.IP:
            return await source.get_ip_allowlist()
        return await source.get_route_allowlist()


async def _save(url: str | None, kind: Kind, entries: list[str]) -> list[str]:
    async with _client.build_source(url) as source:
        if kind is Kind.IP:
            return await source.set_ip_allowlist(entries)
        return await source.set_route_allowlist(entries)


def show(
    kind: Kind = typer.Option(Kind.ROUTE, "--kind", "-k", help="Which allowlist"),
    url: str | None = typer.Option(None, "--url", help="Ratewatch server URL"),
) -> None:
    """Print the stored allowlist."""
    setup_logging()
    try:
        entries = asyncio.run(_show(url, kind))
    except FetchFailure as e:
        error_panel(str(e), title="Could not read allowlist")
        raise typer.Exit(1) from e

    header(f"{kind} allowlist")
    if not entries:
        dim("(empty)")
    for entry in entries:
        dim(entry)
    nl()


def set_cmd(
    entries: list[str] = typer.Argument(..., help="Entries to store (replaces the list)"),
    kind: Kind = typer.Option(Kind.ROUTE, "--kind", "-k", help="Which allowlist"),
    url: str | None = typer.Option(None, "--url", help="Ratewatch server URL"),
) -> None:
    """Replace an allowlist. Requires RATEWATCH_API_KEY."""
    setup_logging()
    try:
        saved = asyncio.run(_save(url, kind, entries))
    except AllowlistUpdateError as e:
        code = f" (HTTP {e.status_code})" if e.status_code else ""
        hint = "Check RATEWATCH_API_KEY." if e.status_code in (401, 403) else None
        error_panel(f"{e}{code}", title="Allowlist update rejected", hint=hint)
        raise typer.Exit(1) from e

    success(f"Saved {len(saved)} {kind} allowlist entries")
