"""Ratewatch CLI."""

import typer

from ratewatch.cli._console import console
from ratewatch.cli.allowlist import set_cmd as allowlist_set
from ratewatch.cli.allowlist import show as allowlist_show
from ratewatch.cli.dashboard import dashboard
from ratewatch.cli.related import related
from ratewatch.cli.serve import serve
from ratewatch.cli.watch import watch

app = typer.Typer(
    name="ratewatch",
    help="Live request rates and traffic anomalies.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        from ratewatch import __version__

        console.print(f"[bold]ratewatch[/bold] [dim]{__version__}[/dim]")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version",
    ),
) -> None:
    """Live request rates and traffic anomalies."""


# Register commands
app.command()(watch)
app.command()(dashboard)
app.command()(related)
app.command()(serve)

allowlist_app = typer.Typer(
    help="Route and IP allowlists.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
allowlist_app.command("show")(allowlist_show)
allowlist_app.command("set")(allowlist_set)
app.add_typer(allowlist_app, name="allowlist")
