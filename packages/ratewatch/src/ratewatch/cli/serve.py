"""Run the ratewatch telemetry server."""

import os

import typer

from ratewatch.cli._console import error_panel, setup_logging


def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind host"),
    port: int = typer.Option(8080, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
    redis_url: str | None = typer.Option(
        None,
        "--redis-url",
        envvar="RATEWATCH_REDIS_URL",
        help="Redis URL for allowlists and alert cooldowns",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """
    Start the ratewatch server.
    """
    setup_logging(verbose=verbose)
    if redis_url:
        os.environ["RATEWATCH_REDIS_URL"] = redis_url

    import uvicorn

    try:
        uvicorn.run(
            "server.main:create_app",
            factory=True,
            host=host,
            port=port,
            reload=reload,
        )
    except Exception as e:
        error_panel(str(e), title="Server start failed")
        raise typer.Exit(1) from e
