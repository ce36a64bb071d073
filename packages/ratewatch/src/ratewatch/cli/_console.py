"""Console output and logging for the ratewatch CLI."""

import logging
import os

from rich.box import ROUNDED
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

# NO_COLOR standard; colors are forced otherwise so piped `watch` output keeps them.
no_color = os.environ.get("NO_COLOR", "").lower() in ("1", "true", "yes")

console = Console(
    highlight=False,
    force_terminal=not no_color,
    no_color=no_color,
)

# Libraries that log every poll at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def header(title: str) -> None:
    console.print()
    console.print(f"[bold]{title}[/bold]")
    console.print()


def success(msg: str) -> None:
    console.print(f"  [green]✓[/green] {msg}")


def dim(msg: str) -> None:
    console.print(f"  [dim]{msg}[/dim]")


def nl() -> None:
    console.print()


def error_panel(msg: str, *, title: str = "Failed", hint: str | None = None) -> None:
    """Print a red panel with ``title``, the error text and an optional hint line."""
    body = Text()
    body.append("✗ ", style="red bold")
    body.append(title, style="red")
    body.append("\n\n")
    body.append(msg, style="dim")
    if hint:
        body.append("\n")
        body.append(hint, style="yellow")

    console.print(
        Panel(body, border_style="red dim", box=ROUNDED, padding=(0, 1), expand=False)
    )


class ConditionFilter(logging.Filter):
    """Prefix records logged with a telemetry ``condition`` extra with its name."""

    def filter(self, record: logging.LogRecord) -> bool:
        condition = getattr(record, "condition", None)
        if condition is not None and not getattr(record, "_condition_tagged", False):
            record.msg = f"[dim]{condition}[/dim] {record.msg}"
            record._condition_tagged = True  # type: ignore[attr-defined]
        return True


def setup_logging(verbose: bool = False) -> None:
    """Route logs through rich; ``verbose`` shows polling conditions at DEBUG."""
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    handler = RichHandler(
        console=console,
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        markup=True,
        keywords=[],
    )
    handler.addFilter(ConditionFilter())

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)
    logging.getLogger("ratewatch").setLevel(level)
