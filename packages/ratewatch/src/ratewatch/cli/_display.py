"""Rich renderables for live rates and dashboard summaries."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime

from rich.box import ROUNDED
from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from shared.contracts import RelatedRecord

from ratewatch.dashboard import DashboardView, anomaly_direction, is_stale
from ratewatch.scheduler import SchedulerView

SPARK_CHARS = "▁▂▃▄▅▆▇█"


def sparkline(values: Sequence[float]) -> str:
    """Render ``values`` as unicode block characters scaled to their range."""
    if not values:
        return ""
    lo, hi = min(values), max(values)
    if hi == lo:
        return SPARK_CHARS[0] * len(values)
    top = len(SPARK_CHARS) - 1
    return "".join(SPARK_CHARS[round((v - lo) / (hi - lo) * top)] for v in values)


def _minute_label(minute_ts: int) -> str:
    return datetime.fromtimestamp(minute_ts / 1000, UTC).strftime("%H:%M")


def rates_panel(view: SchedulerView, *, now: float | None = None) -> Panel:
    latest = view.latest
    rps = [s.rps for s in view.samples]
    errors = [s.error_rate_pct for s in view.samples]

    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(justify="right")
    table.add_column()

    if latest is None:
        table.add_row("rps", "-", Text("waiting for samples", style="dim"))
        table.add_row("errors", "-", "")
    else:
        table.add_row("rps", f"{latest.rps:.2f}", Text(sparkline(rps), style="cyan"))
        table.add_row(
            "errors",
            f"{latest.error_rate_pct:.1f}%",
            Text(sparkline(errors), style="red"),
        )

    baseline = view.baseline
    if baseline is not None:
        table.add_row("total", f"{baseline.total_requests:,}", "")
        if baseline.latency.p95_ms is not None:
            table.add_row("p95", f"{baseline.latency.p95_ms:.0f} ms", "")

    subtitle_parts = [f"{len(view.samples)}/{view.limit} samples"]
    if view.paused:
        subtitle_parts.append("[yellow]paused[/yellow]")
    elif is_stale(baseline, view.poll_interval_ms, now=now):
        subtitle_parts.append("[yellow]stale[/yellow]")

    return Panel(
        table,
        title="[bold]live rates[/bold]",
        title_align="left",
        subtitle=" [dim]·[/dim] ".join(subtitle_parts),
        subtitle_align="right",
        border_style="dim",
        box=ROUNDED,
        padding=(0, 1),
        expand=False,
    )


def dashboard_group(view: DashboardView) -> Group:
    totals = [p.total for p in view.series]
    head = Text()
    head.append(f"last {view.minutes} min", style="bold")
    head.append(f"  {view.total:,} requests", style="dim")
    head.append(f"  {view.spikes} spikes · {view.lulls} lulls", style="dim")

    parts: list[Text | Table] = [head, Text(sparkline(totals), style="cyan"), Text()]

    routes = Table(title="Top routes", box=ROUNDED, title_justify="left")
    routes.add_column("route")
    routes.add_column("count", justify="right")
    for item in view.top_routes:
        routes.add_row(item.route, str(item.count))
    parts.append(routes)

    if view.anomalies:
        anomalies = Table(title="Anomalies", box=ROUNDED, title_justify="left")
        anomalies.add_column("minute")
        anomalies.add_column("count", justify="right")
        anomalies.add_column("z", justify="right")
        anomalies.add_column("direction")
        anomalies.add_column("routes")
        for a in view.anomalies:
            direction = anomaly_direction(a)
            anomalies.add_row(
                _minute_label(a.minute_ts),
                str(a.count),
                f"{a.z:+.2f}",
                Text(direction, style="red" if direction == "spike" else "yellow"),
                ", ".join(r.route for r in a.routes_top),
            )
        parts.append(anomalies)

    if view.out_of_hours:
        hours = Table(title="Out of hours", box=ROUNDED, title_justify="left")
        hours.add_column("hour", justify="right")
        hours.add_column("count", justify="right")
        for h in view.out_of_hours:
            hours.add_row(f"{h.hour:02d}", str(h.count))
        parts.append(hours)

    if view.users:
        users = Table(title="Top users", box=ROUNDED, title_justify="left")
        users.add_column("id")
        users.add_column("count", justify="right")
        for u in view.users:
            users.add_row(u.id, str(u.count))
        parts.append(users)

    return Group(*parts)


def related_table(record_id: str, items: Sequence[RelatedRecord]) -> Table:
    table = Table(title=f"Related to {record_id}", box=ROUNDED, title_justify="left")
    table.add_column("kind")
    table.add_column("id")
    table.add_column("at")
    table.add_column("reason", style="dim")
    table.add_column("summary")
    for item in items:
        table.add_row(item.kind, item.id, item.at, item.reason, item.summary)
    return table
