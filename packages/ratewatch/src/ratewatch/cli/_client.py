"""Snapshot source construction for CLI commands."""

from ratewatch.config import get_settings
from ratewatch.source import SnapshotSource


def build_source(url: str | None = None) -> SnapshotSource:
    """Source for the configured server; ``--url`` overrides ``RATEWATCH_URL``."""
    settings = get_settings()
    if url:
        settings = settings.model_copy(update={"url": url})
    return SnapshotSource.from_settings(settings)
