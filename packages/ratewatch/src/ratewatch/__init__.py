"""Ratewatch - live request rates and traffic anomalies."""

from shared._version import __version__

from ratewatch.dashboard import DashboardView, build_view
from ratewatch.errors import AllowlistUpdateError, FetchFailure, RatewatchError
from ratewatch.estimator import estimate
from ratewatch.models import CounterSnapshot, RateSample
from ratewatch.ring_buffer import capacity_for
from ratewatch.scheduler import PollingScheduler, SchedulerView
from ratewatch.source import SnapshotSource

__all__ = [
    "AllowlistUpdateError",
    "CounterSnapshot",
    "DashboardView",
    "FetchFailure",
    "PollingScheduler",
    "RateSample",
    "RatewatchError",
    "SchedulerView",
    "SnapshotSource",
    "__version__",
    "build_view",
    "capacity_for",
    "estimate",
]
