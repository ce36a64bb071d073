"""Shared contracts and helpers for ratewatch packages."""

from shared._version import __version__
from shared.contracts import (
    AnalyticsDashboardResponse,
    AnomalyRecord,
    MetricsSummaryResponse,
    StatusClass,
)
from shared.correlation import anomaly_id, find_related

__all__ = [
    "__version__",
    # Contracts
    "AnalyticsDashboardResponse",
    "AnomalyRecord",
    "MetricsSummaryResponse",
    "StatusClass",
    # Correlation
    "anomaly_id",
    "find_related",
]
