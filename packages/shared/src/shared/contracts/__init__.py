"""Wire contracts shared by the telemetry server and its clients."""

from shared.contracts.admin import (
    AllowlistRequest,
    AllowlistResponse,
    AuditEntry,
    CspViolation,
    CspViolationsResponse,
    RelatedRecord,
    RelatedResponse,
)
from shared.contracts.analytics import (
    AnalyticsDashboardResponse,
    AnomaliesResponse,
    AnomalyRecord,
    BehaviorSummaryResponse,
    HourCount,
    OutOfHoursResponse,
    SeriesPoint,
    SeriesResponse,
    UserCount,
)
from shared.contracts.common import (
    ErrorResponse,
    RecordKind,
    StatusClass,
    TelemetryCondition,
    WireModel,
)
from shared.contracts.health import AlertDeliveryStats, HealthResponse
from shared.contracts.telemetry import (
    GaugesResponse,
    IpCount,
    IpGauge,
    IpStats,
    IpStatsResponse,
    LatencySummary,
    MetricsSummaryResponse,
    RouteCount,
    RouteGauge,
    RouteLatency,
    RouteStatusBreakdown,
    StatusClassCounts,
)

__all__ = [
    # Common
    "WireModel",
    "StatusClass",
    "RecordKind",
    "TelemetryCondition",
    "ErrorResponse",
    # Snapshot
    "StatusClassCounts",
    "LatencySummary",
    "RouteCount",
    "IpCount",
    "RouteStatusBreakdown",
    "RouteLatency",
    "IpStats",
    "IpStatsResponse",
    "MetricsSummaryResponse",
    "RouteGauge",
    "IpGauge",
    "GaugesResponse",
    # Analytics
    "SeriesPoint",
    "AnomalyRecord",
    "HourCount",
    "UserCount",
    "AnalyticsDashboardResponse",
    "SeriesResponse",
    "AnomaliesResponse",
    "OutOfHoursResponse",
    "BehaviorSummaryResponse",
    # Admin / drill-down
    "AllowlistRequest",
    "AllowlistResponse",
    "AuditEntry",
    "CspViolation",
    "CspViolationsResponse",
    "RelatedRecord",
    "RelatedResponse",
    # Health
    "AlertDeliveryStats",
    "HealthResponse",
]
