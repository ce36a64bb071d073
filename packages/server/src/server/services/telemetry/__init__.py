"""Request telemetry: cumulative counters, minute buckets and rankings."""

from server.services.telemetry.aggregator import (
    AggregatorConfig,
    AggregatorSnapshot,
    Anomaly,
    MinuteBucket,
    MinuteBucketAggregator,
    detect_anomalies,
    score,
)
from server.services.telemetry.counters import CumulativeCounters
from server.services.telemetry.events import (
    MINUTE_MS,
    RequestEvent,
    client_ip,
    minute_floor_ms,
    pseudo_user_id,
)
from server.services.telemetry.hours import BusinessHours, parse_days
from server.services.telemetry.hub import TelemetryHub, get_hub, set_hub
from server.services.telemetry.sketch import LatencySketch, QuantileSummary
from server.services.telemetry.topk import TopK, TopKEntry

__all__ = [
    "AggregatorConfig",
    "AggregatorSnapshot",
    "Anomaly",
    "MinuteBucket",
    "MinuteBucketAggregator",
    "detect_anomalies",
    "score",
    "CumulativeCounters",
    "MINUTE_MS",
    "RequestEvent",
    "client_ip",
    "minute_floor_ms",
    "pseudo_user_id",
    "BusinessHours",
    "parse_days",
    "TelemetryHub",
    "get_hub",
    "set_hub",
    "LatencySketch",
    "QuantileSummary",
    "TopK",
    "TopKEntry",
]
