"""Shared contract base and enums used across telemetry payloads."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for payloads exchanged with dashboards (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class StatusClass(StrEnum):
    S2XX = "2xx"
    S3XX = "3xx"
    S4XX = "4xx"
    S5XX = "5xx"
    OTHER = "other"

    @classmethod
    def from_status(cls, status: int) -> "StatusClass":
        klass = status // 100
        if klass == 2:
            return cls.S2XX
        if klass == 3:
            return cls.S3XX
        if klass == 4:
            return cls.S4XX
        if klass == 5:
            return cls.S5XX
        return cls.OTHER

    @property
    def is_error(self) -> bool:
        return self in (StatusClass.S4XX, StatusClass.S5XX)


class RecordKind(StrEnum):
    ANOMALY = "anomaly"
    AUDIT = "audit"
    CSP_VIOLATION = "csp_violation"


class TelemetryCondition(StrEnum):
    """Non-fatal telemetry conditions, logged under the `condition` record field."""

    COUNTER_RESET = "CounterReset"
    STALE_GENERATION = "StaleGeneration"
    FETCH_FAILURE = "FetchFailure"
    AGGREGATION_GAP = "AggregationGap"


class ErrorResponse(WireModel):
    """Error payload returned by rejected requests."""

    ok: bool = False
    error: str


__all__ = [
    "WireModel",
    "StatusClass",
    "RecordKind",
    "TelemetryCondition",
    "ErrorResponse",
]
