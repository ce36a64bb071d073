"""Client error taxonomy.

Acquisition problems (``FetchFailure``) are absorbed by the polling scheduler
and never reach the UI layer. ``AllowlistUpdateError`` is the one failure that
is surfaced to the operator.
"""

from shared.contracts import TelemetryCondition


class RatewatchError(Exception):
    """Base class for ratewatch client errors."""


class FetchFailure(RatewatchError):
    """A snapshot or analytics fetch failed (network, non-2xx, bad payload)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AllowlistUpdateError(RatewatchError):
    """The server rejected an allowlist save."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "RatewatchError",
    "FetchFailure",
    "AllowlistUpdateError",
    "TelemetryCondition",
]
