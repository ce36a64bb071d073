"""Business-hours calendar for out-of-hours profiling."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

# Days use the 0=Sunday .. 6=Saturday convention.
DEFAULT_BUSINESS_DAYS = frozenset({0, 1, 2, 3, 4})


def parse_days(raw: str) -> frozenset[int]:
    """Parse ``"0,1,2"`` into day numbers, ignoring anything outside 0..6."""
    days: set[int] = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            day = int(part)
        except ValueError:
            continue
        if 0 <= day <= 6:
            days.add(day)
    return frozenset(days)


@dataclass(frozen=True)
class BusinessHours:
    days: frozenset[int] = DEFAULT_BUSINESS_DAYS
    start_hour: int = 8
    end_hour: int = 16
    timezone: str = "UTC"

    def local(self, epoch_seconds: float) -> datetime:
        return datetime.fromtimestamp(epoch_seconds, ZoneInfo(self.timezone))

    def local_hour(self, epoch_seconds: float) -> int:
        return self.local(epoch_seconds).hour

    def is_out_of_hours(self, epoch_seconds: float) -> bool:
        moment = self.local(epoch_seconds)
        day = (moment.weekday() + 1) % 7
        if day not in self.days:
            return True
        return not (self.start_hour <= moment.hour < self.end_hour)
