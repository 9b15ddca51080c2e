"""Data structures for group schedule configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from ..scheduling.temporal import weekly_pattern_entry

MAX_TIMES_PER_DAY = 20
MIN_INTERVAL_MINUTES = 15

_SCHOOL_RUN_TIMES = ("07:00", "07:30", "08:00", "08:30", "15:00", "15:30", "16:00", "16:30")

# Grid a group falls back to on reset, in UTC.
DEFAULT_SCHEDULE_HOURS: dict[str, tuple[str, ...]] = {
    day: _SCHOOL_RUN_TIMES for day in ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY")
}


def default_schedule_hours() -> dict[str, list[str]]:
    return {day: list(times) for day, times in DEFAULT_SCHEDULE_HOURS.items()}


@dataclass(slots=True)
class ScheduleConfig:
    """Allowed trip times of a group as a UTC weekly pattern."""

    group_id: str
    schedule_hours: dict[str, list[str]] = field(default_factory=dict)
    updated_at: datetime | None = None

    def allows(self, instant: datetime) -> bool:
        weekday, clock = weekly_pattern_entry(instant)
        return clock in self.schedule_hours.get(weekday.value, [])
