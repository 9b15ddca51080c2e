"""Validation and timezone conversion of group schedule grids."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime, timezone

import structlog

from ..scheduling.schedule_errors import InvalidScheduleConfigError, TemporalInputError
from ..scheduling.schedule_repository import ScheduleRepository
from ..scheduling.temporal import (
    WEEKDAYS,
    get_zone,
    parse_clock_time,
    parse_weekday,
    to_local_weekly_pattern,
    to_utc_weekly_pattern,
    weekly_pattern_entry,
)
from .schedule_config_models import (
    MAX_TIMES_PER_DAY,
    MIN_INTERVAL_MINUTES,
    ScheduleConfig,
    default_schedule_hours,
)
from .schedule_config_repository import ScheduleConfigRepository

logger = structlog.get_logger(__name__)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


def normalize_schedule_hours(pattern: Mapping[str, Iterable[str]]) -> dict[str, list[str]]:
    """Validate a weekly grid and return it with canonical keys and sorted times.

    Rejects unknown weekdays, malformed or duplicate times, days with more
    than ``MAX_TIMES_PER_DAY`` entries and times of one day closer than
    ``MIN_INTERVAL_MINUTES`` apart. Empty days are dropped.
    """

    if not isinstance(pattern, Mapping):
        raise InvalidScheduleConfigError("schedule must map weekdays to lists of times")
    collected: dict[str, list[str]] = {}
    try:
        for key, times in pattern.items():
            day = parse_weekday(key)
            if day.value in collected:
                raise InvalidScheduleConfigError(f"weekday {day.value} listed more than once")
            if isinstance(times, str) or not isinstance(times, Iterable):
                raise InvalidScheduleConfigError(f"times for {day.value} must be a list")
            values = [parse_clock_time(value).strftime("%H:%M") for value in times]
            if len(values) > MAX_TIMES_PER_DAY:
                raise InvalidScheduleConfigError(
                    f"{day.value} has {len(values)} times, at most {MAX_TIMES_PER_DAY} allowed"
                )
            if len(set(values)) != len(values):
                raise InvalidScheduleConfigError(f"{day.value} lists the same time twice")
            ordered = sorted(values)
            for earlier, later in zip(ordered, ordered[1:]):
                if _minutes(later) - _minutes(earlier) < MIN_INTERVAL_MINUTES:
                    raise InvalidScheduleConfigError(
                        f"Minimum {MIN_INTERVAL_MINUTES}-minute interval required between "
                        f"time slots ({day.value} {earlier} and {later})"
                    )
            collected[day.value] = ordered
    except TemporalInputError as exc:
        raise InvalidScheduleConfigError(str(exc)) from exc
    return {day.value: collected[day.value] for day in WEEKDAYS if collected.get(day.value)}


def _minutes(clock: str) -> int:
    hours, minutes = clock.split(":")
    return int(hours) * 60 + int(minutes)


class ScheduleConfigService:
    """Read and update the allowed trip times of a group."""

    def __init__(
        self,
        repo: ScheduleConfigRepository,
        schedule_repo: ScheduleRepository,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repo = repo
        self._schedule_repo = schedule_repo
        self._clock = clock or _default_clock

    def get_config(self, group_id: str) -> ScheduleConfig:
        self._schedule_repo.get_group(group_id)
        return self._repo.get(group_id) or ScheduleConfig(group_id=group_id)

    def get_local_config(
        self, group_id: str, tz_name: str | None = None, *, reference: date | None = None
    ) -> dict[str, list[str]]:
        """Return the grid shifted into ``tz_name`` (the group timezone by default)."""
        if tz_name is not None:
            get_zone(tz_name)
        group = self._schedule_repo.get_group(group_id)
        zone_name = tz_name or group.timezone
        config = self._repo.get(group_id) or ScheduleConfig(group_id=group_id)
        return to_local_weekly_pattern(
            config.schedule_hours, zone_name, reference=reference or self._today(zone_name)
        )

    def update_config(
        self,
        group_id: str,
        schedule_hours: Mapping[str, Iterable[str]],
        *,
        tz_name: str | None = None,
        reference: date | None = None,
    ) -> ScheduleConfig:
        """Replace the grid; a ``tz_name`` marks ``schedule_hours`` as local times."""
        normalized = normalize_schedule_hours(schedule_hours)
        if tz_name is not None:
            utc_pattern = to_utc_weekly_pattern(
                normalized, tz_name, reference=reference or self._today(tz_name)
            )
            normalized = normalize_schedule_hours(utc_pattern)
        self._schedule_repo.get_group(group_id)
        self._ensure_no_booked_times_removed(group_id, normalized)
        config = self._repo.upsert(group_id, normalized)
        logger.info(
            "schedule.config.updated",
            group_id=group_id,
            days=len(normalized),
            times=sum(len(times) for times in normalized.values()),
        )
        return config

    def reset_config(self, group_id: str) -> ScheduleConfig:
        """Replace the grid with the default school-run times."""
        self._schedule_repo.get_group(group_id)
        hours = default_schedule_hours()
        self._ensure_no_booked_times_removed(group_id, hours)
        config = self._repo.upsert(group_id, hours)
        logger.info("schedule.config.reset", group_id=group_id)
        return config

    def _ensure_no_booked_times_removed(
        self, group_id: str, proposed: Mapping[str, list[str]]
    ) -> None:
        """Reject a grid that drops the time of an upcoming slot with children on board."""
        conflicts: list[str] = []
        for slot in self._schedule_repo.list_slots(group_id, self._clock()):
            if not slot.child_assignments:
                continue
            weekday, clock = weekly_pattern_entry(slot.datetime)
            if clock not in proposed.get(weekday.value, []):
                conflicts.append(
                    f"{weekday.value} {clock} ({len(slot.child_assignments)} children assigned)"
                )
        if conflicts:
            logger.warning(
                "schedule.config.booked_times_removed", group_id=group_id, conflicts=conflicts
            )
            raise InvalidScheduleConfigError(
                "Cannot remove time slots with existing bookings: " + ", ".join(conflicts)
            )

    def convert_to_local(
        self,
        pattern: Mapping[str, Iterable[str]],
        tz_name: str,
        *,
        reference: date | None = None,
    ) -> dict[str, list[str]]:
        return to_local_weekly_pattern(
            pattern, tz_name, reference=reference or self._today(tz_name)
        )

    def _today(self, tz_name: str) -> date:
        return self._clock().astimezone(get_zone(tz_name)).date()
