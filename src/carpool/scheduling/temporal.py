"""Weekly-grid and ISO week helpers for trip scheduling.

Slots are stored as UTC instants while groups think in local weekly patterns
("MONDAY 08:00 in Europe/Paris"). The helpers below convert between the two
without reading the process clock or a process-wide timezone: every call
receives the timezone explicitly and, where UTC offsets depend on the date,
a reference date selecting the ISO week to anchor the pattern in.

Weekday keys are always the seven canonical English tokens. Display
localisation happens elsewhere and never touches these keys.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from enum import StrEnum
from typing import Iterable, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .schedule_errors import (
    InvalidClockTimeError,
    InvalidTimezoneError,
    InvalidWeekdayError,
    InvalidWeekLabelError,
)

__all__ = [
    "Weekday",
    "WEEKDAYS",
    "WeeklyPattern",
    "parse_weekday",
    "parse_week_label",
    "parse_clock_time",
    "get_zone",
    "iso_week_monday",
    "iso_weeks_in_year",
    "ensure_utc",
    "resolve_slot_datetime",
    "weekly_pattern_entry",
    "to_local_weekly_pattern",
    "to_utc_weekly_pattern",
    "week_bounds",
    "week_label_of",
    "format_local",
]

WeeklyPattern = Mapping[str, Iterable[str]]

_WEEK_LABEL_RE = re.compile(r"^(\d{4})-W?(\d{1,2})$")
_CLOCK_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_MIN_YEAR = 1900
_MAX_YEAR = 9998


class Weekday(StrEnum):
    """Canonical weekday tokens used as weekly pattern keys."""

    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @property
    def offset(self) -> int:
        """Days after Monday (Monday=0 … Sunday=6)."""
        return WEEKDAYS.index(self)


WEEKDAYS: tuple[Weekday, ...] = tuple(Weekday)


def parse_weekday(token: str) -> Weekday:
    """Return the canonical weekday for ``token`` (case-insensitive)."""

    if isinstance(token, Weekday):
        return token
    if not isinstance(token, str):
        raise InvalidWeekdayError(f"weekday must be a string, got {type(token).__name__}")
    try:
        return Weekday(token.strip().upper())
    except ValueError:
        raise InvalidWeekdayError(f"unknown weekday '{token}'") from None


def iso_weeks_in_year(year: int) -> int:
    """Number of ISO weeks in ``year`` (52 or 53)."""
    # December 28th always falls in the last ISO week of its year.
    return date(year, 12, 28).isocalendar().week


def parse_week_label(label: str) -> tuple[int, int]:
    """Parse ``YYYY-WW`` / ``YYYY-Www`` into ``(year, week)``."""

    if not isinstance(label, str):
        raise InvalidWeekLabelError("week label must be a string")
    match = _WEEK_LABEL_RE.match(label.strip().upper())
    if match is None:
        raise InvalidWeekLabelError(f"malformed week label '{label}', expected YYYY-WW")
    year, week = int(match.group(1)), int(match.group(2))
    if not _MIN_YEAR <= year <= _MAX_YEAR:
        raise InvalidWeekLabelError(f"week label year {year} out of range")
    last_week = iso_weeks_in_year(year)
    if not 1 <= week <= last_week:
        raise InvalidWeekLabelError(
            f"week {week} out of range for {year} (1-{last_week})"
        )
    return year, week


def parse_clock_time(value: str | time) -> time:
    """Parse a 24h ``HH:MM`` clock time."""

    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    if not isinstance(value, str):
        raise InvalidClockTimeError("clock time must be a string in HH:MM format")
    match = _CLOCK_RE.match(value.strip())
    if match is None:
        raise InvalidClockTimeError(f"invalid clock time '{value}', expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone identifier (``UTC`` or ``Region/City``)."""

    if not isinstance(name, str) or not name.strip():
        raise InvalidTimezoneError("timezone is required")
    name = name.strip()
    if name != "UTC" and "/" not in name:
        raise InvalidTimezoneError(f"'{name}' is not an IANA Region/City identifier")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        raise InvalidTimezoneError(f"unknown timezone '{name}'") from exc


def iso_week_monday(year: int, week: int) -> date:
    """Return the Monday of ISO ``week`` in ``year``.

    Week 1 is the week containing January 4th, so its Monday is January 4th
    walked back to the preceding (or same) Monday.
    """

    jan4 = date(year, 1, 4)
    week1_monday = jan4 - timedelta(days=jan4.weekday())
    return week1_monday + timedelta(weeks=week - 1)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are UTC)."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _local_to_utc(day: date, clock: time, zone: ZoneInfo) -> datetime:
    # fold=0: gap times take the pre-transition offset (shift forward),
    # repeated times resolve to their first occurrence.
    return datetime.combine(day, clock, tzinfo=zone).astimezone(timezone.utc)


def resolve_slot_datetime(
    weekday: str,
    week_label: str,
    local_time: str | time,
    tz_name: str,
) -> datetime:
    """Resolve a local weekly slot into the canonical UTC instant.

    >>> resolve_slot_datetime("MONDAY", "2025-26", "08:00", "Europe/Paris")
    datetime.datetime(2025, 6, 23, 6, 0, tzinfo=datetime.timezone.utc)
    """

    day = parse_weekday(weekday)
    year, week = parse_week_label(week_label)
    clock = parse_clock_time(local_time)
    zone = get_zone(tz_name)
    local_date = iso_week_monday(year, week) + timedelta(days=day.offset)
    return _local_to_utc(local_date, clock, zone)


def weekly_pattern_entry(instant: datetime) -> tuple[Weekday, str]:
    """Return the UTC weekday token and ``HH:MM`` of a stored slot instant."""

    utc = ensure_utc(instant)
    return WEEKDAYS[utc.weekday()], utc.strftime("%H:%M")


def _shift_pattern(
    pattern: WeeklyPattern,
    *,
    source: ZoneInfo | timezone,
    target: ZoneInfo | timezone,
    reference: date,
) -> dict[str, list[str]]:
    monday = reference - timedelta(days=reference.weekday())
    buckets: dict[Weekday, set[str]] = {}
    for key, times in pattern.items():
        day = parse_weekday(key)
        if isinstance(times, str):
            raise InvalidClockTimeError(f"times for {day.value} must be a list")
        for value in times:
            clock = parse_clock_time(value)
            moment = datetime.combine(monday + timedelta(days=day.offset), clock, tzinfo=source)
            shifted = moment.astimezone(target)
            bucket = buckets.setdefault(WEEKDAYS[shifted.weekday()], set())
            bucket.add(shifted.strftime("%H:%M"))
    return {day.value: sorted(buckets[day]) for day in WEEKDAYS if buckets.get(day)}


def to_local_weekly_pattern(
    pattern: WeeklyPattern, tz_name: str, *, reference: date
) -> dict[str, list[str]]:
    """Shift a UTC weekly pattern into ``tz_name``.

    ``reference`` selects the ISO week whose UTC offsets apply. Times that
    cross midnight move to the adjacent weekday (Sunday and Monday wrap).
    Days without times are omitted rather than returned as empty lists.
    """

    zone = get_zone(tz_name)
    return _shift_pattern(pattern, source=timezone.utc, target=zone, reference=reference)


def to_utc_weekly_pattern(
    pattern: WeeklyPattern, tz_name: str, *, reference: date
) -> dict[str, list[str]]:
    """Inverse of :func:`to_local_weekly_pattern`."""

    zone = get_zone(tz_name)
    return _shift_pattern(pattern, source=zone, target=timezone.utc, reference=reference)


def week_bounds(week_label: str, tz_name: str) -> tuple[datetime, datetime]:
    """Return ``[start, end)`` UTC bounds of a local ISO week."""

    year, week = parse_week_label(week_label)
    zone = get_zone(tz_name)
    monday = iso_week_monday(year, week)
    return (
        _local_to_utc(monday, time(0, 0), zone),
        _local_to_utc(monday + timedelta(days=7), time(0, 0), zone),
    )


def week_label_of(instant: datetime, tz_name: str) -> str:
    """ISO week label (``YYYY-WW``) of ``instant`` as seen in ``tz_name``."""

    local = ensure_utc(instant).astimezone(get_zone(tz_name))
    iso = local.isocalendar()
    return f"{iso.year}-{iso.week:02d}"


def format_local(instant: datetime, tz_name: str) -> str:
    """Format ``instant`` as ``YYYY-MM-DD HH:MM`` in ``tz_name``."""

    return ensure_utc(instant).astimezone(get_zone(tz_name)).strftime("%Y-%m-%d %H:%M")
