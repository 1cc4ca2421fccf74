#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""A light wrapper around the `datetime` and `dateutil` libraries, containing
the interval arithmetic used for conflict detection and the venue-local calendar
helpers used for availability reporting and recurring events.

All instants handled by the rest of the package are timezone-aware and in UTC.
Venue-local time is only used for "end of day" computations, for calendar
arithmetic and for formatting."""

import datetime
from collections.abc import Callable
from typing import NamedTuple, Self

from dateutil import parser, tz
from dateutil.relativedelta import relativedelta, weekday

TimeGetter = Callable[[], datetime.datetime]

UTC = datetime.timezone.utc


def utc_now() -> datetime.datetime:
    """Return the current instant."""
    return datetime.datetime.now(tz=UTC)


class TimeInterval(NamedTuple):
    """Represents the half-open time interval `[start, end)` between two
    instants. An interval ending at 3 PM does not overlap one starting at 3 PM."""

    start: datetime.datetime
    end: datetime.datetime

    def contains(self, dt: datetime.datetime) -> bool:
        """Check if a given instant falls inside this time interval."""
        return self.start <= dt < self.end

    def overlaps(self, other: Self) -> bool:
        return intervals_overlap(self, other)

    @property
    def duration(self) -> datetime.timedelta:
        return self.end - self.start


def intervals_overlap(interval_1: TimeInterval, interval_2: TimeInterval) -> bool:
    """Check if two half-open intervals share at least one instant. Touching
    endpoints do not count as an overlap."""
    return interval_1.start < interval_2.end and interval_2.start < interval_1.end


def venue_timezone(name: str) -> datetime.tzinfo:
    """Resolve an IANA timezone name (eg "America/Los_Angeles")."""
    zone = tz.gettz(name)
    if zone is None:
        raise ValueError(f"Unknown timezone: {name}")
    return zone


def ensure_utc(dt: datetime.datetime) -> datetime.datetime:
    """Convert `dt` to UTC. Naive datetimes are assumed to be in UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_instant(value: str | datetime.datetime) -> datetime.datetime:
    """Parse an ISO-8601 timestamp as returned by the record store."""
    if isinstance(value, datetime.datetime):
        return ensure_utc(value)
    try:
        return ensure_utc(parser.isoparse(value))
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid timestamp: {value!r}") from e


def to_iso(dt: datetime.datetime) -> str:
    """Format an instant the way the record store expects it,
    eg 2024-08-10T16:00:00.000Z."""
    dt = ensure_utc(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def start_of_day(now: datetime.datetime, zone: datetime.tzinfo) -> datetime.datetime:
    """Midnight at the start of the venue-local day containing `now`, in UTC."""
    local_date = now.astimezone(zone).date()
    return ensure_utc(datetime.datetime.combine(local_date, datetime.time(), zone))


def end_of_day(now: datetime.datetime, zone: datetime.tzinfo) -> datetime.datetime:
    """The first instant of the following venue-local day, in UTC. Intervals
    starting before it start "today"."""
    local_date = now.astimezone(zone).date() + datetime.timedelta(days=1)
    return ensure_utc(datetime.datetime.combine(local_date, datetime.time(), zone))


def format_clock_time(dt: datetime.datetime, zone: datetime.tzinfo) -> str:
    """Format the venue-local time of day, eg "3:00 PM"."""
    local = dt.astimezone(zone)
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {suffix}"


def format_short_datetime(dt: datetime.datetime, zone: datetime.tzinfo) -> str:
    """Format a venue-local date and time, eg "Aug 10, 9:00 AM"."""
    local = dt.astimezone(zone)
    return f"{local.strftime('%b')} {local.day}, {format_clock_time(local, zone)}"


def weekday_occurrence(date: datetime.date) -> int:
    """Which occurrence of its weekday `date` is within its month, starting
    from 1 (eg the 2nd Tuesday)."""
    return (date.day - 1) // 7 + 1


def nth_weekday_of_month(
    year: int, month: int, day_of_week: int, n: int
) -> datetime.date:
    """Return the `n`-th `day_of_week` (0 is Monday) of the given month. If
    the month has fewer than `n` such days, the last one is returned instead."""
    first = datetime.date(year, month, 1)
    candidate = first + relativedelta(weekday=weekday(day_of_week)(+n))
    if candidate.month != month:
        candidate = first + relativedelta(day=31, weekday=weekday(day_of_week)(-1))
    return candidate


def localize_wall_time(
    date: datetime.date, time: datetime.time, zone: datetime.tzinfo
) -> datetime.datetime:
    """Combine a venue-local date and wall-clock time into a UTC instant.
    Wall times skipped by a DST transition are shifted forward."""
    local = tz.resolve_imaginary(datetime.datetime.combine(date, time, zone))
    return ensure_utc(local)
