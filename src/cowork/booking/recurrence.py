#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Expansion of a seed event into a series of follow-on events.

Dates are computed on the venue wall clock, so an event at 6 PM stays at
6 PM across daylight saving changes. Monthly series keep the weekday pattern
of the seed: a seed on the 2nd Tuesday of March is followed by the 2nd
Tuesdays of April, May and so on. When a month has no such day (eg a 5th
Tuesday) the last matching weekday of the month is used.

Instances are created one at a time and are independent records. If a write
fails, the instances already created are kept and the failure is reported in
the returned `SeriesExpansion`.
"""

import datetime
import logging
import time
import uuid
from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, Field

from cowork.aliases import EventId, PersonId, SeriesId
from cowork.constants import DEFAULT_VENUE_TIMEZONE, MAX_SERIES_OCCURRENCES
from cowork.exceptions import (
    InvalidSeriesRequest,
    NotFound,
    PartialSeriesFailure,
    UpstreamUnavailable,
)
from cowork.store.database_schemas import TableName
from cowork.store.record_store import Record, RecordStore
from cowork.time_utils import (
    end_of_day,
    ensure_utc,
    localize_wall_time,
    nth_weekday_of_month,
    parse_instant,
    to_iso,
    venue_timezone,
    weekday_occurrence,
)

logger = logging.getLogger(__name__)

RECURRING_STATUS = "Recurring"


class RepeatFrequency(StrEnum):
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"


class Event(BaseModel):
    id: EventId
    name: str | None = None
    start_date: datetime.datetime
    end_date: datetime.datetime | None = None
    description: str | None = None
    notes: str | None = None
    type: str | None = None
    status: str | None = None
    url: str | None = None
    hosted_by: list[PersonId] = Field(default_factory=list)
    recurring_series_id: SeriesId | None = None

    @property
    def duration(self) -> datetime.timedelta | None:
        if self.end_date is None:
            return None
        return self.end_date - self.start_date

    @classmethod
    def from_record(cls, record: Record) -> Self:
        """Map a raw Events record.

        Raises
        ------
        InvalidSeriesRequest if the event has no valid start date.
        """
        fields = record.fields
        if not fields.get("Start Date"):
            raise InvalidSeriesRequest(f"Event {record.id} has no start date")
        try:
            start = parse_instant(fields["Start Date"])
            end = parse_instant(fields["End Date"]) if fields.get("End Date") else None
        except ValueError as e:
            raise InvalidSeriesRequest(f"Event {record.id} has invalid dates: {e}") from e
        return cls(
            id=record.id,
            name=fields.get("Name"),
            start_date=start,
            end_date=end,
            description=fields.get("Event Description"),
            notes=fields.get("Notes"),
            type=fields.get("Type"),
            status=fields.get("Status"),
            url=fields.get("URL"),
            hosted_by=fields.get("Hosted by") or [],
            recurring_series_id=fields.get("Recurring Series"),
        )


class EventInstance(BaseModel):
    id: EventId
    start_date: datetime.datetime


class SeriesExpansion(BaseModel):
    """Result of `RecurrenceExpander.expand_series`.

    Attributes
    ----------
    created
        The instances created, in date order. The seed is not included.
    error
        Why the expansion stopped early, `None` if it completed.
    """

    series_id: SeriesId
    seed_id: EventId
    created: list[EventInstance] = Field(default_factory=list)
    error: str | None = None

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def is_partial(self) -> bool:
        return self.error is not None

    def raise_for_partial_failure(self) -> None:
        if self.error is not None:
            raise PartialSeriesFailure(
                f"Series {self.series_id} stopped after {self.created_count} "
                f"event(s): {self.error}",
                series_id=self.series_id,
                created_count=self.created_count,
            )


def new_series_id() -> SeriesId:
    return f"series-{int(time.time() * 1000):x}-{uuid.uuid4().hex[:6]}"


def next_occurrence(
    current: datetime.date, frequency: RepeatFrequency, seed: datetime.date
) -> datetime.date:
    """The venue-local date of the instance following the one on `current`.
    Monthly series repeat the weekday occurrence of `seed`."""
    match frequency:
        case RepeatFrequency.weekly:
            return current + datetime.timedelta(days=7)
        case RepeatFrequency.biweekly:
            return current + datetime.timedelta(days=14)
        case RepeatFrequency.monthly:
            year, month = current.year, current.month + 1
            if month > 12:
                year, month = year + 1, 1
            return nth_weekday_of_month(
                year, month, seed.weekday(), weekday_occurrence(seed)
            )
    raise ValueError(f"Unknown frequency: {frequency}")


def parse_until(value: str | datetime.date | datetime.datetime) -> datetime.date | datetime.datetime:
    """Interpret an "until" bound: a bare date such as "2024-06-30" covers the
    whole venue-local day, anything else is an instant."""
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return parse_instant(value)
    except ValueError as e:
        raise InvalidSeriesRequest(f"Invalid until date: {value!r}") from e


class RecurrenceExpander:
    """Creates the follow-on events of a seed event.

    Parameters
    ----------
    max_occurrences
        Upper bound on the number of events created by one expansion.
    """

    def __init__(
        self,
        store: RecordStore,
        timezone: str = DEFAULT_VENUE_TIMEZONE,
        max_occurrences: int = MAX_SERIES_OCCURRENCES,
    ):
        self._store = store
        self._zone = venue_timezone(timezone)
        self._max_occurrences = max_occurrences

    def _upper_bound(
        self, until: datetime.date | datetime.datetime | None
    ) -> tuple[datetime.datetime | None, bool]:
        """Returns the bound on start dates and whether it is inclusive."""
        if until is None:
            return None, True
        if isinstance(until, datetime.datetime):
            return ensure_utc(until), True
        day_start = localize_wall_time(until, datetime.time(), self._zone)
        return end_of_day(day_start, self._zone), False

    def _sibling_fields(
        self, seed: Event, series_id: SeriesId, start: datetime.datetime
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "Name": seed.name,
            "Start Date": to_iso(start),
            "Event Description": seed.description,
            "Notes": seed.notes,
            "Type": seed.type,
            "Status": RECURRING_STATUS,
            "URL": seed.url,
            "Hosted by": list(seed.hosted_by) or None,
            "Recurring Series": series_id,
        }
        if seed.duration is not None:
            fields["End Date"] = to_iso(start + seed.duration)
        return {k: v for k, v in fields.items() if v is not None}

    def expand_series(
        self,
        event_id: EventId,
        frequency: RepeatFrequency | str,
        count: int | None = None,
        until: str | datetime.date | datetime.datetime | None = None,
    ) -> SeriesExpansion:
        """Mark `event_id` as recurring and create the following instances of
        the series, until `count` instances were created or the next one
        would start after `until`.

        Raises
        ------
        InvalidSeriesRequest
            If neither count nor until is given, the frequency is unknown, or
            the seed has no start date. Nothing is written.
        NotFound
            If the seed event does not exist.
        """
        try:
            frequency = RepeatFrequency(frequency)
        except ValueError:
            raise InvalidSeriesRequest(
                "Valid frequency is required (weekly, biweekly, monthly)"
            ) from None
        if count is None and until is None:
            raise InvalidSeriesRequest("Either count or until is required")
        if count is not None and count < 1:
            raise InvalidSeriesRequest("count must be at least 1")
        bound, inclusive = self._upper_bound(parse_until(until) if until is not None else None)
        limit = min(count or self._max_occurrences, self._max_occurrences)
        if count is not None and count > self._max_occurrences:
            logger.warning(f"Capping series of {count} events to {self._max_occurrences}")

        record = self._store.get(TableName.EVENTS, event_id)
        if record is None:
            raise NotFound(f"Event {event_id} not found")
        seed = Event.from_record(record)
        series_id = seed.recurring_series_id or new_series_id()
        self._store.update(
            TableName.EVENTS,
            event_id,
            {"Status": RECURRING_STATUS, "Recurring Series": series_id},
        )

        result = SeriesExpansion(series_id=series_id, seed_id=event_id)
        local_start = seed.start_date.astimezone(self._zone)
        seed_date, wall_time = local_start.date(), local_start.time()
        current = seed_date
        for _ in range(limit):
            current = next_occurrence(current, frequency, seed_date)
            start = localize_wall_time(current, wall_time, self._zone)
            if bound is not None and (start > bound if inclusive else start >= bound):
                break
            try:
                created = self._store.create(
                    TableName.EVENTS, self._sibling_fields(seed, series_id, start)
                )
            except UpstreamUnavailable as e:
                result.error = str(e)
                logger.warning(
                    f"Series {series_id} stopped after {result.created_count} event(s): {e}"
                )
                break
            result.created.append(EventInstance(id=created.id, start_date=start))
        logger.info(
            f"Expanded {event_id} into series {series_id} with {result.created_count} event(s)"
        )
        return result
