#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
import logging
from typing import Self

from pydantic import BaseModel, ValidationError, model_validator

from cowork.aliases import BookingId, Formula, PersonId, RoomId
from cowork.constants import DEFAULT_VENUE_TIMEZONE
from cowork.exceptions import NotFound
from cowork.store.database_schemas import BookingStatus, TableName
from cowork.store.formula import quote_formula_string
from cowork.store.record_store import QueryOptions, Record, RecordStore, SortSpec
from cowork.time_utils import (
    TimeInterval,
    format_short_datetime,
    parse_instant,
    to_iso,
    venue_timezone,
)

logger = logging.getLogger(__name__)

# separates room, person and date in the display name of a booking record
NAME_SEPARATOR = " - "


class Booking(BaseModel):
    """A reservation of a room by a member over `[start_date, end_date)`.

    Attributes
    ----------
    room_name, user_name
        Display names at the time the booking was made.
    """

    id: BookingId
    room_id: RoomId
    room_name: str = ""
    user_id: PersonId
    user_name: str | None = None
    start_date: datetime.datetime
    end_date: datetime.datetime
    purpose: str | None = None
    status: BookingStatus = BookingStatus.Confirmed

    @model_validator(mode="after")
    def _check_interval(self) -> Self:
        if self.end_date <= self.start_date:
            raise ValueError(
                f"Booking {self.id} ends ({self.end_date}) before it starts ({self.start_date})"
            )
        return self

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.start_date, self.end_date)

    @property
    def is_active(self) -> bool:
        return self.status == BookingStatus.Confirmed

    @classmethod
    def from_record(
        cls,
        record: Record,
        room_name: str | None = None,
        user_name: str | None = None,
    ) -> Self:
        """Map a raw Room Bookings record. Display names missing from the
        arguments are recovered from the record name.

        Raises
        ------
        ValueError if the record has no valid start and end.
        """
        fields = record.fields
        # the date is last and room names may contain the separator
        name_parts = (fields.get("Name") or "").rsplit(NAME_SEPARATOR, 2)
        if room_name is None:
            room_name = name_parts[0]
        if user_name is None and len(name_parts) >= 3:
            user_name = name_parts[1]
        if not fields.get("Start") or not fields.get("End"):
            raise ValueError(f"Booking {record.id} has no start or end")
        return cls(
            id=record.id,
            room_id=(fields.get("Room") or [""])[0],
            room_name=room_name,
            user_id=(fields.get("Booked By") or [""])[0],
            user_name=user_name,
            start_date=parse_instant(fields["Start"]),
            end_date=parse_instant(fields["End"]),
            purpose=fields.get("Purpose"),
            status=BookingStatus(fields.get("Status") or BookingStatus.Confirmed),
        )


def booking_display_name(
    room_name: str, user_name: str, start: datetime.datetime, zone: datetime.tzinfo
) -> str:
    """The name given to a booking record, eg "Focus Room - Ada - Aug 10, 9:00 AM"."""
    return NAME_SEPARATOR.join(
        [room_name, user_name, format_short_datetime(start, zone)]
    )


def _linked_to(field: str, record_id: str) -> Formula:
    return f"FIND({quote_formula_string(record_id)}, ARRAYJOIN({{{field}}})) > 0"


def room_bookings_formula(
    room_id: RoomId,
    range_start: datetime.datetime,
    range_end: datetime.datetime,
    exclude_booking_id: BookingId | None = None,
) -> Formula:
    """Confirmed bookings of a room intersecting `[range_start, range_end)`."""
    conditions = [
        _linked_to("Room", room_id),
        f"{{Status}} = '{BookingStatus.Confirmed}'",
        f"IS_BEFORE({{Start}}, '{to_iso(range_end)}')",
        f"IS_AFTER({{End}}, '{to_iso(range_start)}')",
    ]
    if exclude_booking_id:
        conditions.insert(0, f"RECORD_ID() != {quote_formula_string(exclude_booking_id)}")
    return f"AND({', '.join(conditions)})"


def user_bookings_formula(user_id: PersonId, now: datetime.datetime) -> Formula:
    """Confirmed bookings of a member that have not ended yet."""
    conditions = [
        _linked_to("Booked By", user_id),
        f"{{Status}} = '{BookingStatus.Confirmed}'",
        f"IS_AFTER({{End}}, '{to_iso(now)}')",
    ]
    return f"AND({', '.join(conditions)})"


class BookingRepository:
    """CRUD over the Room Bookings table. Does not check for conflicts, see
    `cowork.booking.booking_service.BookingService` for that."""

    def __init__(self, store: RecordStore, timezone: str = DEFAULT_VENUE_TIMEZONE):
        self._store = store
        self._zone = venue_timezone(timezone)

    def _to_bookings(self, records: list[Record]) -> list[Booking]:
        bookings = []
        for record in records:
            try:
                bookings.append(Booking.from_record(record))
            except (ValueError, ValidationError) as e:
                logger.warning(f"Skipping malformed booking record {record.id}: {e}")
        return bookings

    def get_bookings_for_room(
        self,
        room_id: RoomId,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
        exclude_booking_id: BookingId | None = None,
    ) -> list[Booking]:
        formula = room_bookings_formula(
            room_id, range_start, range_end, exclude_booking_id=exclude_booking_id
        )
        records = self._store.find(
            TableName.ROOM_BOOKINGS, formula, QueryOptions(sort=[SortSpec("Start")])
        )
        return self._to_bookings(records)

    def get_user_bookings(
        self, user_id: PersonId, now: datetime.datetime
    ) -> list[Booking]:
        """Return the confirmed bookings of `user_id` ending after `now`,
        earliest first."""
        records = self._store.find(
            TableName.ROOM_BOOKINGS,
            user_bookings_formula(user_id, now),
            QueryOptions(sort=[SortSpec("Start", "asc")]),
        )
        return self._to_bookings(records)

    def get_booking(self, booking_id: BookingId) -> Booking | None:
        record = self._store.get(TableName.ROOM_BOOKINGS, booking_id)
        if record is None:
            return None
        return Booking.from_record(record)

    def get_booking_owner(self, booking_id: BookingId) -> PersonId | None:
        """Return who made a booking, `None` if nobody is recorded. Reads the
        raw record, so bookings too malformed to map can still be cancelled.

        Raises
        ------
        NotFound
            If the booking does not exist.
        """
        record = self._store.get(TableName.ROOM_BOOKINGS, booking_id)
        if record is None:
            raise NotFound(f"Booking {booking_id} not found")
        return (record.fields.get("Booked By") or [None])[0]

    def create_booking(
        self,
        room_id: RoomId,
        room_name: str,
        user_id: PersonId,
        user_name: str,
        start: datetime.datetime,
        end: datetime.datetime,
        purpose: str | None = None,
    ) -> Booking:
        fields = {
            "Name": booking_display_name(room_name, user_name, start, self._zone),
            "Room": [room_id],
            "Booked By": [user_id],
            "Start": to_iso(start),
            "End": to_iso(end),
            "Status": str(BookingStatus.Confirmed),
        }
        if purpose:
            fields["Purpose"] = purpose
        record = self._store.create(TableName.ROOM_BOOKINGS, fields)
        return Booking.from_record(record, room_name=room_name, user_name=user_name)

    def cancel_booking(self, booking_id: BookingId) -> bool:
        """Mark a booking as cancelled. Cancelling a cancelled booking
        succeeds without writing anything.

        Returns
        -------
        False if the booking does not exist.
        """
        record = self._store.get(TableName.ROOM_BOOKINGS, booking_id)
        if record is None:
            return False
        if record.fields.get("Status") == BookingStatus.Cancelled:
            logger.debug(f"Booking {booking_id} is already cancelled")
            return True
        self._store.update(
            TableName.ROOM_BOOKINGS,
            booking_id,
            {"Status": str(BookingStatus.Cancelled)},
        )
        logger.info(f"Cancelled booking {booking_id}")
        return True
