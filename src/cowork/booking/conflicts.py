#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
from collections.abc import Iterable

from cowork.aliases import BookingId, RoomId
from cowork.booking.booking_repository import Booking, BookingRepository
from cowork.time_utils import TimeInterval, ensure_utc, intervals_overlap


def find_conflicts(
    bookings: Iterable[Booking],
    start: datetime.datetime,
    end: datetime.datetime,
    exclude_booking_id: BookingId | None = None,
) -> list[Booking]:
    """Return the active bookings overlapping `[start, end)`, in start order.

    Bookings that merely touch the interval (one ends when the other starts)
    do not conflict.
    """
    requested = TimeInterval(ensure_utc(start), ensure_utc(end))
    conflicts = [
        b
        for b in bookings
        if b.is_active
        and b.id != exclude_booking_id
        and intervals_overlap(b.interval, requested)
    ]
    return sorted(conflicts, key=lambda b: b.start_date)


class ConflictDetector:
    """Fetches the candidate bookings of a room and decides which overlap a
    proposed interval. The store pre-filters candidates, the room match and
    the overlap decision are always re-checked here."""

    def __init__(self, repository: BookingRepository):
        self._repository = repository

    def find_conflicts(
        self,
        room_id: RoomId,
        start: datetime.datetime,
        end: datetime.datetime,
        exclude_booking_id: BookingId | None = None,
    ) -> list[Booking]:
        candidates = self._repository.get_bookings_for_room(
            room_id, start, end, exclude_booking_id=exclude_booking_id
        )
        # the store matches room ids as substrings of the linked ids
        same_room = [b for b in candidates if b.room_id == room_id]
        return find_conflicts(same_room, start, end, exclude_booking_id=exclude_booking_id)
