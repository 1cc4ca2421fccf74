#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Validation and persistence of room bookings.

A request goes through these checks, in order, and is rejected by the first
one failing:

    1. the interval is not empty (`InvalidRange`)
    2. it does not start in the past (`PastBooking`)
    3. the room exists (`RoomNotFound`) and is bookable (`RoomNotBookable`)
    4. no confirmed booking of the room overlaps it (`SlotTaken`)

The conflict check runs once without holding the room lock, to turn down
obvious clashes cheaply, and again under the lock right before the booking is
written. Only the second check is authoritative.
"""

import datetime
import logging

from cowork.aliases import BookingId, ChannelId, PersonId, RoomId
from cowork.booking.booking_repository import Booking, BookingRepository
from cowork.booking.conflicts import ConflictDetector
from cowork.booking.directory import PersonDirectory
from cowork.booking.locks import InProcessRoomLocks, RoomLocks
from cowork.booking.room_catalog import Room, RoomCatalog
from cowork.constants import DEFAULT_VENUE_TIMEZONE
from cowork.exceptions import (
    Forbidden,
    InvalidRange,
    NotFound,
    PastBooking,
    RoomNotBookable,
    RoomNotFound,
    SlotTaken,
)
from cowork.notifications.channel import NotificationChannel
from cowork.time_utils import (
    TimeGetter,
    ensure_utc,
    format_clock_time,
    format_short_datetime,
    utc_now,
    venue_timezone,
)

logger = logging.getLogger(__name__)


class BookingService:
    """Entry point for everything members do with rooms.

    Parameters
    ----------
    locks
        Serialises booking requests per room. Defaults to in-process locks,
        which are not enough when several processes write to the same store.
    time_getter
        Returns the current instant; requests starting before it are rejected.
    channel, channel_id
        Where a notice is posted after each successful booking. Nothing is
        posted unless both are given.
    """

    def __init__(
        self,
        catalog: RoomCatalog,
        repository: BookingRepository,
        directory: PersonDirectory,
        locks: RoomLocks | None = None,
        time_getter: TimeGetter | None = None,
        channel: NotificationChannel | None = None,
        channel_id: ChannelId | None = None,
        timezone: str = DEFAULT_VENUE_TIMEZONE,
    ):
        self._catalog = catalog
        self._repository = repository
        self._directory = directory
        self._detector = ConflictDetector(repository)
        self._locks = locks or InProcessRoomLocks()
        self._time_getter: TimeGetter = time_getter or utc_now
        self._channel = channel
        self._channel_id = channel_id
        self._zone = venue_timezone(timezone)

    def list_bookable_rooms(self) -> list[Room]:
        return self._catalog.list_bookable_rooms()

    def get_bookings_for_room(
        self,
        room_id: RoomId,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
    ) -> list[Booking]:
        return self._repository.get_bookings_for_room(
            room_id, ensure_utc(range_start), ensure_utc(range_end)
        )

    def get_user_bookings(self, user_id: PersonId) -> list[Booking]:
        return self._repository.get_user_bookings(user_id, self._time_getter())

    def _check_slot(
        self, room: Room, start: datetime.datetime, end: datetime.datetime
    ) -> None:
        conflicts = self._detector.find_conflicts(room.id, start, end)
        if conflicts:
            logger.info(
                f"Rejected booking of {room.name} from {start} to {end}: "
                f"{len(conflicts)} conflicting booking(s)"
            )
            raise SlotTaken(
                f"{room.name} is already booked during the requested time",
                conflicts=[c.interval for c in conflicts],
            )

    def request_booking(
        self,
        room_id: RoomId,
        start: datetime.datetime,
        end: datetime.datetime,
        user_id: PersonId,
        purpose: str | None = None,
        user_name: str | None = None,
    ) -> Booking:
        """Book `room_id` over `[start, end)` on behalf of `user_id`.

        Parameters
        ----------
        user_name
            Display name of the member, looked up in the directory if not given.

        Raises
        ------
        BookingRejected
            One of `InvalidRange`, `PastBooking`, `RoomNotFound`,
            `RoomNotBookable` or `SlotTaken`. Nothing is written.
        UpstreamUnavailable
            If the store cannot be reached, or the room lock cannot be
            acquired in time (`RoomLockTimeout`).
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if end <= start:
            raise InvalidRange("End time must be after start time")
        if start < self._time_getter():
            raise PastBooking("Cannot book in the past")
        room = self._catalog.get_room(room_id)
        if room is None:
            raise RoomNotFound(f"Room {room_id} not found")
        if not room.bookable:
            raise RoomNotBookable(f"{room.name} is not bookable")
        self._check_slot(room, start, end)
        user_name = user_name or self._directory.lookup_person_name(user_id)
        with self._locks.hold(room.id):
            self._check_slot(room, start, end)
            booking = self._repository.create_booking(
                room_id=room.id,
                room_name=room.name,
                user_id=user_id,
                user_name=user_name,
                start=start,
                end=end,
                purpose=purpose,
            )
        logger.info(f"Created booking {booking.id} of {room.name} for {user_id}")
        self._notify(booking)
        return booking

    def _notify(self, booking: Booking) -> None:
        if self._channel is None or not self._channel_id:
            return
        text = (
            f"📅 {booking.user_name} booked {booking.room_name} for "
            f"{format_short_datetime(booking.start_date, self._zone)} - "
            f"{format_clock_time(booking.end_date, self._zone)}"
        )
        if booking.purpose:
            text = f"{text} ({booking.purpose})"
        delivery = self._channel.send_message(self._channel_id, text)
        if not delivery.success:
            logger.warning(f"Could not post a notice for booking {booking.id}")

    def cancel_booking(
        self, booking_id: BookingId, acting_user_id: PersonId, acting_is_staff: bool
    ) -> bool:
        """Cancel a booking on behalf of its owner or a staff member.
        Cancelling a cancelled booking succeeds and changes nothing.

        Raises
        ------
        NotFound
            If the booking does not exist.
        Forbidden
            If the acting user neither owns the booking nor is staff.
        """
        owner = self._repository.get_booking_owner(booking_id)
        if owner != acting_user_id and not acting_is_staff:
            raise Forbidden("You can only cancel your own bookings")
        if not self._repository.cancel_booking(booking_id):
            raise NotFound(f"Booking {booking_id} not found")
        return True
