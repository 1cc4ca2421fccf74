#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Today's availability of the rooms, as posted to the status feed:

    **# 🚪 Meeting Room Availability**
    ```
    ─ FLOOR 4 ──────────────────────────────────────
    🟢 Focus Room            │  Free all day
    🔴 Library (capacity 8)  │  Busy until 3:00 PM
    ─ FLOOR 3 ──────────────────────────────────────
    🟢 Studio (capacity 4)   │  Free until 5:00 PM
    ────────────────────────────────────────────────
    ```
    _Updated at Aug 10, 2:10 PM PT_
    ## 📅 [Book a room](<https://moxsf.com/portal/book-room>)
"""

import datetime
import logging
from collections.abc import Iterable

from pydantic import BaseModel

from cowork.aliases import ChannelId, MessageId
from cowork.booking.booking_repository import Booking, BookingRepository
from cowork.booking.room_catalog import Room, RoomCatalog
from cowork.constants import DEFAULT_PORTAL_URL, DEFAULT_VENUE_TIMEZONE, OTHER_FLOOR
from cowork.notifications.channel import NotificationChannel
from cowork.time_utils import (
    TimeGetter,
    end_of_day,
    ensure_utc,
    format_clock_time,
    format_short_datetime,
    start_of_day,
    utc_now,
    venue_timezone,
)

logger = logging.getLogger(__name__)

FREE_ALL_DAY = "Free all day"
FREE_GLYPH = "🟢"
BUSY_GLYPH = "🔴"
HEADER = "**# 🚪 Meeting Room Availability**"
RULE_WIDTH = 48
# capacities up to this are not worth showing
MIN_DISPLAYED_CAPACITY = 2


def room_status(
    bookings: Iterable[Booking], now: datetime.datetime, zone: datetime.tzinfo
) -> str:
    """Describe the availability of a room for the rest of the venue-local
    day, given its bookings: "Free all day", "Busy until 3:00 PM" or
    "Free until 5:00 PM"."""
    now = ensure_utc(now)
    today_end = end_of_day(now, zone)
    relevant = sorted(
        (b for b in bookings if b.end_date > now and b.start_date < today_end),
        key=lambda b: b.start_date,
    )
    if not relevant:
        return FREE_ALL_DAY
    for booking in relevant:
        if booking.start_date <= now < booking.end_date:
            return f"Busy until {format_clock_time(booking.end_date, zone)}"
    for booking in relevant:
        if booking.start_date > now:
            return f"Free until {format_clock_time(booking.start_date, zone)}"
    return FREE_ALL_DAY


class RoomStatus(BaseModel):
    room: Room
    status: str

    @property
    def is_free(self) -> bool:
        return self.status.startswith("Free")

    @property
    def floor(self) -> str:
        return self.room.floor or OTHER_FLOOR


def _capacity_suffix(size: int | None) -> str:
    if size is not None and size > MIN_DISPLAYED_CAPACITY:
        return f" (capacity {size})"
    return ""


def display_name(room: Room) -> str:
    return f"{room.name}{_capacity_suffix(room.size)}"


def _floor_sort_key(floor: str) -> tuple[int, float, str]:
    # numeric floors, highest first, then other labels, then "Other"
    if floor == OTHER_FLOOR:
        return 2, 0, ""
    try:
        return 0, -float(floor), ""
    except ValueError:
        return 1, 0, floor


def group_by_floor(statuses: Iterable[RoomStatus]) -> list[tuple[str, list[RoomStatus]]]:
    """Group rooms by floor, floors in display order and rooms sorted by name
    within a floor."""
    floors: dict[str, list[RoomStatus]] = {}
    for status in statuses:
        floors.setdefault(status.floor, []).append(status)
    return [
        (floor, sorted(floors[floor], key=lambda s: (s.room.name, s.room.id)))
        for floor in sorted(floors, key=_floor_sort_key)
    ]


def format_availability_message(
    statuses: list[RoomStatus],
    updated_at: datetime.datetime,
    zone: datetime.tzinfo,
    portal_url: str = DEFAULT_PORTAL_URL,
) -> str:
    """Render the availability feed. Names are padded to the longest name
    (capacity included) across all floors so the status column lines up."""
    width = max((len(display_name(s.room)) for s in statuses), default=0)
    lines = []
    for floor, floor_statuses in group_by_floor(statuses):
        rule = f"─ FLOOR {floor} "
        lines.append(rule + "─" * max(RULE_WIDTH - len(rule), 2))
        for status in floor_statuses:
            glyph = FREE_GLYPH if status.is_free else BUSY_GLYPH
            lines.append(
                f"{glyph} {display_name(status.room).ljust(width)}  │  {status.status}"
            )
    lines.append("─" * RULE_WIDTH)
    return "\n".join(
        [
            HEADER,
            "```",
            *lines,
            "```",
            f"_Updated at {format_short_datetime(updated_at, zone)} PT_",
            f"## 📅 [Book a room](<{portal_url.rstrip('/')}/portal/book-room>)",
        ]
    )


class FeedRefresh(BaseModel):
    """Outcome of a feed refresh.

    Attributes
    ----------
    delivered
        Whether the feed message was posted. The statuses are valid either way.
    message_id
        Id of the message posted, when a new one was sent.
    """

    statuses: list[RoomStatus]
    message: str
    delivered: bool
    message_id: MessageId | None = None


class AvailabilityReporter:
    """Computes the availability of all bookable rooms and publishes it.

    Parameters
    ----------
    channel_id
        The channel the feed is posted to.
    message_id
        The feed message to edit. A new message is sent if not given, and its
        id is logged so it can be configured.
    """

    def __init__(
        self,
        catalog: RoomCatalog,
        repository: BookingRepository,
        channel: NotificationChannel | None = None,
        channel_id: ChannelId | None = None,
        message_id: MessageId | None = None,
        timezone: str = DEFAULT_VENUE_TIMEZONE,
        portal_url: str = DEFAULT_PORTAL_URL,
        time_getter: TimeGetter | None = None,
    ):
        self._catalog = catalog
        self._repository = repository
        self._channel = channel
        self._channel_id = channel_id
        self._message_id = message_id
        self._zone = venue_timezone(timezone)
        self._portal_url = portal_url
        self._time_getter: TimeGetter = time_getter or utc_now

    def compute(self, now: datetime.datetime | None = None) -> list[RoomStatus]:
        now = ensure_utc(now) if now is not None else self._time_getter()
        day_start, day_end = start_of_day(now, self._zone), end_of_day(now, self._zone)
        statuses = []
        for room in self._catalog.list_bookable_rooms():
            bookings = self._repository.get_bookings_for_room(room.id, day_start, day_end)
            statuses.append(
                RoomStatus(room=room, status=room_status(bookings, now, self._zone))
            )
        return statuses

    def _publish(self, message: str) -> tuple[bool, MessageId | None]:
        if self._channel is None or not self._channel_id:
            logger.warning("No channel configured for the availability feed")
            return False, None
        if self._message_id:
            return self._channel.edit_message(self._channel_id, self._message_id, message), None
        delivery = self._channel.send_message(self._channel_id, message)
        if delivery.message_id:
            logger.info(
                f"Created new availability message with id {delivery.message_id}. "
                f"Configure it as the feed message id to edit it in place."
            )
        return delivery.success, delivery.message_id

    def refresh_feed(self, now: datetime.datetime | None = None) -> FeedRefresh:
        """Compute the statuses, render the feed and publish it. A failure to
        publish is reported by `FeedRefresh.delivered`, it is not raised."""
        now = ensure_utc(now) if now is not None else self._time_getter()
        statuses = self.compute(now)
        message = format_availability_message(statuses, now, self._zone, self._portal_url)
        delivered, message_id = self._publish(message)
        if delivered:
            logger.info(f"Updated availability of {len(statuses)} rooms")
        else:
            logger.warning("Failed to publish the availability feed")
        return FeedRefresh(
            statuses=statuses, message=message, delivered=delivered, message_id=message_id
        )
