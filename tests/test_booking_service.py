#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from cowork.booking.booking_repository import BookingRepository
from cowork.booking.booking_service import BookingService
from cowork.booking.directory import PersonDirectory
from cowork.booking.locks import InProcessRoomLocks
from cowork.booking.room_catalog import Room, RoomCatalog
from cowork.exceptions import (
    BookingRejected,
    Forbidden,
    InvalidRange,
    NotFound,
    PastBooking,
    RoomLockTimeout,
    RoomNotBookable,
    RoomNotFound,
    SlotTaken,
    UpstreamUnavailable,
)
from cowork.store.database_schemas import BookingStatus, TableName
from cowork.store.memory_store import InMemoryRecordStore
from tests.fakes import VENUE_TIMEZONE, FakeClock, RecordingChannel, pt


@pytest.fixture
def library(rooms: dict[str, Room]) -> Room:
    return rooms["Library"]


@pytest.fixture
def ada(people: dict[str, str]) -> str:
    return people["Ada Lovelace"]


def _bookings(store: InMemoryRecordStore) -> list[dict]:
    return store.get_table(TableName.ROOM_BOOKINGS).to_dicts()


def test_request_booking(service: BookingService, store: InMemoryRecordStore, library: Room, ada: str):
    booking = service.request_booking(
        library.id, pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), ada, purpose="Interview"
    )
    assert booking.room_name == "Library"
    assert booking.user_id == ada
    assert booking.user_name == "Ada Lovelace"
    assert booking.purpose == "Interview"
    assert booking.status == BookingStatus.Confirmed
    assert service.get_bookings_for_room(library.id, pt(2024, 8, 10), pt(2024, 8, 11)) == [booking]


def test_adjacent_bookings_are_accepted(service: BookingService, library: Room, ada: str):
    service.request_booking(library.id, pt(2024, 8, 10, 10), pt(2024, 8, 10, 11), ada)
    service.request_booking(library.id, pt(2024, 8, 10, 11), pt(2024, 8, 10, 12), ada)
    service.request_booking(library.id, pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), ada)
    bookings = service.get_bookings_for_room(library.id, pt(2024, 8, 10), pt(2024, 8, 11))
    assert [b.start_date.hour for b in bookings] == [16, 17, 18]


def test_overlapping_booking_is_rejected(
    service: BookingService, store: InMemoryRecordStore, library: Room, people: dict[str, str]
):
    service.request_booking(
        library.id, pt(2024, 8, 10, 10), pt(2024, 8, 10, 11), people["Ada Lovelace"]
    )
    with pytest.raises(SlotTaken) as excinfo:
        service.request_booking(
            library.id, pt(2024, 8, 10, 10, 30), pt(2024, 8, 10, 10, 45), people["Grace Hopper"]
        )
    assert excinfo.value.reason == "slot_taken"
    # only the time window is disclosed
    assert excinfo.value.conflicts == [(pt(2024, 8, 10, 10), pt(2024, 8, 10, 11))]
    assert len(_bookings(store)) == 1


def test_same_slot_in_another_room_is_accepted(
    service: BookingService, rooms: dict[str, Room], ada: str
):
    service.request_booking(rooms["Library"].id, pt(2024, 8, 10, 10), pt(2024, 8, 10, 11), ada)
    service.request_booking(rooms["Studio"].id, pt(2024, 8, 10, 10), pt(2024, 8, 10, 11), ada)


def test_cancelled_booking_frees_the_slot(service: BookingService, library: Room, ada: str):
    booking = service.request_booking(library.id, pt(2024, 8, 10, 10), pt(2024, 8, 10, 11), ada)
    service.cancel_booking(booking.id, ada, acting_is_staff=False)
    service.request_booking(library.id, pt(2024, 8, 10, 10), pt(2024, 8, 10, 11), ada)


@pytest.mark.parametrize(
    "start, end",
    [
        (pt(2024, 8, 10, 11), pt(2024, 8, 10, 10)),
        (pt(2024, 8, 10, 11), pt(2024, 8, 10, 11)),
    ],
)
def test_empty_interval_is_rejected(
    service: BookingService, store: InMemoryRecordStore, library: Room, ada: str, start, end
):
    with pytest.raises(InvalidRange):
        service.request_booking(library.id, start, end, ada)
    assert _bookings(store) == []


def test_booking_in_the_past_is_rejected(
    service: BookingService, clock: FakeClock, library: Room, ada: str
):
    with pytest.raises(PastBooking):
        service.request_booking(library.id, pt(2024, 8, 10, 7, 59), pt(2024, 8, 10, 9), ada)
    # starting right now is fine
    service.request_booking(library.id, clock(), pt(2024, 8, 10, 9), ada)


def test_unknown_room_is_rejected(service: BookingService, ada: str):
    with pytest.raises(RoomNotFound):
        service.request_booking("recMissing", pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), ada)


def test_non_bookable_room_is_rejected(service: BookingService, rooms: dict[str, Room], ada: str):
    with pytest.raises(RoomNotBookable) as excinfo:
        service.request_booking(rooms["Storage"].id, pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), ada)
    assert isinstance(excinfo.value, BookingRejected)


def test_checks_run_in_order(service: BookingService, ada: str):
    # an empty interval in the past for an unknown room is reported as empty
    with pytest.raises(InvalidRange):
        service.request_booking("recMissing", pt(2024, 8, 9, 10), pt(2024, 8, 9, 9), ada)
    with pytest.raises(PastBooking):
        service.request_booking("recMissing", pt(2024, 8, 9, 9), pt(2024, 8, 9, 10), ada)


@pytest.mark.parametrize("who", ["nameless", "recNobody"])
def test_unknown_names_fall_back(
    service: BookingService, library: Room, people: dict[str, str], who: str
):
    user_id = people.get(who, who)
    booking = service.request_booking(library.id, pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), user_id)
    assert booking.user_name == "Unknown"


def test_given_user_name_skips_lookup(service: BookingService, library: Room, ada: str):
    booking = service.request_booking(
        library.id, pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), ada, user_name="Countess Ada"
    )
    assert booking.user_name == "Countess Ada"


def test_directory_outage_does_not_block_bookings(
    service: BookingService, store: InMemoryRecordStore, library: Room, ada: str, monkeypatch
):
    original_get = store.get

    def get(table, record_id):
        if table == TableName.PEOPLE:
            raise UpstreamUnavailable("People table unreachable")
        return original_get(table, record_id)

    monkeypatch.setattr(store, "get", get)
    booking = service.request_booking(library.id, pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), ada)
    assert booking.user_name == "Unknown"


def _service_with(store, repository, clock, **kwargs) -> BookingService:
    return BookingService(
        catalog=RoomCatalog(store),
        repository=repository,
        directory=PersonDirectory(store),
        time_getter=clock,
        timezone=VENUE_TIMEZONE,
        **kwargs,
    )


def test_successful_booking_is_announced(
    store: InMemoryRecordStore, repository: BookingRepository, clock: FakeClock, library: Room, ada: str
):
    channel = RecordingChannel()
    service = _service_with(store, repository, clock, channel=channel, channel_id="chan")
    service.request_booking(
        library.id, pt(2024, 8, 12, 9), pt(2024, 8, 12, 10), ada, purpose="Standup"
    )
    assert channel.sent == [
        ("chan", "📅 Ada Lovelace booked Library for Aug 12, 9:00 AM - 10:00 AM (Standup)")
    ]


def test_failed_announcement_keeps_the_booking(
    store: InMemoryRecordStore, repository: BookingRepository, clock: FakeClock, library: Room, ada: str
):
    channel = RecordingChannel(succeed=False)
    service = _service_with(store, repository, clock, channel=channel, channel_id="chan")
    booking = service.request_booking(library.id, pt(2024, 8, 12, 9), pt(2024, 8, 12, 10), ada)
    assert repository.get_booking(booking.id) is not None
    assert len(channel.sent) == 1


def test_rejected_booking_is_not_announced(
    store: InMemoryRecordStore, repository: BookingRepository, clock: FakeClock, library: Room, ada: str
):
    channel = RecordingChannel()
    service = _service_with(store, repository, clock, channel=channel, channel_id="chan")
    with pytest.raises(PastBooking):
        service.request_booking(library.id, pt(2024, 8, 9, 9), pt(2024, 8, 9, 10), ada)
    assert channel.sent == []


class _RendezvousDirectory(PersonDirectory):
    """Makes every caller wait for the others after the optimistic
    conflict check, so they all reach the room lock together."""

    def __init__(self, store, barrier: threading.Barrier):
        super().__init__(store)
        self._barrier = barrier

    def lookup_person_name(self, user_id: str) -> str:
        self._barrier.wait(timeout=5)
        return super().lookup_person_name(user_id)


def test_concurrent_requests_for_the_same_slot(
    store: InMemoryRecordStore,
    repository: BookingRepository,
    clock: FakeClock,
    library: Room,
    people: dict[str, str],
):
    contenders = [people["Ada Lovelace"], people["Grace Hopper"], people["nameless"]]
    service = BookingService(
        catalog=RoomCatalog(store),
        repository=repository,
        directory=_RendezvousDirectory(store, threading.Barrier(len(contenders))),
        time_getter=clock,
        timezone=VENUE_TIMEZONE,
    )

    def attempt(user_id: str):
        try:
            return service.request_booking(
                library.id, pt(2024, 8, 10, 10), pt(2024, 8, 10, 11), user_id
            )
        except SlotTaken as e:
            return e

    with ThreadPoolExecutor(max_workers=len(contenders)) as executor:
        results = list(executor.map(attempt, contenders))

    winners = [r for r in results if not isinstance(r, SlotTaken)]
    assert len(winners) == 1
    assert sum(isinstance(r, SlotTaken) for r in results) == len(contenders) - 1
    assert [b["record_id"] for b in _bookings(store)] == [winners[0].id]


def test_lock_timeout(
    store: InMemoryRecordStore, repository: BookingRepository, clock: FakeClock, library: Room, ada: str
):
    locks = InProcessRoomLocks(timeout=0.01)
    service = _service_with(store, repository, clock, locks=locks)
    with locks.hold(library.id):
        with pytest.raises(RoomLockTimeout):
            service.request_booking(library.id, pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), ada)
    assert _bookings(store) == []
    service.request_booking(library.id, pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), ada)


def test_get_user_bookings(service: BookingService, clock: FakeClock, rooms: dict[str, Room], ada: str):
    studio = service.request_booking(rooms["Studio"].id, pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), ada)
    library = service.request_booking(rooms["Library"].id, pt(2024, 8, 10, 8), pt(2024, 8, 10, 9), ada)
    assert [b.id for b in service.get_user_bookings(ada)] == [library.id, studio.id]
    clock.now = pt(2024, 8, 10, 9)
    assert [b.id for b in service.get_user_bookings(ada)] == [studio.id]


def test_owner_cancels_booking(service: BookingService, repository: BookingRepository, library: Room, ada: str):
    booking = service.request_booking(library.id, pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), ada)
    assert service.cancel_booking(booking.id, ada, acting_is_staff=False)
    assert repository.get_booking(booking.id).status == BookingStatus.Cancelled
    # cancelling twice succeeds
    assert service.cancel_booking(booking.id, ada, acting_is_staff=False)


def test_staff_cancels_any_booking(
    service: BookingService, repository: BookingRepository, library: Room, people: dict[str, str]
):
    booking = service.request_booking(
        library.id, pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), people["Ada Lovelace"]
    )
    assert service.cancel_booking(booking.id, people["Grace Hopper"], acting_is_staff=True)
    assert repository.get_booking(booking.id).status == BookingStatus.Cancelled


def test_member_cannot_cancel_others_booking(
    service: BookingService, repository: BookingRepository, library: Room, people: dict[str, str]
):
    booking = service.request_booking(
        library.id, pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), people["Ada Lovelace"]
    )
    with pytest.raises(Forbidden):
        service.cancel_booking(booking.id, people["Grace Hopper"], acting_is_staff=False)
    assert repository.get_booking(booking.id).status == BookingStatus.Confirmed


def test_cancel_missing_booking(service: BookingService, ada: str):
    with pytest.raises(NotFound):
        service.cancel_booking("recMissing", ada, acting_is_staff=True)


def test_room_names_with_separator_are_read_back(
    service: BookingService, store: InMemoryRecordStore, ada: str
):
    loft = store.create(TableName.ROOMS, {"Name": "Loft - East", "Bookable": True})
    service.request_booking(loft.id, pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), ada)
    [booking] = service.get_bookings_for_room(loft.id, pt(2024, 8, 10), pt(2024, 8, 11))
    assert booking.room_name == "Loft - East"
    assert booking.user_name == "Ada Lovelace"


def _booking_without_end(store: InMemoryRecordStore, room: Room, user_id: str) -> str:
    record = store.create(
        TableName.ROOM_BOOKINGS,
        {
            "Room": [room.id],
            "Booked By": [user_id],
            "Start": "2024-08-10T16:00:00.000Z",
            "Status": "Confirmed",
        },
    )
    return record.id


def test_owner_cancels_malformed_booking(
    service: BookingService, store: InMemoryRecordStore, library: Room, ada: str
):
    booking_id = _booking_without_end(store, library, ada)
    assert service.cancel_booking(booking_id, ada, acting_is_staff=False)
    assert store.get(TableName.ROOM_BOOKINGS, booking_id).fields["Status"] == "Cancelled"


def test_member_cannot_cancel_others_malformed_booking(
    service: BookingService, store: InMemoryRecordStore, library: Room, people: dict[str, str]
):
    booking_id = _booking_without_end(store, library, people["Ada Lovelace"])
    with pytest.raises(Forbidden):
        service.cancel_booking(booking_id, people["Grace Hopper"], acting_is_staff=False)
    assert store.get(TableName.ROOM_BOOKINGS, booking_id).fields["Status"] == "Confirmed"
