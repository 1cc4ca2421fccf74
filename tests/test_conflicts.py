#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import pytest

from cowork.booking.booking_repository import Booking, BookingRepository
from cowork.booking.conflicts import ConflictDetector, find_conflicts
from cowork.booking.room_catalog import Room
from cowork.store.database_schemas import BookingStatus
from tests.fakes import pt


def _booking(booking_id: str, start_hour: int, end_hour: int, **kwargs) -> Booking:
    return Booking(
        id=booking_id,
        room_id="recRoom",
        user_id="recAda",
        start_date=pt(2024, 8, 10, start_hour),
        end_date=pt(2024, 8, 10, end_hour),
        **kwargs,
    )


BOOKINGS = [
    _booking("recAfternoon", 14, 15),
    _booking("recMorning", 10, 11),
    _booking("recCancelled", 11, 12, status=BookingStatus.Cancelled),
]


@pytest.mark.parametrize(
    "start, end, expected",
    [
        # touching intervals do not conflict
        (pt(2024, 8, 10, 11), pt(2024, 8, 10, 12), []),
        (pt(2024, 8, 10, 9), pt(2024, 8, 10, 10), []),
        (pt(2024, 8, 10, 10, 30), pt(2024, 8, 10, 10, 45), ["recMorning"]),
        (pt(2024, 8, 10, 10), pt(2024, 8, 10, 11), ["recMorning"]),
        (pt(2024, 8, 10, 9), pt(2024, 8, 10, 16), ["recMorning", "recAfternoon"]),
    ],
)
def test_find_conflicts(start, end, expected):
    assert [b.id for b in find_conflicts(BOOKINGS, start, end)] == expected


def test_find_conflicts_excludes_booking():
    conflicts = find_conflicts(
        BOOKINGS, pt(2024, 8, 10, 9), pt(2024, 8, 10, 16), exclude_booking_id="recMorning"
    )
    assert [b.id for b in conflicts] == ["recAfternoon"]


def test_conflict_detector_reads_room_bookings(
    repository: BookingRepository, rooms: dict[str, Room]
):
    library, studio = rooms["Library"], rooms["Studio"]
    existing = repository.create_booking(
        room_id=library.id,
        room_name=library.name,
        user_id="recAda",
        user_name="Ada Lovelace",
        start=pt(2024, 8, 10, 10),
        end=pt(2024, 8, 10, 11),
    )
    detector = ConflictDetector(repository)

    conflicts = detector.find_conflicts(library.id, pt(2024, 8, 10, 10, 30), pt(2024, 8, 10, 10, 45))
    assert [c.id for c in conflicts] == [existing.id]
    assert conflicts[0].interval == (pt(2024, 8, 10, 10), pt(2024, 8, 10, 11))
    assert detector.find_conflicts(studio.id, pt(2024, 8, 10, 10), pt(2024, 8, 10, 11)) == []
    assert (
        detector.find_conflicts(
            library.id, pt(2024, 8, 10, 10), pt(2024, 8, 10, 11), exclude_booking_id=existing.id
        )
        == []
    )


class _LooseRepository(BookingRepository):
    """Answers every room query with the same bookings."""

    def __init__(self, bookings: list[Booking]):
        self._bookings = bookings

    def get_bookings_for_room(self, room_id, range_start, range_end, exclude_booking_id=None):
        return self._bookings


def test_conflict_detector_ignores_other_rooms():
    other_room = _booking("recOther", 10, 11).model_copy(update={"room_id": "recRoom2"})
    detector = ConflictDetector(_LooseRepository([other_room, *BOOKINGS]))
    conflicts = detector.find_conflicts("recRoom", pt(2024, 8, 10, 9), pt(2024, 8, 10, 16))
    assert [b.id for b in conflicts] == ["recMorning", "recAfternoon"]
    assert detector.find_conflicts("recRoom2", pt(2024, 8, 10, 10), pt(2024, 8, 10, 11))[0].id == "recOther"
