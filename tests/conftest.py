#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import time

import pytest

from cowork.booking.booking_repository import BookingRepository
from cowork.booking.booking_service import BookingService
from cowork.booking.directory import PersonDirectory
from cowork.booking.room_catalog import Room, RoomCatalog
from cowork.store.database_schemas import TableName
from cowork.store.memory_store import InMemoryRecordStore
from tests.fakes import PEOPLE, ROOMS, VENUE_TIMEZONE, FakeClock, pt


@pytest.fixture
def no_sleep(monkeypatch):
    """Make retries immediate."""
    monkeypatch.setattr(time, "sleep", lambda seconds: None)


@pytest.fixture
def store() -> InMemoryRecordStore:
    # a small page size makes every query go through pagination
    return InMemoryRecordStore(page_size=2)


@pytest.fixture
def rooms(store: InMemoryRecordStore) -> dict[str, Room]:
    records = store.create_many(TableName.ROOMS, ROOMS)
    return {r.fields["Name"]: Room.from_record(r) for r in records}


@pytest.fixture
def people(store: InMemoryRecordStore) -> dict[str, str]:
    records = store.create_many(TableName.PEOPLE, PEOPLE)
    return {r.fields.get("Name", "nameless"): r.id for r in records}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(pt(2024, 8, 10, 8))


@pytest.fixture
def repository(store: InMemoryRecordStore) -> BookingRepository:
    return BookingRepository(store, timezone=VENUE_TIMEZONE)


@pytest.fixture
def service(
    store: InMemoryRecordStore,
    repository: BookingRepository,
    clock: FakeClock,
    rooms: dict[str, Room],
    people: dict[str, str],
) -> BookingService:
    return BookingService(
        catalog=RoomCatalog(store),
        repository=repository,
        directory=PersonDirectory(store),
        time_getter=clock,
        timezone=VENUE_TIMEZONE,
    )
