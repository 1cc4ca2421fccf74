#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime

import polars as pl
import pytest

from cowork.store.database_schemas import TABLE_SCHEMAS, TableName
from cowork.store.memory_store import InMemoryRecordStore
from cowork.store.record_store import QueryOptions, SortSpec

NAMES = ["Delta", "Alpha", "Echo", "Charlie", "Bravo"]


@pytest.fixture(autouse=True)
def populated(store: InMemoryRecordStore) -> None:
    store.create_many(
        TableName.PEOPLE,
        [{"Name": name, "Email": f"{name.lower()}@example.com"} for name in NAMES],
    )


def test_find_follows_pagination(store: InMemoryRecordStore):
    first = store.fetch_page(TableName.PEOPLE, None, QueryOptions())
    assert len(first.records) == 2
    assert first.offset is not None
    records = store.find(TableName.PEOPLE)
    assert sorted(r.fields["Name"] for r in records) == sorted(NAMES)


def test_find_with_formula_sort_and_max_records(store: InMemoryRecordStore):
    records = store.find(
        TableName.PEOPLE,
        "LEN({Name}) = 5",
        QueryOptions(sort=[SortSpec("Name", "desc")]),
    )
    assert [r.fields["Name"] for r in records] == ["Delta", "Bravo", "Alpha"]
    limited = store.find(
        TableName.PEOPLE,
        options=QueryOptions(sort=[SortSpec("Name")], max_records=3),
    )
    assert [r.fields["Name"] for r in limited] == ["Alpha", "Bravo", "Charlie"]


def test_find_returns_requested_fields_only(store: InMemoryRecordStore):
    record = store.find_one(
        TableName.PEOPLE, "{Name} = 'Echo'", QueryOptions(fields=["Email"])
    )
    assert record is not None
    assert record.fields == {"Email": "echo@example.com"}


def test_find_one_without_match(store: InMemoryRecordStore):
    assert store.find_one(TableName.PEOPLE, "{Name} = 'Zulu'") is None


def test_get_and_update(store: InMemoryRecordStore):
    record = store.find_one(TableName.PEOPLE, "{Name} = 'Alpha'")
    assert store.get(TableName.PEOPLE, record.id) == record
    updated = store.update(TableName.PEOPLE, record.id, {"Name": "Alfa"})
    assert updated.id == record.id
    assert updated.fields == {"Name": "Alfa", "Email": "alpha@example.com"}
    assert store.get(TableName.PEOPLE, record.id).fields["Name"] == "Alfa"
    assert store.get(TableName.PEOPLE, "recMissing") is None


def test_update_missing_record_raises(store: InMemoryRecordStore):
    with pytest.raises(KeyError):
        store.update(TableName.PEOPLE, "recMissing", {"Name": "Ghost"})


def test_unknown_field_raises(store: InMemoryRecordStore):
    with pytest.raises(KeyError):
        store.create(TableName.PEOPLE, {"Nickname": "Ghost"})


def test_timestamps_are_stored_as_instants(store: InMemoryRecordStore):
    record = store.create(
        TableName.ROOM_BOOKINGS,
        {
            "Room": ["recRoom"],
            "Booked By": ["recAda"],
            "Start": "2024-08-10T09:00:00-07:00",
            "End": datetime.datetime(2024, 8, 10, 17, tzinfo=datetime.timezone.utc),
            "Status": "Confirmed",
        },
    )
    assert record.fields["Start"] == "2024-08-10T16:00:00.000Z"
    assert record.fields["End"] == "2024-08-10T17:00:00.000Z"
    assert "Purpose" not in record.fields
    table = store.get_table(TableName.ROOM_BOOKINGS)
    assert table.schema["Start"] == pl.Datetime("us", "UTC")


def test_serialisation_round_trip(store: InMemoryRecordStore):
    restored = InMemoryRecordStore.from_dict(store.to_dict())
    assert restored.find(TableName.PEOPLE) == store.find(TableName.PEOPLE)


def test_invalid_page_size():
    with pytest.raises(ValueError):
        InMemoryRecordStore(page_size=0)


def test_booking_status_is_a_string_enum(store: InMemoryRecordStore):
    status = TABLE_SCHEMAS[TableName.ROOM_BOOKINGS]["Status"]
    assert status.categories.to_list() == ["Confirmed", "Cancelled"]
    record = store.create(TableName.ROOM_BOOKINGS, {"Status": "Cancelled"})
    assert store.get(TableName.ROOM_BOOKINGS, record.id).fields == {"Status": "Cancelled"}
    assert store.get_table(TableName.ROOM_BOOKINGS)["Status"].dtype == status
