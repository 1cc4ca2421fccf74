#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import logging
from typing import Self

from pydantic import BaseModel
from rapidfuzz import fuzz, process, utils

from cowork.aliases import RoomId
from cowork.exceptions import SearchError
from cowork.store.database_schemas import TableName
from cowork.store.record_store import QueryOptions, Record, RecordStore, SortSpec

logger = logging.getLogger(__name__)

BOOKABLE_ROOMS_FORMULA = "{Bookable} = TRUE()"
ROOM_NAME_MATCH_THRESHOLD = 80


class Room(BaseModel):
    """A meeting room.

    Attributes
    ----------
    floor
        Label grouping rooms in the availability feed, `None` if unknown.
    size
        Capacity of the room, if known.
    """

    id: RoomId
    name: str
    floor: str | None = None
    size: int | None = None
    bookable: bool = False
    room_number: str | None = None
    status: str | None = None

    @classmethod
    def from_record(cls, record: Record) -> Self:
        fields = record.fields
        floor = fields.get("Floor")
        room_number = fields.get("Room #")
        size = fields.get("Room Size")
        return cls(
            id=record.id,
            name=fields.get("Name") or "",
            floor=str(floor) if floor not in (None, "") else None,
            size=int(size) if size is not None else None,
            bookable=bool(fields.get("Bookable", False)),
            room_number=str(room_number) if room_number is not None else None,
            status=fields.get("Status"),
        )


class RoomCatalog:
    """Read-only access to the rooms of the venue. Store failures propagate
    to the caller."""

    def __init__(self, store: RecordStore):
        self._store = store

    def list_bookable_rooms(self) -> list[Room]:
        records = self._store.find(
            TableName.ROOMS,
            BOOKABLE_ROOMS_FORMULA,
            QueryOptions(sort=[SortSpec("Name")]),
        )
        return [Room.from_record(r) for r in records]

    def get_room(self, room_id: RoomId) -> Room | None:
        record = self._store.get(TableName.ROOMS, room_id)
        if record is None:
            return None
        return Room.from_record(record)

    def find_room_by_name(self, name: str, threshold: int = ROOM_NAME_MATCH_THRESHOLD) -> Room:
        """Find the bookable room whose name best matches `name`.

        Raises
        ------
        SearchError
            If no bookable room is similar enough to `name`.
        """
        rooms = self.list_bookable_rooms()
        match = process.extractOne(
            query=name,
            choices=[room.name for room in rooms],
            processor=utils.default_process,
            scorer=fuzz.WRatio,
            score_cutoff=threshold,
        )
        if match is None:
            raise SearchError(f"Room '{name}' not found")
        _, score, index = match
        logger.debug(f"Matched '{name}' to room '{rooms[index].name}' (score {score:.1f})")
        return rooms[index]
