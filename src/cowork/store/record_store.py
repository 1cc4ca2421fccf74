#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""The contract every record store adapter implements. Records are loosely
typed (a mapping of field names to JSON values); callers map them to strict
models as soon as they are read."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, Field

from cowork.aliases import Formula, RecordId
from cowork.store.database_schemas import TableName

logger = logging.getLogger(__name__)


class Record(BaseModel):
    """A row of a record store table.

    Attributes
    ----------
    id
        Opaque, stable identifier assigned by the store.
    fields
        The non-empty fields of the record. Timestamps are ISO-8601 strings and
        links to other tables are lists of record ids.
    """

    id: RecordId
    fields: dict[str, Any] = Field(default_factory=dict)


class SortSpec(NamedTuple):
    field: str
    direction: Literal["asc", "desc"] = "asc"


class QueryOptions(BaseModel):
    """Options for `RecordStore.find`.

    Attributes
    ----------
    fields
        If specified, only these fields are returned.
    sort
        Sort keys, applied in order.
    max_records
        Upper bound on the total number of records returned, across pages.
    """

    fields: list[str] | None = None
    sort: list[SortSpec] | None = None
    max_records: int | None = None


class RecordPage(NamedTuple):
    records: list[Record]
    # token for the next page, None when the result set is exhausted
    offset: str | None


class RecordStore(ABC):
    """Generic create/read/update/find over named tables, with formula
    filtering evaluated by the store."""

    @abstractmethod
    def fetch_page(
        self,
        table: TableName,
        formula: Formula | None,
        options: QueryOptions,
        offset: str | None = None,
    ) -> RecordPage: ...

    @abstractmethod
    def get(self, table: TableName, record_id: RecordId) -> Record | None: ...

    @abstractmethod
    def create(self, table: TableName, fields: dict[str, Any]) -> Record: ...

    @abstractmethod
    def update(
        self, table: TableName, record_id: RecordId, fields: dict[str, Any]
    ) -> Record: ...

    def find(
        self,
        table: TableName,
        formula: Formula | None = None,
        options: QueryOptions | None = None,
    ) -> list[Record]:
        """Return all the records of `table` matching `formula`, following
        pagination tokens until the result set is exhausted."""
        options = options or QueryOptions()
        records: list[Record] = []
        offset = None
        pages = 0
        while True:
            page = self.fetch_page(table, formula, options, offset=offset)
            records.extend(page.records)
            pages += 1
            if options.max_records is not None and len(records) >= options.max_records:
                records = records[: options.max_records]
                break
            if page.offset is None:
                break
            offset = page.offset
        logger.debug(f"Fetched {len(records)} records from {table} in {pages} page(s)")
        return records

    def find_one(
        self,
        table: TableName,
        formula: Formula,
        options: QueryOptions | None = None,
    ) -> Record | None:
        options = (options or QueryOptions()).model_copy(update={"max_records": 1})
        records = self.find(table, formula, options)
        return records[0] if records else None
