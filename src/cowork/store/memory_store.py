#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import copy
import datetime
import logging
import threading
import uuid
from typing import Any, Self

import polars as pl

from cowork.aliases import Formula, RecordId
from cowork.constants import DEFAULT_PAGE_SIZE
from cowork.store.database_schemas import RECORD_ID_COLUMN, TABLE_SCHEMAS, TableName
from cowork.store.formula import matches
from cowork.store.record_store import QueryOptions, Record, RecordPage, RecordStore
from cowork.time_utils import parse_instant, to_iso

logger = logging.getLogger(__name__)


def _new_record_id() -> RecordId:
    return f"rec{uuid.uuid4().hex[:14]}"


class InMemoryRecordStore(RecordStore):
    """Record store keeping each table in a polars dataframe.

    It behaves like the hosted store as far as callers can tell: formulas are
    evaluated by the store, results are paginated with opaque offset tokens,
    timestamps go in and come out as ISO-8601 strings and empty fields are
    omitted from returned records. All operations are serialised by a lock,
    so a single instance can be shared between threads.

    Parameters
    ----------
    page_size
        The maximum number of records returned by `fetch_page`.
    """

    table_schemas: dict[TableName, dict[str, Any]] = TABLE_SCHEMAS

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.page_size = page_size
        self._lock = threading.RLock()
        self._tables: dict[TableName, pl.DataFrame] = {
            table: pl.DataFrame(schema=self._schema(table)) for table in self.table_schemas
        }

    @classmethod
    def _schema(cls, table: TableName) -> dict[str, Any]:
        return {RECORD_ID_COLUMN: pl.String, **cls.table_schemas[table]}

    def to_dict(self) -> dict[str, Any]:
        """Serialise the content of all tables. The output can be loaded
        with `from_dict`."""
        with self._lock:
            return {
                str(table): [
                    self._to_record(table, row).model_dump()
                    for row in dataframe.iter_rows(named=True)
                ]
                for table, dataframe in self._tables.items()
            }

    @classmethod
    def from_dict(cls, serialised: dict[str, Any], page_size: int = DEFAULT_PAGE_SIZE) -> Self:
        store = cls(page_size=page_size)
        for table_name, records in serialised.items():
            table = TableName(table_name)
            if not records:
                continue
            store._tables[table] = pl.from_dicts(
                [store._to_row(table, r["fields"], record_id=r["id"]) for r in records],
                schema=cls._schema(table),
            )
        return store

    def get_table(self, table: TableName) -> pl.DataFrame:
        """Return the dataframe backing `table`. Treat it as read-only, use
        `create` and `update` to modify the table."""
        with self._lock:
            return self._tables[table]

    def _to_row(
        self, table: TableName, fields: dict[str, Any], record_id: RecordId
    ) -> dict[str, Any]:
        schema = self.table_schemas[table]
        unknown = set(fields) - set(schema)
        if unknown:
            raise KeyError(
                f"Only fields {set(schema)} are allowed for table {table}. "
                f"Found unknown fields {unknown}"
            )
        row: dict[str, Any] = {RECORD_ID_COLUMN: record_id}
        for name, value in fields.items():
            if isinstance(schema[name], pl.Datetime) and value is not None:
                value = parse_instant(value)
            row[name] = value
        return row

    def _to_record(
        self,
        table: TableName,
        row: dict[str, Any],
        fields: list[str] | None = None,
    ) -> Record:
        record_fields = {}
        for name in self.table_schemas[table]:
            if fields is not None and name not in fields:
                continue
            value = row.get(name)
            if value is None:
                continue
            if isinstance(value, datetime.datetime):
                value = to_iso(value)
            record_fields[name] = value
        return Record(id=row[RECORD_ID_COLUMN], fields=record_fields)

    def _filter(
        self, table: TableName, dataframe: pl.DataFrame, formula: Formula | None
    ) -> pl.DataFrame:
        if not formula:
            return dataframe
        mask = [
            matches(formula, self._to_record(table, row))
            for row in dataframe.iter_rows(named=True)
        ]
        return dataframe.filter(pl.Series(mask, dtype=pl.Boolean))

    def fetch_page(
        self,
        table: TableName,
        formula: Formula | None,
        options: QueryOptions,
        offset: str | None = None,
    ) -> RecordPage:
        with self._lock:
            dataframe = self._filter(table, self._tables[table], formula)
        if options.sort:
            dataframe = dataframe.sort(
                by=[s.field for s in options.sort],
                descending=[s.direction == "desc" for s in options.sort],
                nulls_last=True,
                maintain_order=True,
            )
        if options.max_records is not None:
            dataframe = dataframe.head(options.max_records)
        start = int(offset) if offset else 0
        page = dataframe.slice(start, self.page_size)
        next_start = start + self.page_size
        next_offset = str(next_start) if next_start < len(dataframe) else None
        records = [
            self._to_record(table, row, fields=options.fields)
            for row in page.iter_rows(named=True)
        ]
        return RecordPage(records=records, offset=next_offset)

    def get(self, table: TableName, record_id: RecordId) -> Record | None:
        with self._lock:
            found = self._tables[table].filter(pl.col(RECORD_ID_COLUMN) == record_id)
        if found.is_empty():
            return None
        return self._to_record(table, found.row(0, named=True))

    def create(self, table: TableName, fields: dict[str, Any]) -> Record:
        return self.create_many(table, [fields])[0]

    def create_many(
        self, table: TableName, rows: list[dict[str, Any]]
    ) -> list[Record]:
        """Add multiple records to a table.

        Raises
        ------
        KeyError:   When a field is not part of the table schema.
        """
        rows = copy.deepcopy(rows)
        new_rows = [self._to_row(table, fields, _new_record_id()) for fields in rows]
        with self._lock:
            self._tables[table] = self._tables[table].vstack(
                pl.from_dicts(new_rows, schema=self._schema(table))
            )
        return [self._to_record(table, row) for row in new_rows]

    def update(
        self, table: TableName, record_id: RecordId, fields: dict[str, Any]
    ) -> Record:
        """Update some fields of an existing record.

        Raises
        ------
        KeyError: When the record does not exist or a field is unknown.
        """
        changes = self._to_row(table, copy.deepcopy(fields), record_id)
        with self._lock:
            rows = self._tables[table].to_dicts()
            for row in rows:
                if row[RECORD_ID_COLUMN] == record_id:
                    row.update(changes)
                    updated = row
                    break
            else:
                raise KeyError(f"No record {record_id} in table {table}")
            self._tables[table] = pl.from_dicts(rows, schema=self._schema(table))
        logger.debug(f"Updated {record_id} in {table}: {sorted(fields)}")
        return self._to_record(table, updated)
