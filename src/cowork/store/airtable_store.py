#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import logging
from typing import Any
from urllib.parse import quote

import requests

from cowork.aliases import Formula, RecordId
from cowork.constants import DEFAULT_PAGE_SIZE, DEFAULT_REQUEST_TIMEOUT_SECONDS
from cowork.exceptions import UpstreamUnavailable
from cowork.http_utils import retry_transient, send_request
from cowork.store.database_schemas import TableName
from cowork.store.record_store import QueryOptions, Record, RecordPage, RecordStore

logger = logging.getLogger(__name__)

AIRTABLE_API_URL = "https://api.airtable.com/v0"


class AirtableRecordStore(RecordStore):
    """Record store backed by the Airtable REST API.

    Parameters
    ----------
    api_key
        Personal access token with read/write access to `base_id`.
    base_id
        The base holding the Rooms, Room Bookings, Events and People tables.
    timeout
        Timeout, in seconds, applied to every request.
    page_size
        Records requested per page; the API caps it at 100.
    session
        Session used to send requests, a new one is created if not given.
    """

    def __init__(
        self,
        api_key: str,
        base_id: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        page_size: int = DEFAULT_PAGE_SIZE,
        api_url: str = AIRTABLE_API_URL,
        session: requests.Session | None = None,
    ):
        if not api_key or not base_id:
            raise ValueError("Both api_key and base_id are required")
        self._base_url = f"{api_url.rstrip('/')}/{base_id}"
        self._timeout = float(timeout)
        self._page_size = min(page_size, DEFAULT_PAGE_SIZE)
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    def _table_url(self, table: TableName, record_id: RecordId | None = None) -> str:
        url = f"{self._base_url}/{quote(str(table), safe='')}"
        if record_id is not None:
            url = f"{url}/{quote(record_id, safe='')}"
        return url

    @retry_transient
    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        return send_request(self._session, method, url, self._timeout, **kwargs)

    def _send_json(self, method: str, url: str, **kwargs: Any) -> dict[str, Any] | None:
        """Send a request and decode the JSON body. Returns `None` on 404."""
        response = self._send(method, url, **kwargs)
        if response.status_code == 404:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"Invalid JSON returned by {url}") from e

    @staticmethod
    def _to_record(payload: dict[str, Any]) -> Record:
        return Record(id=payload["id"], fields=payload.get("fields", {}))

    def _query_params(
        self, formula: Formula | None, options: QueryOptions, offset: str | None
    ) -> list[tuple[str, Any]]:
        params: list[tuple[str, Any]] = [("pageSize", self._page_size)]
        if formula:
            params.append(("filterByFormula", formula))
        if offset:
            params.append(("offset", offset))
        if options.max_records is not None:
            params.append(("maxRecords", options.max_records))
        for name in options.fields or []:
            params.append(("fields[]", name))
        for i, spec in enumerate(options.sort or []):
            params.append((f"sort[{i}][field]", spec.field))
            params.append((f"sort[{i}][direction]", spec.direction))
        return params

    def fetch_page(
        self,
        table: TableName,
        formula: Formula | None,
        options: QueryOptions,
        offset: str | None = None,
    ) -> RecordPage:
        url = self._table_url(table)
        payload = self._send_json(
            "GET", url, params=self._query_params(formula, options, offset)
        )
        if payload is None:
            raise UpstreamUnavailable(f"Table {table} does not exist")
        records = [self._to_record(r) for r in payload.get("records", [])]
        return RecordPage(records=records, offset=payload.get("offset"))

    def get(self, table: TableName, record_id: RecordId) -> Record | None:
        payload = self._send_json("GET", self._table_url(table, record_id))
        if payload is None:
            logger.debug(f"Record {record_id} not found in {table}")
            return None
        return self._to_record(payload)

    def create(self, table: TableName, fields: dict[str, Any]) -> Record:
        payload = self._send_json(
            "POST", self._table_url(table), json={"fields": fields, "typecast": True}
        )
        if payload is None:
            raise UpstreamUnavailable(f"Table {table} does not exist")
        record = self._to_record(payload)
        logger.debug(f"Created {record.id} in {table}")
        return record

    def update(
        self, table: TableName, record_id: RecordId, fields: dict[str, Any]
    ) -> Record:
        payload = self._send_json(
            "PATCH",
            self._table_url(table, record_id),
            json={"fields": fields, "typecast": True},
        )
        if payload is None:
            raise KeyError(f"No record {record_id} in table {table}")
        return self._to_record(payload)
