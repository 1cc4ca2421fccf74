#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from enum import StrEnum
from typing import Any

import polars as pl


class TableName(StrEnum):
    """Tables of the record store this package reads and writes."""

    ROOMS = "Rooms"
    ROOM_BOOKINGS = "Room Bookings"
    EVENTS = "Events"
    PEOPLE = "People"


class BookingStatus(StrEnum):
    Confirmed = "Confirmed"
    Cancelled = "Cancelled"


RECORD_ID_COLUMN = "record_id"
INSTANT = pl.Datetime("us", "UTC")

TABLE_SCHEMAS: dict[TableName, dict[str, Any]] = {
    TableName.ROOMS: {
        "Name": pl.String,
        "Floor": pl.String,
        "Room #": pl.String,
        "Room Size": pl.Int64,
        "Status": pl.String,
        "Bookable": pl.Boolean,
    },
    TableName.ROOM_BOOKINGS: {
        "Name": pl.String,
        "Room": pl.List(pl.String),
        "Booked By": pl.List(pl.String),
        "Start": INSTANT,
        "End": INSTANT,
        "Purpose": pl.String,
        "Status": pl.Enum([str(s) for s in BookingStatus]),
    },
    TableName.EVENTS: {
        "Name": pl.String,
        "Start Date": INSTANT,
        "End Date": INSTANT,
        "Event Description": pl.String,
        "Notes": pl.String,
        "Type": pl.String,
        "Status": pl.String,
        "URL": pl.String,
        "Hosted by": pl.List(pl.String),
        "Recurring Series": pl.String,
    },
    TableName.PEOPLE: {
        "Name": pl.String,
        "Email": pl.String,
    },
}
