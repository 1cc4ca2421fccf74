#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from cowork.booking.availability import AvailabilityReporter, group_by_floor
from cowork.booking.booking_repository import BookingRepository
from cowork.booking.room_catalog import RoomCatalog
from cowork.constants import DEFAULT_VENUE_TIMEZONE
from cowork.exceptions import SearchError
from cowork.store.airtable_store import AirtableRecordStore
from cowork.store.memory_store import InMemoryRecordStore
from cowork.store.record_store import RecordStore
from cowork.time_utils import (
    format_clock_time,
    parse_instant,
    start_of_day,
    utc_now,
    venue_timezone,
)


def _load_store(snapshot: Path | None, api_key: str | None, base_id: str | None) -> RecordStore:
    if snapshot is not None:
        with open(snapshot) as f:
            return InMemoryRecordStore.from_dict(json.load(f))
    if not api_key or not base_id:
        raise click.UsageError(
            "Set AIRTABLE_API_KEY and AIRTABLE_BASE_ID or pass --snapshot"
        )
    return AirtableRecordStore(api_key=api_key, base_id=base_id)


@click.group()
@click.option(
    "--snapshot",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON dump of the tables to use instead of Airtable.",
)
@click.option("--api-key", envvar="AIRTABLE_API_KEY", default=None)
@click.option("--base-id", envvar="AIRTABLE_BASE_ID", default=None)
@click.option("--timezone", default=DEFAULT_VENUE_TIMEZONE, show_default=True)
@click.pass_context
def main(
    ctx: click.Context,
    snapshot: Path | None,
    api_key: str | None,
    base_id: str | None,
    timezone: str,
):
    """Inspect the meeting rooms of the venue."""
    ctx.obj = {
        "store": _load_store(snapshot, api_key, base_id),
        "timezone": timezone,
        "console": Console(),
    }


@main.command()
@click.option("--at", "at", default=None, help="ISO-8601 instant, defaults to now.")
@click.pass_obj
def status(obj: dict, at: str | None):
    """Show today's availability of the bookable rooms."""
    store, console = obj["store"], obj["console"]
    reporter = AvailabilityReporter(
        RoomCatalog(store),
        BookingRepository(store, timezone=obj["timezone"]),
        timezone=obj["timezone"],
    )
    statuses = reporter.compute(parse_instant(at) if at else None)
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Floor", style="dim")
    table.add_column("Room")
    table.add_column("Capacity", justify="right")
    table.add_column("Status")
    for floor, floor_statuses in group_by_floor(statuses):
        for s in floor_statuses:
            style = "green" if s.is_free else "red"
            table.add_row(
                floor,
                s.room.name,
                str(s.room.size) if s.room.size else "",
                f"[{style}]{s.status}[/{style}]",
            )
    console.print(table)


@main.command()
@click.argument("name")
@click.option("--days", default=7, show_default=True, help="How far ahead to look.")
@click.pass_obj
def bookings(obj: dict, name: str, days: int):
    """List the upcoming bookings of the room best matching NAME."""
    store, console = obj["store"], obj["console"]
    zone = venue_timezone(obj["timezone"])
    try:
        room = RoomCatalog(store).find_room_by_name(name)
    except SearchError as e:
        raise click.ClickException(str(e))
    table = Table(title=room.name, show_header=True, header_style="bold magenta")
    table.add_column("Date")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Booked by")
    table.add_column("Purpose")
    now = utc_now()
    repository = BookingRepository(store, timezone=obj["timezone"])
    for booking in repository.get_bookings_for_room(
        room.id, start_of_day(now, zone), now + datetime.timedelta(days=days)
    ):
        table.add_row(
            booking.start_date.astimezone(zone).strftime("%a %b %d"),
            format_clock_time(booking.start_date, zone),
            format_clock_time(booking.end_date, zone),
            booking.user_name or booking.user_id,
            booking.purpose or "",
        )
    console.print(table)
