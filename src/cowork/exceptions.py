#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cowork.time_utils import TimeInterval


class CoworkError(Exception):
    pass


class FormulaError(CoworkError):
    """Raised when a filter formula cannot be parsed or evaluated."""


class SearchError(CoworkError):
    pass


class UpstreamUnavailable(CoworkError):
    """A call to the record store or the notification service failed or
    timed out."""


class RoomLockTimeout(UpstreamUnavailable):
    pass


class NotFound(CoworkError):
    pass


class Forbidden(CoworkError):
    pass


class BookingRejected(CoworkError):
    """Base class for the reasons a booking request is turned down. Rejections
    are raised before anything is written to the store."""

    reason: str = "rejected"


class InvalidRange(BookingRejected):
    reason = "invalid_range"


class PastBooking(BookingRejected):
    reason = "past_booking"


class RoomNotFound(BookingRejected):
    reason = "room_not_found"


class RoomNotBookable(BookingRejected):
    reason = "room_not_bookable"


class SlotTaken(BookingRejected):
    """The requested slot overlaps existing bookings.

    Parameters
    ----------
    conflicts
        The time windows of the overlapping bookings. Who made them and
        why is not included.
    """

    reason = "slot_taken"

    def __init__(self, message: str, conflicts: list["TimeInterval"]):
        super().__init__(message)
        self.conflicts = conflicts


class InvalidSeriesRequest(CoworkError):
    pass


class PartialSeriesFailure(CoworkError):
    def __init__(self, message: str, series_id: str, created_count: int):
        super().__init__(message)
        self.series_id = series_id
        self.created_count = created_count


class TransientHTTPError(UpstreamUnavailable):
    """A failed HTTP call worth retrying (rate limited, server error or
    connection problem).

    Parameters
    ----------
    retry_after
        Seconds the server asked us to wait before the next attempt, if any.
    """

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after
