#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
# opaque identifier of a record in the record store (eg "recXXXXXXXXXXXXXX")
RecordId = str
# a record in the Rooms table
RoomId = RecordId
# a record in the Room Bookings table
BookingId = RecordId
# a record in the People table; bookings and events reference people by it
PersonId = RecordId
# a record in the Events table
EventId = RecordId
# tag shared by all the events generated from the same seed event
SeriesId = str
# a formula evaluated by the record store to filter records, eg
# "AND({Status} = 'Confirmed', IS_AFTER({End}, '2024-08-10T09:00:00Z'))"
Formula = str
# a chat channel the availability feed and booking notices are posted to
ChannelId = str
MessageId = str
