from datetime import date, datetime, timedelta
from typing import Iterable, NamedTuple

from booking.scheduling.lifecycle import is_active


class DoubleBooking(NamedTuple):
    appointment_id: int
    start: datetime
    end: datetime


class CapacityBreach(NamedTuple):
    party: str
    user_id: int
    current: int
    maximum: int


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    # Half-open: touching endpoints do not overlap.
    return a_start < b_end and a_end > b_start


def _same_pair(appointment, creator_id: int, recipient_id: int) -> bool:
    return {appointment.creator_id, appointment.recipient_id} == {creator_id, recipient_id}


def _candidates(existing: Iterable, creator_id: int, recipient_id: int, exclude_id: int | None):
    participants = {creator_id, recipient_id}
    relevant = [
        appointment
        for appointment in existing
        if appointment.id != exclude_id
        and is_active(appointment.status)
        and participants & {appointment.creator_id, appointment.recipient_id}
        and not _same_pair(appointment, creator_id, recipient_id)
    ]
    # Earliest existing start wins; id breaks ties.
    return sorted(relevant, key=lambda appointment: (appointment.start_time, appointment.id or 0))


def find_double_booking(
    start: datetime,
    end: datetime,
    creator_id: int,
    recipient_id: int,
    existing: Iterable,
    exclude_id: int | None = None,
) -> DoubleBooking | None:
    for appointment in _candidates(existing, creator_id, recipient_id, exclude_id):
        if intervals_overlap(start, end, appointment.start_time, appointment.end_time):
            return DoubleBooking(appointment.id, appointment.start_time, appointment.end_time)
    return None


def find_buffer_violation(
    start: datetime,
    end: datetime,
    creator_id: int,
    recipient_id: int,
    existing: Iterable,
    buffer_minutes: int,
    exclude_id: int | None = None,
) -> DoubleBooking | None:
    """Like :func:`find_double_booking`, with each existing end pushed out by the buffer."""
    buffer = timedelta(minutes=buffer_minutes)
    for appointment in _candidates(existing, creator_id, recipient_id, exclude_id):
        if intervals_overlap(start, end, appointment.start_time, appointment.end_time + buffer):
            return DoubleBooking(appointment.id, appointment.start_time, appointment.end_time)
    return None


def count_for_day(user_id: int, day: date, existing: Iterable, exclude_id: int | None = None) -> int:
    return sum(
        1
        for appointment in existing
        if appointment.id != exclude_id
        and is_active(appointment.status)
        and user_id in (appointment.creator_id, appointment.recipient_id)
        and appointment.start_time.date() == day
    )


def check_capacity(
    user_id: int,
    party: str,
    day: date,
    maximum: int,
    existing: Iterable,
    exclude_id: int | None = None,
) -> CapacityBreach | None:
    current = count_for_day(user_id, day, existing, exclude_id)
    if current >= maximum:
        return CapacityBreach(party, user_id, current, maximum)
    return None
