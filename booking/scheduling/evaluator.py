from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Iterator, NamedTuple

from booking.scheduling.lifecycle import is_active
from booking.scheduling.profile import AvailabilityProfile, minutes_of_day


class SlotViolation(str, Enum):
    TOO_SHORT = 'TooShort'
    TOO_LONG = 'TooLong'
    INSUFFICIENT_LEAD_TIME = 'InsufficientLeadTime'
    DAY_NOT_AVAILABLE = 'DayNotAvailable'
    OUTSIDE_WORKING_HOURS = 'OutsideWorkingHours'
    IN_BREAK_WINDOW = 'InBreakWindow'
    USER_AWAY = 'UserAway'


class Slot(NamedTuple):
    start: datetime
    end: datetime


def calendar_weekday(day: date) -> int:
    """Weekday numbered 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def overlaps_break(profile: AvailabilityProfile, start: datetime, end: datetime) -> bool:
    start_minutes = start.hour * 60 + start.minute
    end_minutes = end.hour * 60 + end.minute
    return any(
        start_minutes < minutes_of_day(window.end) and end_minutes > minutes_of_day(window.start)
        for window in profile.break_windows
    )


def check_slot(
    profile: AvailabilityProfile,
    start: datetime,
    end: datetime,
    now: datetime,
) -> SlotViolation | None:
    """Return the first rule ``[start, end)`` breaks under ``profile``, or None."""
    duration_minutes = (end - start).total_seconds() / 60
    if duration_minutes <= 0 or duration_minutes < profile.min_duration_minutes:
        return SlotViolation.TOO_SHORT
    if duration_minutes > profile.max_duration_minutes:
        return SlotViolation.TOO_LONG

    if start < now + timedelta(hours=profile.min_lead_time_hours):
        return SlotViolation.INSUFFICIENT_LEAD_TIME

    if calendar_weekday(start.date()) not in profile.working_days:
        return SlotViolation.DAY_NOT_AVAILABLE

    if (
        end.date() != start.date()
        or start.time() < profile.start_time
        or end.time() > profile.end_time
    ):
        return SlotViolation.OUTSIDE_WORKING_HOURS

    if overlaps_break(profile, start, end):
        return SlotViolation.IN_BREAK_WINDOW

    if profile.is_away:
        return SlotViolation.USER_AWAY

    return None


def enumerate_slots(
    profile: AvailabilityProfile,
    day: date,
    existing_appointments: Iterable,
) -> Iterator[Slot]:
    """Yield the free slots of ``day`` in start order.

    Slots step by ``slot_duration_minutes`` from the start of the working
    window. A slot is skipped if it touches a break or falls within an existing
    appointment extended by ``buffer_minutes`` after its end.
    """
    if calendar_weekday(day) not in profile.working_days:
        return

    step = timedelta(minutes=profile.slot_duration_minutes)
    buffer = timedelta(minutes=profile.buffer_minutes)
    busy = [
        (appointment.start_time, appointment.end_time + buffer)
        for appointment in existing_appointments
        if is_active(appointment.status)
    ]

    current = datetime.combine(day, profile.start_time)
    day_end = datetime.combine(day, profile.end_time)

    while current < day_end:
        slot_end = current + step
        if slot_end > day_end:
            break

        if not overlaps_break(profile, current, slot_end) and not any(
            current < busy_end and slot_end > busy_start for busy_start, busy_end in busy
        ):
            yield Slot(current, slot_end)

        current = slot_end
