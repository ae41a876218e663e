from datetime import time

import pytest

from booking.scheduling.errors import InvalidProfileError
from booking.scheduling.profile import (
    AvailabilityProfile,
    AvailabilityStatus,
    BreakWindow,
    apply_profile_update,
    describe_cancel_notice,
    describe_lead_time,
    parse_time_of_day,
)


def test_default_profile_matches_weekday_office_hours() -> None:
    profile = AvailabilityProfile()

    assert profile.working_days == frozenset({1, 2, 3, 4, 5})
    assert profile.start_time == time(9, 0)
    assert profile.end_time == time(17, 0)
    assert profile.slot_duration_minutes == 30
    assert profile.buffer_minutes == 15
    assert profile.max_per_day == 5
    assert (profile.min_duration_minutes, profile.max_duration_minutes) == (15, 120)
    assert profile.status is AvailabilityStatus.AVAILABLE


def test_profile_parses_string_times_and_sorts_breaks() -> None:
    profile = AvailabilityProfile(
        start_time='08:00',
        end_time='18:00',
        break_windows=[{'start': '15:00', 'end': '15:15'}, ('12:00', '13:00')],
    )

    assert profile.start_time == time(8, 0)
    assert profile.break_windows == (
        BreakWindow(time(12, 0), time(13, 0)),
        BreakWindow(time(15, 0), time(15, 15)),
    )


@pytest.mark.parametrize(
    ('kwargs', 'message'),
    [
        ({'start_time': '17:00', 'end_time': '09:00'}, 'Start time must be before end time.'),
        ({'start_time': '09:00', 'end_time': '09:00'}, 'Start time must be before end time.'),
        ({'break_windows': [('08:30', '09:30')]}, 'Breaks must fall inside working hours.'),
        ({'break_windows': [('16:30', '17:30')]}, 'Breaks must fall inside working hours.'),
        ({'break_windows': [('12:00', '13:00'), ('12:30', '13:30')]}, 'Breaks cannot overlap each other.'),
        ({'break_windows': [('13:00', '12:00')]}, 'Break start must be before break end.'),
        ({'min_duration_minutes': 60, 'max_duration_minutes': 30}, 'Minimum duration cannot exceed maximum duration.'),
        ({'working_days': [0, 7]}, 'Working days must be between 0 (Sunday) and 6 (Saturday).'),
    ],
)
def test_profile_rejects_invalid_policy(kwargs: dict, message: str) -> None:
    with pytest.raises(InvalidProfileError) as exception_info:
        AvailabilityProfile(**kwargs)

    assert exception_info.value.message == message


def test_adjacent_breaks_are_allowed() -> None:
    profile = AvailabilityProfile(break_windows=[('12:00', '12:30'), ('12:30', '13:00')])

    assert len(profile.break_windows) == 2


def test_construction_does_not_clamp_max_per_day() -> None:
    assert AvailabilityProfile(max_per_day=50).max_per_day == 50


@pytest.mark.parametrize(('requested', 'stored'), [(0, 1), (-3, 1), (7, 7), (20, 20), (50, 20)])
def test_update_clamps_max_per_day(requested: int, stored: int) -> None:
    profile = apply_profile_update(AvailabilityProfile(), {'max_per_day': requested})

    assert profile.max_per_day == stored


def test_update_restricts_reminder_choices() -> None:
    assert apply_profile_update(AvailabilityProfile(), {'default_reminder_minutes': 1440}).default_reminder_minutes == 1440

    with pytest.raises(InvalidProfileError):
        apply_profile_update(AvailabilityProfile(), {'default_reminder_minutes': 45})


def test_update_validates_new_window_against_existing_breaks() -> None:
    profile = AvailabilityProfile(break_windows=[('12:00', '13:00')])

    with pytest.raises(InvalidProfileError):
        apply_profile_update(profile, {'end_time': time(12, 30)})


def test_update_ignores_missing_values_and_rejects_unknown_fields() -> None:
    profile = AvailabilityProfile(buffer_minutes=10)

    assert apply_profile_update(profile, {'buffer_minutes': None}).buffer_minutes == 10

    with pytest.raises(InvalidProfileError):
        apply_profile_update(profile, {'favourite_colour': 'blue'})


def test_snapshot_round_trips_cancel_notice_and_window() -> None:
    profile = AvailabilityProfile(cancel_notice_hours=24, break_windows=[('12:00', '13:00')], max_per_day=3)

    snapshot = profile.snapshot()

    assert snapshot == {
        'days': [1, 2, 3, 4, 5],
        'start': '09:00',
        'end': '17:00',
        'slot_duration': 30,
        'buffer': 15,
        'max_per_day': 3,
        'break_times': [{'start': '12:00', 'end': '13:00'}],
        'min_lead_time': 0,
        'cancel_notice': 24,
    }
    assert AvailabilityProfile.from_snapshot(snapshot).cancel_notice_hours == 24


def test_from_record_without_row_uses_defaults() -> None:
    assert AvailabilityProfile.from_record(None) == AvailabilityProfile()


def test_parse_time_of_day_rejects_garbage() -> None:
    with pytest.raises(InvalidProfileError):
        parse_time_of_day('nine o clock')


@pytest.mark.parametrize(
    ('hours', 'message'),
    [
        (0, 'Bookings available anytime'),
        (1, 'Bookings require 1 hour notice'),
        (5, 'Bookings require 5 hours notice'),
        (24, 'Bookings require 1 day notice'),
        (50, 'Bookings require 2 days and 2 hours notice'),
    ],
)
def test_describe_lead_time(hours: int, message: str) -> None:
    assert describe_lead_time(hours) == message


def test_describe_cancel_notice() -> None:
    assert describe_cancel_notice(0) == 'Cancel anytime'
    assert describe_cancel_notice(25) == 'Cancel with 1 day and 1 hour notice'
