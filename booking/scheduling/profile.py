"""Per-user availability policy."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import time
from enum import Enum
from typing import Any

from booking.scheduling.errors import InvalidProfileError

DEFAULT_WORKING_DAYS = frozenset({1, 2, 3, 4, 5})  # 0=Sunday .. 6=Saturday
DEFAULT_START_TIME = time(9, 0)
DEFAULT_END_TIME = time(17, 0)
REMINDER_CHOICES = (0, 5, 10, 15, 30, 60, 120, 1440)
MIN_PER_DAY = 1
MAX_PER_DAY = 20


class AvailabilityStatus(str, Enum):
    AVAILABLE = 'available'
    LIMITED = 'limited'
    AWAY = 'away'


def parse_time_of_day(value: str | time) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)

    try:
        hours, minutes = value.strip().split(':')
        return time(int(hours), int(minutes))
    except (AttributeError, ValueError) as exc:
        raise InvalidProfileError(f'Invalid time of day: {value!r}. Use HH:MM.') from exc


def format_time_of_day(value: time) -> str:
    return value.strftime('%H:%M')


def minutes_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


@dataclass(frozen=True)
class BreakWindow:
    start: time
    end: time

    def to_dict(self) -> dict[str, str]:
        return {'start': format_time_of_day(self.start), 'end': format_time_of_day(self.end)}

    @classmethod
    def from_value(cls, value: Any) -> 'BreakWindow':
        if isinstance(value, BreakWindow):
            return value
        if isinstance(value, dict):
            return cls(parse_time_of_day(value['start']), parse_time_of_day(value['end']))
        start, end = value
        return cls(parse_time_of_day(start), parse_time_of_day(end))


@dataclass(frozen=True)
class AvailabilityProfile:
    """Scheduling policy of the person being booked.

    Instances are validated on construction, so any profile in hand satisfies
    the working-window and break-window invariants.
    """

    working_days: frozenset[int] = DEFAULT_WORKING_DAYS
    start_time: time = DEFAULT_START_TIME
    end_time: time = DEFAULT_END_TIME
    slot_duration_minutes: int = 30
    buffer_minutes: int = 15
    max_per_day: int = 5
    break_windows: tuple[BreakWindow, ...] = field(default_factory=tuple)
    min_lead_time_hours: float = 0
    cancel_notice_hours: float = 0
    min_duration_minutes: int = 15
    max_duration_minutes: int = 120
    default_reminder_minutes: int = 15
    status: AvailabilityStatus = AvailabilityStatus.AVAILABLE

    def __post_init__(self) -> None:
        object.__setattr__(self, 'working_days', frozenset(int(day) for day in self.working_days))
        object.__setattr__(self, 'start_time', parse_time_of_day(self.start_time))
        object.__setattr__(self, 'end_time', parse_time_of_day(self.end_time))
        windows = sorted(
            (BreakWindow.from_value(window) for window in self.break_windows),
            key=lambda window: window.start,
        )
        object.__setattr__(self, 'break_windows', tuple(windows))
        try:
            object.__setattr__(self, 'status', AvailabilityStatus(self.status))
        except ValueError as exc:
            raise InvalidProfileError(f'Unknown availability status: {self.status!r}.') from exc
        validate_profile(self)

    @property
    def is_away(self) -> bool:
        return self.status is AvailabilityStatus.AWAY

    def snapshot(self) -> dict[str, Any]:
        """Policy fields copied onto an appointment when it is booked."""
        return {
            'days': sorted(self.working_days),
            'start': format_time_of_day(self.start_time),
            'end': format_time_of_day(self.end_time),
            'slot_duration': self.slot_duration_minutes,
            'buffer': self.buffer_minutes,
            'max_per_day': self.max_per_day,
            'break_times': [window.to_dict() for window in self.break_windows],
            'min_lead_time': self.min_lead_time_hours,
            'cancel_notice': self.cancel_notice_hours,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            'working_days': sorted(self.working_days),
            'start_time': format_time_of_day(self.start_time),
            'end_time': format_time_of_day(self.end_time),
            'slot_duration_minutes': self.slot_duration_minutes,
            'buffer_minutes': self.buffer_minutes,
            'max_per_day': self.max_per_day,
            'break_windows': [window.to_dict() for window in self.break_windows],
            'min_lead_time_hours': self.min_lead_time_hours,
            'cancel_notice_hours': self.cancel_notice_hours,
            'min_duration_minutes': self.min_duration_minutes,
            'max_duration_minutes': self.max_duration_minutes,
            'default_reminder_minutes': self.default_reminder_minutes,
            'status': self.status.value,
        }

    @classmethod
    def from_record(cls, record) -> 'AvailabilityProfile':
        if record is None:
            return cls()

        defaults = cls()
        return cls(
            working_days=record.working_days if record.working_days is not None else defaults.working_days,
            start_time=record.start_time or defaults.start_time,
            end_time=record.end_time or defaults.end_time,
            slot_duration_minutes=_or_default(record.slot_duration_minutes, defaults.slot_duration_minutes),
            buffer_minutes=_or_default(record.buffer_minutes, defaults.buffer_minutes),
            max_per_day=_or_default(record.max_per_day, defaults.max_per_day),
            break_windows=tuple(record.break_windows or ()),
            min_lead_time_hours=_or_default(record.min_lead_time_hours, 0),
            cancel_notice_hours=_or_default(record.cancel_notice_hours, 0),
            min_duration_minutes=_or_default(record.min_duration_minutes, defaults.min_duration_minutes),
            max_duration_minutes=_or_default(record.max_duration_minutes, defaults.max_duration_minutes),
            default_reminder_minutes=_or_default(record.default_reminder_minutes, defaults.default_reminder_minutes),
            status=record.status or AvailabilityStatus.AVAILABLE,
        )

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, Any] | None) -> 'AvailabilityProfile':
        if not snapshot:
            return cls()

        defaults = cls()
        return cls(
            working_days=snapshot.get('days') or defaults.working_days,
            start_time=snapshot.get('start') or defaults.start_time,
            end_time=snapshot.get('end') or defaults.end_time,
            slot_duration_minutes=snapshot.get('slot_duration') or defaults.slot_duration_minutes,
            buffer_minutes=_or_default(snapshot.get('buffer'), defaults.buffer_minutes),
            max_per_day=snapshot.get('max_per_day') or defaults.max_per_day,
            break_windows=tuple(snapshot.get('break_times') or ()),
            min_lead_time_hours=snapshot.get('min_lead_time') or 0,
            cancel_notice_hours=snapshot.get('cancel_notice') or 0,
        )


def _or_default(value, default):
    return default if value is None else value


def validate_profile(profile: AvailabilityProfile) -> None:
    if not profile.working_days <= set(range(7)):
        raise InvalidProfileError('Working days must be between 0 (Sunday) and 6 (Saturday).')

    if profile.start_time >= profile.end_time:
        raise InvalidProfileError('Start time must be before end time.')

    if profile.slot_duration_minutes <= 0:
        raise InvalidProfileError('Slot duration must be positive.')

    if profile.buffer_minutes < 0:
        raise InvalidProfileError('Buffer cannot be negative.')

    if profile.min_lead_time_hours < 0 or profile.cancel_notice_hours < 0:
        raise InvalidProfileError('Lead time and cancel notice cannot be negative.')

    if profile.min_duration_minutes > profile.max_duration_minutes:
        raise InvalidProfileError('Minimum duration cannot exceed maximum duration.')

    previous: BreakWindow | None = None
    for window in profile.break_windows:
        if window.start >= window.end:
            raise InvalidProfileError('Break start must be before break end.')
        if window.start < profile.start_time or window.end > profile.end_time:
            raise InvalidProfileError('Breaks must fall inside working hours.')
        if previous is not None and window.start < previous.end:
            raise InvalidProfileError('Breaks cannot overlap each other.')
        previous = window


def clamp_max_per_day(value: int) -> int:
    return max(MIN_PER_DAY, min(MAX_PER_DAY, int(value)))


def apply_profile_update(profile: AvailabilityProfile, changes: dict[str, Any]) -> AvailabilityProfile:
    """Return ``profile`` with ``changes`` applied.

    ``max_per_day`` is clamped to [1, 20] and ``default_reminder_minutes`` must
    be one of :data:`REMINDER_CHOICES`. The result is validated as a whole, so
    a new working window is checked against the breaks it ends up with.
    """
    updates = {key: value for key, value in changes.items() if value is not None}

    if 'max_per_day' in updates:
        updates['max_per_day'] = clamp_max_per_day(updates['max_per_day'])

    if 'default_reminder_minutes' in updates and updates['default_reminder_minutes'] not in REMINDER_CHOICES:
        raise InvalidProfileError(
            f'Reminder time must be one of {", ".join(str(choice) for choice in REMINDER_CHOICES)} minutes.'
        )

    if 'break_windows' in updates:
        updates['break_windows'] = tuple(updates['break_windows'])

    try:
        return replace(profile, **updates)
    except TypeError as exc:
        raise InvalidProfileError(str(exc)) from exc


def _describe_hours(hours: float) -> str:
    hours = int(hours)
    if hours < 24:
        return f'{hours} hour{"s" if hours != 1 else ""}'

    days, remainder = divmod(hours, 24)
    text = f'{days} day{"s" if days != 1 else ""}'
    if remainder:
        text += f' and {remainder} hour{"s" if remainder != 1 else ""}'
    return text


def describe_lead_time(hours: float) -> str:
    if not hours:
        return 'Bookings available anytime'
    return f'Bookings require {_describe_hours(hours)} notice'


def describe_cancel_notice(hours: float) -> str:
    if not hours:
        return 'Cancel anytime'
    return f'Cancel with {_describe_hours(hours)} notice'
