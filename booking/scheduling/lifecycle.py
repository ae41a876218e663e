"""Appointment status machine and the rules around who may move it."""
from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from booking.scheduling.errors import (
    InsufficientCancelNoticeError,
    InvalidTransitionError,
    NotAParticipantError,
    NotCreatorError,
)


class AppointmentStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    SCHEDULED = 'scheduled'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    DECLINED = 'declined'


class MeetingType(str, Enum):
    VIDEO_CALL = 'Video Call'
    PHONE_CALL = 'Phone Call'
    IN_PERSON = 'In Person'


ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.DECLINED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED}),
    AppointmentStatus.SCHEDULED: frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.DECLINED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, allowed in ALLOWED_TRANSITIONS.items() if not allowed)
ACTIVE_STATUSES = frozenset(AppointmentStatus) - TERMINAL_STATUSES

STATUS_MESSAGES = {
    AppointmentStatus.CONFIRMED: '{actor} confirmed your appointment "{title}".',
    AppointmentStatus.SCHEDULED: '{actor} scheduled the appointment "{title}".',
    AppointmentStatus.DECLINED: '{actor} declined your appointment "{title}".',
    AppointmentStatus.CANCELLED: '{actor} cancelled the appointment "{title}".',
    AppointmentStatus.COMPLETED: 'Your appointment "{title}" is complete.',
}


def is_terminal(status: str) -> bool:
    return AppointmentStatus(status) in TERMINAL_STATUSES


def is_active(status: str) -> bool:
    return AppointmentStatus(status) in ACTIVE_STATUSES


def allowed_transitions(status: str) -> frozenset[AppointmentStatus]:
    return ALLOWED_TRANSITIONS[AppointmentStatus(status)]


def ensure_transition(current: str, requested: str) -> AppointmentStatus:
    current_status = AppointmentStatus(current)
    try:
        requested_status = AppointmentStatus(requested)
    except ValueError:
        requested_status = None

    allowed = ALLOWED_TRANSITIONS[current_status]
    if requested_status not in allowed:
        raise InvalidTransitionError(
            current_status.value,
            requested_status.value if requested_status else str(requested),
            [status.value for status in allowed],
        )
    return requested_status


def ensure_participant(appointment, actor_id: int) -> None:
    if actor_id not in (appointment.creator_id, appointment.recipient_id):
        raise NotAParticipantError()


def ensure_may_request(appointment, actor_id: int, requested: str) -> None:
    ensure_participant(appointment, actor_id)
    if requested == AppointmentStatus.CANCELLED and actor_id != appointment.creator_id:
        raise NotCreatorError()


def ensure_cancel_notice(start: datetime, notice_hours: float, now: datetime) -> None:
    required = timedelta(hours=notice_hours or 0)
    if now + required > start:
        raise InsufficientCancelNoticeError(
            required_minutes=int(required.total_seconds() // 60),
            actual_minutes=int((start - now).total_seconds() // 60),
        )


def is_due_for_completion(appointment, now: datetime) -> bool:
    return not is_terminal(appointment.status) and appointment.end_time <= now


def materialize(appointment, now: datetime) -> bool:
    """Complete ``appointment`` in place once its end time has passed.

    Returns True only on the call that changed the status.
    """
    if not is_due_for_completion(appointment, now):
        return False
    appointment.status = AppointmentStatus.COMPLETED.value
    return True


def status_message(status: str, actor_name: str, title: str) -> str:
    template = STATUS_MESSAGES.get(AppointmentStatus(status), '{actor} updated the appointment "{title}".')
    return template.format(actor=actor_name, title=title)
