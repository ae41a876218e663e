"""Errors raised by the scheduling service.

Each error carries an HTTP-style status code, a stable ``reason`` code and a
``context`` dict so routes can translate it without inspecting the type.
"""
from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
    status_code = 400
    reason = 'SchedulingError'

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_detail(self) -> dict[str, Any]:
        return {'reason': self.reason, 'message': self.message, **self.context}


class InvalidProfileError(SchedulingError):
    reason = 'InvalidProfile'


class SelfBookingError(SchedulingError):
    reason = 'SelfBooking'

    def __init__(self) -> None:
        super().__init__('You cannot book an appointment with yourself.')


class SlotValidationError(SchedulingError):
    def __init__(self, violation, message: str) -> None:
        super().__init__(message)
        self.reason = violation.value
        self.violation = violation


# Conflicts


class ConflictError(SchedulingError):
    status_code = 409
    reason = 'Conflict'


class DoubleBookingError(ConflictError):
    reason = 'DoubleBooking'

    def __init__(self, appointment_id: int, start, end) -> None:
        super().__init__(
            'This time overlaps another appointment.',
            appointment_id=appointment_id,
            start=start.isoformat(),
            end=end.isoformat(),
        )
        self.appointment_id = appointment_id


class BufferViolationError(ConflictError):
    reason = 'BufferViolation'

    def __init__(self, appointment_id: int, buffer_minutes: int) -> None:
        super().__init__(
            f'Appointments need {buffer_minutes} minutes of buffer after the previous one.',
            appointment_id=appointment_id,
            buffer_minutes=buffer_minutes,
        )
        self.appointment_id = appointment_id


class CapacityExceededError(ConflictError):
    reason = 'CapacityExceeded'

    def __init__(self, party: str, current: int, maximum: int) -> None:
        super().__init__(
            f'The {party} already has {current} of {maximum} appointments that day.',
            party=party,
            current=current,
            max=maximum,
        )
        self.party = party
        self.current = current
        self.maximum = maximum


# Authorization


class AuthorizationError(SchedulingError):
    status_code = 403
    reason = 'Forbidden'


class NotAParticipantError(AuthorizationError):
    reason = 'NotAParticipant'

    def __init__(self) -> None:
        super().__init__('Only participants can access this appointment.')


class NotCreatorError(AuthorizationError):
    reason = 'NotCreator'

    def __init__(self) -> None:
        super().__init__('Only the creator can cancel this appointment. Decline it instead.')


# State


class StateError(SchedulingError):
    reason = 'StateError'


class InvalidTransitionError(StateError):
    reason = 'InvalidTransition'

    def __init__(self, current: str, requested: str, allowed) -> None:
        allowed = sorted(allowed)
        super().__init__(
            f'Cannot change status from {current} to {requested}.',
            current=current,
            requested=requested,
            allowed=allowed,
        )
        self.current = current
        self.requested = requested
        self.allowed = allowed


class InsufficientCancelNoticeError(StateError):
    reason = 'InsufficientCancelNotice'

    def __init__(self, required_minutes: int, actual_minutes: int) -> None:
        super().__init__(
            f'Cancellation requires {required_minutes} minutes notice.',
            required_minutes=required_minutes,
            actual_minutes=actual_minutes,
        )
        self.required_minutes = required_minutes
        self.actual_minutes = actual_minutes


class RatingNotAllowedError(StateError):
    reason = 'RatingNotAllowed'


# Lookups


class NotFoundError(SchedulingError):
    status_code = 404
    reason = 'NotFound'


class UserNotFoundError(NotFoundError):
    reason = 'UserNotFound'

    def __init__(self, user_id: int) -> None:
        super().__init__('User not found.', user_id=user_id)


class AppointmentNotFoundError(NotFoundError):
    reason = 'AppointmentNotFound'

    def __init__(self, appointment_id: int) -> None:
        super().__init__('Appointment not found.', appointment_id=appointment_id)
