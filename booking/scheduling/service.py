import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Callable

from sqlalchemy import or_
from sqlalchemy.orm import Session

from booking.core import config
from booking.models.appointment import Appointment, AppointmentRating
from booking.models.availability import Availability
from booking.models.user import User
from booking.scheduling import events
from booking.scheduling.conflicts import check_capacity, find_buffer_violation, find_double_booking
from booking.scheduling.errors import (
    AppointmentNotFoundError,
    BufferViolationError,
    CapacityExceededError,
    DoubleBookingError,
    InvalidTransitionError,
    NotCreatorError,
    RatingNotAllowedError,
    SelfBookingError,
    SlotValidationError,
    StateError,
    UserNotFoundError,
)
from booking.scheduling.evaluator import Slot, SlotViolation, check_slot, enumerate_slots
from booking.scheduling.lifecycle import (
    ACTIVE_STATUSES,
    AppointmentStatus,
    MeetingType,
    ensure_cancel_notice,
    ensure_may_request,
    ensure_participant,
    ensure_transition,
    is_terminal,
    materialize,
    status_message,
)
from booking.scheduling.locking import ParticipantLocks, participant_locks
from booking.scheduling.profile import AvailabilityProfile, apply_profile_update

logger = logging.getLogger(__name__)

SLOT_VIOLATION_MESSAGES = {
    SlotViolation.TOO_SHORT: 'Appointment is shorter than the minimum duration.',
    SlotViolation.TOO_LONG: 'Appointment is longer than the maximum duration.',
    SlotViolation.INSUFFICIENT_LEAD_TIME: 'Appointment does not give enough notice.',
    SlotViolation.DAY_NOT_AVAILABLE: 'The user is not available on this day.',
    SlotViolation.OUTSIDE_WORKING_HOURS: 'Appointment is outside working hours.',
    SlotViolation.IN_BREAK_WINDOW: 'Appointment overlaps a break.',
    SlotViolation.USER_AWAY: 'The user is away and not accepting bookings.',
}

EDITABLE_FIELDS = ('title', 'description', 'meeting_type', 'location')
ACTIVE_STATUS_VALUES = [status.value for status in ACTIVE_STATUSES]


@dataclass
class AppointmentDetails:
    title: str = 'Appointment'
    description: str = ''
    meeting_type: str = MeetingType.VIDEO_CALL.value
    location: str = ''
    reminder_minutes: int | None = None


class SchedulingService:
    """Books, changes and cancels appointments between two users.

    Conflict checks and the write that follows run while both participants are
    locked, so two overlapping bookings that share a user cannot both land.
    Appointments whose end time has passed are completed as they are read.
    """

    def __init__(
        self,
        db: Session,
        publisher: events.EventPublisher | None = None,
        clock: Callable[[], datetime] = datetime.now,
        locks: ParticipantLocks = participant_locks,
        enforce_buffer: bool | None = None,
    ) -> None:
        self.db = db
        self.publisher = publisher or events.event_publisher
        self.clock = clock
        self.locks = locks
        self.enforce_buffer = config.ENFORCE_BUFFER_ON_CREATE if enforce_buffer is None else enforce_buffer

    # Profiles

    def get_profile(self, user_id: int) -> AvailabilityProfile:
        self._require_user(user_id)
        return AvailabilityProfile.from_record(self._profile_record(user_id))

    def update_profile(self, user_id: int, changes: dict[str, Any]) -> AvailabilityProfile:
        self._require_user(user_id)
        record = self._profile_record(user_id)
        profile = apply_profile_update(AvailabilityProfile.from_record(record), changes)

        if record is None:
            record = Availability(user_id=user_id)
            self.db.add(record)

        record.working_days = sorted(profile.working_days)
        record.start_time = profile.start_time
        record.end_time = profile.end_time
        record.slot_duration_minutes = profile.slot_duration_minutes
        record.buffer_minutes = profile.buffer_minutes
        record.max_per_day = profile.max_per_day
        record.break_windows = [window.to_dict() for window in profile.break_windows]
        record.min_lead_time_hours = profile.min_lead_time_hours
        record.cancel_notice_hours = profile.cancel_notice_hours
        record.min_duration_minutes = profile.min_duration_minutes
        record.max_duration_minutes = profile.max_duration_minutes
        record.default_reminder_minutes = profile.default_reminder_minutes
        record.status = profile.status.value
        self.db.commit()

        logger.info('Updated availability profile for user %s', user_id)
        return profile

    def set_availability_status(self, user_id: int, status: str) -> AvailabilityProfile:
        return self.update_profile(user_id, {'status': status})

    # Booking

    def create_appointment(
        self,
        creator_id: int,
        recipient_id: int,
        start: datetime,
        end: datetime,
        details: AppointmentDetails | None = None,
    ) -> Appointment:
        details = details or AppointmentDetails()
        if creator_id == recipient_id:
            raise SelfBookingError()

        with self.locks.hold(creator_id, recipient_id), self._rollback_on_error():
            self._lock_users(creator_id, recipient_id)
            now = self.clock()
            recipient_profile = self.get_profile(recipient_id)
            completed = self._validate_booking(creator_id, recipient_id, start, end, now, recipient_profile)

            appointment = Appointment(
                creator_id=creator_id,
                recipient_id=recipient_id,
                start_time=start,
                end_time=end,
                status=AppointmentStatus.PENDING.value,
                title=details.title or 'Appointment',
                description=details.description or '',
                meeting_type=MeetingType(details.meeting_type).value,
                location=details.location or '',
                attended_by=[],
                availability_snapshot=recipient_profile.snapshot(),
                reminder_minutes=(
                    recipient_profile.default_reminder_minutes
                    if details.reminder_minutes is None
                    else details.reminder_minutes
                ),
                reminded=False,
            )
            self.db.add(appointment)
            self.db.commit()
            self.db.refresh(appointment)

        logger.info(
            'Created appointment %s between %s and %s at %s',
            appointment.id,
            creator_id,
            recipient_id,
            start.isoformat(),
        )
        self._publish_completions(completed)

        creator_name = self._display_name(creator_id)
        for user_id in (recipient_id, creator_id):
            self._publish(
                events.APPOINTMENT_CREATED,
                appointment,
                recipient_id=user_id,
                sender_id=creator_id,
                title='New appointment',
                message=f'{creator_name} booked "{appointment.title}".',
            )
        self._publish(
            events.NOTIFICATION_REQUESTED,
            appointment,
            recipient_id=recipient_id,
            sender_id=creator_id,
            title='New appointment request',
            message=f'{creator_name} requested an appointment on {_format_when(start)}.',
        )
        return appointment

    def update_appointment(self, appointment_id: int, actor_id: int, patch: dict[str, Any]) -> Appointment:
        appointment = self._load(appointment_id)
        ensure_participant(appointment, actor_id)

        with self.locks.hold(appointment.creator_id, appointment.recipient_id), self._rollback_on_error():
            self.db.refresh(appointment, with_for_update=True)
            now = self.clock()
            self._complete_if_due(appointment, now)

            previous_status = appointment.status
            requested = patch.get('status')
            if is_terminal(appointment.status):
                raise InvalidTransitionError(appointment.status, requested or appointment.status, [])

            if requested and requested != appointment.status:
                ensure_may_request(appointment, actor_id, requested)
                new_status = ensure_transition(appointment.status, requested)
                if new_status is AppointmentStatus.CANCELLED:
                    ensure_cancel_notice(appointment.start_time, _cancel_notice_hours(appointment), now)
                    appointment.cancelled_reason = patch.get('cancelled_reason')
                if new_status is AppointmentStatus.DECLINED:
                    appointment.declined_reason = patch.get('declined_reason') or ''
                appointment.status = new_status.value

            new_start = patch.get('start') or appointment.start_time
            new_end = patch.get('end') or appointment.end_time
            time_changed = new_start != appointment.start_time or new_end != appointment.end_time
            if time_changed:
                completed = self._validate_booking(
                    appointment.creator_id,
                    appointment.recipient_id,
                    new_start,
                    new_end,
                    now,
                    self.get_profile(appointment.recipient_id),
                    exclude_id=appointment.id,
                )
                appointment.start_time = new_start
                appointment.end_time = new_end
                appointment.reminded = False
            else:
                completed = []

            for field_name in EDITABLE_FIELDS:
                if patch.get(field_name) is not None:
                    value = patch[field_name]
                    if field_name == 'meeting_type':
                        value = MeetingType(value).value
                    setattr(appointment, field_name, value)

            self.db.commit()
            self.db.refresh(appointment)

        self._publish_completions(completed)

        status_changed = appointment.status != previous_status
        actor_name = self._display_name(actor_id)
        other_id = _other_participant(appointment, actor_id)
        if status_changed:
            event_type = events.APPOINTMENT_STATUS_CHANGED
            message = status_message(appointment.status, actor_name, appointment.title)
        else:
            event_type = events.APPOINTMENT_UPDATED
            message = f'{actor_name} updated the appointment "{appointment.title}".'

        logger.info('Appointment %s updated by %s (status %s)', appointment.id, actor_id, appointment.status)
        for user_id in (appointment.creator_id, appointment.recipient_id):
            self._publish(event_type, appointment, recipient_id=user_id, sender_id=actor_id,
                          title='Appointment updated', message=message)
        self._publish(
            events.NOTIFICATION_REQUESTED,
            appointment,
            recipient_id=other_id,
            sender_id=actor_id,
            title=f'Appointment {appointment.status}' if status_changed else 'Appointment updated',
            message=message,
        )
        return appointment

    def cancel_appointment(self, appointment_id: int, actor_id: int, reason: str | None = None) -> Appointment:
        appointment = self._load(appointment_id)
        ensure_participant(appointment, actor_id)

        with self.locks.hold(appointment.creator_id, appointment.recipient_id), self._rollback_on_error():
            self.db.refresh(appointment, with_for_update=True)
            now = self.clock()
            self._complete_if_due(appointment, now)

            if actor_id != appointment.creator_id:
                raise NotCreatorError()
            ensure_transition(appointment.status, AppointmentStatus.CANCELLED.value)
            ensure_cancel_notice(appointment.start_time, _cancel_notice_hours(appointment), now)

            appointment.status = AppointmentStatus.CANCELLED.value
            appointment.cancelled_reason = reason
            self.db.commit()
            self.db.refresh(appointment)

        logger.info('Appointment %s cancelled by %s', appointment.id, actor_id)
        message = status_message(appointment.status, self._display_name(actor_id), appointment.title)
        if reason:
            message = f'{message} Reason: {reason}'
        for user_id in (appointment.creator_id, appointment.recipient_id):
            self._publish(events.APPOINTMENT_CANCELLED, appointment, recipient_id=user_id, sender_id=actor_id,
                          title='Appointment cancelled', message=message)
        self._publish(
            events.NOTIFICATION_REQUESTED,
            appointment,
            recipient_id=appointment.recipient_id,
            sender_id=actor_id,
            title='Appointment cancelled',
            message=message,
        )
        return appointment

    def get_available_slots(self, owner_id: int, day: date) -> list[Slot]:
        profile = self.get_profile(owner_id)
        day_start = datetime.combine(day, time.min)
        day_end = day_start + timedelta(days=1)
        existing = self._active_appointments(
            (owner_id,),
            day_start - timedelta(minutes=profile.buffer_minutes),
            day_end,
        )
        return list(enumerate_slots(profile, day, existing))

    # Reads

    def get_appointment(self, appointment_id: int, actor_id: int) -> Appointment:
        appointment = self._load(appointment_id)
        ensure_participant(appointment, actor_id)
        self._complete_if_due(appointment, self.clock())
        return appointment

    def list_appointments(self, actor_id: int) -> list[Appointment]:
        appointments = (
            self.db.query(Appointment)
            .filter(or_(Appointment.creator_id == actor_id, Appointment.recipient_id == actor_id))
            .order_by(Appointment.start_time.asc(), Appointment.id.asc())
            .all()
        )
        now = self.clock()
        completed = [appointment for appointment in appointments if materialize(appointment, now)]
        if completed:
            self.db.commit()
            self._publish_completions(completed)
        return appointments

    # Attendance and ratings

    def record_attendance(self, appointment_id: int, actor_id: int) -> Appointment:
        appointment = self.get_appointment(appointment_id, actor_id)
        if appointment.status in (AppointmentStatus.CANCELLED.value, AppointmentStatus.DECLINED.value):
            raise StateError(f'Cannot record attendance for a {appointment.status} appointment.')

        attended = list(appointment.attended_by or [])
        if actor_id not in attended:
            attended.append(actor_id)
            appointment.attended_by = attended
            self.db.commit()
            self.db.refresh(appointment)
        return appointment

    def rate_appointment(self, appointment_id: int, actor_id: int, rating: int, feedback: str = '') -> Appointment:
        appointment = self.get_appointment(appointment_id, actor_id)
        if appointment.status != AppointmentStatus.COMPLETED.value:
            raise RatingNotAllowedError('Only completed appointments can be rated.')
        if not 1 <= rating <= 5:
            raise RatingNotAllowedError('Rating must be between 1 and 5.')

        existing = next((entry for entry in appointment.ratings if entry.user_id == actor_id), None)
        if existing is None:
            appointment.ratings.append(
                AppointmentRating(user_id=actor_id, rating=rating, feedback=feedback or '', created_at=self.clock())
            )
        else:
            existing.rating = rating
            existing.feedback = feedback or ''
            existing.created_at = self.clock()
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    # Completion

    def notify_completed(self, appointment: Appointment) -> None:
        message = status_message(appointment.status, '', appointment.title)
        for user_id in (appointment.creator_id, appointment.recipient_id):
            self._publish(
                events.APPOINTMENT_COMPLETED,
                appointment,
                recipient_id=user_id,
                sender_id=None,
                title='Appointment completed',
                message=message,
            )

    # Internals

    @contextmanager
    def _rollback_on_error(self):
        try:
            yield
        except Exception:
            self.db.rollback()
            raise

    def _validate_booking(
        self,
        creator_id: int,
        recipient_id: int,
        start: datetime,
        end: datetime,
        now: datetime,
        recipient_profile: AvailabilityProfile,
        exclude_id: int | None = None,
    ) -> list[Appointment]:
        violation = check_slot(recipient_profile, start, end, now)
        if violation is not None:
            raise SlotValidationError(violation, SLOT_VIOLATION_MESSAGES[violation])

        day_start = datetime.combine(start.date(), time.min)
        day_end = day_start + timedelta(days=1)
        existing = self._active_appointments(
            (creator_id, recipient_id),
            min(day_start, start - timedelta(minutes=recipient_profile.buffer_minutes)),
            max(day_end, end),
        )
        completed = [appointment for appointment in existing if materialize(appointment, now)]

        conflict = find_double_booking(start, end, creator_id, recipient_id, existing, exclude_id)
        if conflict is not None:
            raise DoubleBookingError(conflict.appointment_id, conflict.start, conflict.end)

        if self.enforce_buffer and recipient_profile.buffer_minutes:
            crowded = find_buffer_violation(
                start, end, creator_id, recipient_id, existing, recipient_profile.buffer_minutes, exclude_id
            )
            if crowded is not None:
                raise BufferViolationError(crowded.appointment_id, recipient_profile.buffer_minutes)

        parties = (
            ('creator', creator_id, self.get_profile(creator_id)),
            ('recipient', recipient_id, recipient_profile),
        )
        for party, user_id, profile in parties:
            breach = check_capacity(user_id, party, start.date(), profile.max_per_day, existing, exclude_id)
            if breach is not None:
                raise CapacityExceededError(breach.party, breach.current, breach.maximum)

        return completed

    def _active_appointments(self, user_ids, window_start: datetime, window_end: datetime) -> list[Appointment]:
        return (
            self.db.query(Appointment)
            .filter(
                or_(Appointment.creator_id.in_(user_ids), Appointment.recipient_id.in_(user_ids)),
                Appointment.status.in_(ACTIVE_STATUS_VALUES),
                Appointment.start_time < window_end,
                Appointment.end_time > window_start,
            )
            .order_by(Appointment.start_time.asc(), Appointment.id.asc())
            .all()
        )

    def _lock_users(self, *user_ids: int) -> None:
        users = (
            self.db.query(User)
            .filter(User.id.in_(user_ids))
            .order_by(User.id)
            .with_for_update()
            .all()
        )
        found = {user.id for user in users}
        for user_id in reversed(user_ids):
            if user_id not in found:
                raise UserNotFoundError(user_id)

    def _require_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def _profile_record(self, user_id: int) -> Availability | None:
        return self.db.query(Availability).filter(Availability.user_id == user_id).first()

    def _load(self, appointment_id: int) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)
        return appointment

    def _complete_if_due(self, appointment: Appointment, now: datetime) -> None:
        if materialize(appointment, now):
            self.db.commit()
            self.db.refresh(appointment)
            self._publish_completions([appointment])

    def _publish_completions(self, appointments) -> None:
        for appointment in appointments:
            logger.info('Appointment %s completed after its end time passed', appointment.id)
            self.notify_completed(appointment)

    def _display_name(self, user_id: int) -> str:
        user = self.db.get(User, user_id)
        if user is None:
            return 'Someone'
        return user.full_name or user.email or 'Someone'

    def _publish(self, event_type: str, appointment: Appointment, **fields) -> None:
        self.publisher.publish(
            events.DomainEvent(type=event_type, appointment_id=appointment.id, timestamp=self.clock(), **fields)
        )


def _other_participant(appointment: Appointment, actor_id: int) -> int:
    return appointment.recipient_id if actor_id == appointment.creator_id else appointment.creator_id


def _cancel_notice_hours(appointment: Appointment) -> float:
    return (appointment.availability_snapshot or {}).get('cancel_notice') or 0


def _format_when(moment: datetime) -> str:
    return moment.strftime('%A, %B %d %Y at %H:%M')
