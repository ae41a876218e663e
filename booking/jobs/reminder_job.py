"""
Remind both participants shortly before a confirmed appointment starts.

An appointment is reminded once: ``reminded`` is committed before the events
go out, and the query skips appointments already marked.
"""
import logging
from datetime import datetime

from booking.database import SessionLocal
from booking.models.appointment import Appointment
from booking.models.user import User
from booking.scheduling import events
from booking.scheduling.lifecycle import AppointmentStatus

logger = logging.getLogger(__name__)

REMINDABLE_STATUSES = [AppointmentStatus.CONFIRMED.value, AppointmentStatus.SCHEDULED.value]
DEFAULT_REMINDER_MINUTES = 15


def _display_name(db, user_id: int) -> str:
    user = db.get(User, user_id)
    if user is None:
        return 'your contact'
    return user.full_name or user.email or 'your contact'


def run_reminder_job(
    session_factory=SessionLocal,
    publisher: events.EventPublisher | None = None,
    now: datetime | None = None,
) -> int:
    now = now or datetime.now()
    publisher = publisher or events.event_publisher
    db = session_factory()
    reminded = 0
    try:
        upcoming = (
            db.query(Appointment)
            .filter(
                Appointment.start_time > now,
                Appointment.status.in_(REMINDABLE_STATUSES),
                Appointment.reminded.is_not(True),
            )
            .order_by(Appointment.start_time.asc())
            .all()
        )
        logger.debug('Reminder job: checking %s appointments', len(upcoming))

        for appointment in upcoming:
            appointment_id = appointment.id
            minutes_until_start = (appointment.start_time - now).total_seconds() / 60
            reminder_minutes = appointment.reminder_minutes
            if reminder_minutes is None:
                reminder_minutes = DEFAULT_REMINDER_MINUTES
            if not 0 < minutes_until_start <= reminder_minutes:
                continue

            try:
                appointment.reminded = True
                db.commit()
                when = appointment.start_time.strftime('%A, %B %d %Y at %H:%M')
                pairs = (
                    (appointment.creator_id, appointment.recipient_id),
                    (appointment.recipient_id, appointment.creator_id),
                )
                for participant_id, partner_id in pairs:
                    publisher.publish(
                        events.DomainEvent(
                            type=events.APPOINTMENT_REMINDER,
                            recipient_id=participant_id,
                            sender_id=partner_id,
                            title='Upcoming appointment reminder',
                            message=(
                                f'Your appointment with {_display_name(db, partner_id)} starts in '
                                f'{round(minutes_until_start)} minutes ({when}).'
                            ),
                            appointment_id=appointment_id,
                            timestamp=now,
                        )
                    )
                reminded += 1
            except Exception:
                db.rollback()
                logger.exception('Reminder job: failed to remind appointment %s', appointment_id)

        if reminded:
            logger.info('Reminder job: sent reminders for %s appointments', reminded)
        return reminded
    finally:
        db.close()
