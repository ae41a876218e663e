"""
Complete appointments nobody has opened since they ended.

Reads already complete overdue appointments lazily; this sweep covers the rest
using the same rule, so running it twice changes nothing the second time.
"""
import logging
from datetime import datetime

from booking.database import SessionLocal
from booking.models.appointment import Appointment
from booking.scheduling.events import EventPublisher
from booking.scheduling.lifecycle import ACTIVE_STATUSES, materialize
from booking.scheduling.service import SchedulingService

logger = logging.getLogger(__name__)

# Cap per run so one sweep cannot hold the database for long
COMPLETION_BATCH_SIZE = 200


def run_completion_job(
    session_factory=SessionLocal,
    publisher: EventPublisher | None = None,
    now: datetime | None = None,
) -> int:
    now = now or datetime.now()
    db = session_factory()
    completed = 0
    try:
        overdue_ids = [
            appointment_id
            for (appointment_id,) in db.query(Appointment.id)
            .filter(
                Appointment.status.in_([status.value for status in ACTIVE_STATUSES]),
                Appointment.end_time <= now,
            )
            .order_by(Appointment.end_time.asc())
            .limit(COMPLETION_BATCH_SIZE)
            .all()
        ]
        if not overdue_ids:
            logger.debug('Completion job: nothing overdue')
            return 0

        service = SchedulingService(db, publisher=publisher, clock=lambda: now)
        for appointment_id in overdue_ids:
            try:
                appointment = db.get(Appointment, appointment_id)
                if appointment is None or not materialize(appointment, now):
                    continue
                db.commit()
                service.notify_completed(appointment)
                completed += 1
            except Exception:
                db.rollback()
                logger.exception('Completion job: failed to complete appointment %s', appointment_id)

        logger.info('Completion job: completed %s of %s overdue appointments', completed, len(overdue_ids))
        return completed
    finally:
        db.close()
