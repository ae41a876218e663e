import logging
from contextlib import contextmanager

from fastapi import Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking.database import ensure_appointment_schema, ensure_availability_schema, get_db
from booking.scheduling.errors import SchedulingError
from booking.scheduling.events import EventPublisher, get_event_publisher
from booking.scheduling.service import SchedulingService

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_scheduling_service(
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> SchedulingService:
    ensure_database_ready()
    return SchedulingService(db, publisher=publisher)


@contextmanager
def scheduling_errors(db: Session):
    """Translate scheduling and database failures into HTTP errors."""
    try:
        yield
    except SchedulingError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Database error while handling a scheduling request')
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
