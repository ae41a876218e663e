import os
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('ENABLE_BACKGROUND_JOBS', 'false')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret-key-long-enough-for-hs256-signing')

from booking.database import Base  # noqa: E402
from booking.models.appointment import Appointment  # noqa: E402
from booking.models.user import User  # noqa: E402
from booking.scheduling.locking import ParticipantLocks  # noqa: E402
from booking.scheduling.service import SchedulingService  # noqa: E402

# Monday 5 January 2026, before working hours.
MONDAY_MORNING = datetime(2026, 1, 5, 8, 0)


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingPublisher:
    def __init__(self) -> None:
        self.events = []

    def publish(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list:
        return [event for event in self.events if event.type == event_type]


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(MONDAY_MORNING)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def service(db, publisher, clock) -> SchedulingService:
    return SchedulingService(db, publisher=publisher, clock=clock, locks=ParticipantLocks(), enforce_buffer=False)


@pytest.fixture
def users(db):
    created = {}
    for name in ('alice', 'bob', 'carol', 'dave'):
        user = User(email=f'{name}@example.edu', full_name=name.title())
        db.add(user)
        created[name] = user
    db.commit()
    return SimpleNamespace(**{name: user.id for name, user in created.items()})


@pytest.fixture
def make_appointment(db):
    def _make(creator_id, recipient_id, start, end, status='confirmed', **fields):
        appointment = Appointment(
            creator_id=creator_id,
            recipient_id=recipient_id,
            start_time=start,
            end_time=end,
            status=status,
            attended_by=[],
            availability_snapshot=fields.pop('availability_snapshot', {}),
            **fields,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make
