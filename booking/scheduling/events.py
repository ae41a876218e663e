"""Domain events and their hand-off to connected clients.

The scheduling service only builds :class:`DomainEvent` values and hands them
to a publisher. How a user's open connections receive them is up to the
:class:`ConnectionRegistry` the publisher was given.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from threading import Lock
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

APPOINTMENT_CREATED = 'AppointmentCreated'
APPOINTMENT_UPDATED = 'AppointmentUpdated'
APPOINTMENT_STATUS_CHANGED = 'AppointmentStatusChanged'
APPOINTMENT_CANCELLED = 'AppointmentCancelled'
APPOINTMENT_COMPLETED = 'AppointmentCompleted'
APPOINTMENT_REMINDER = 'AppointmentReminder'
NOTIFICATION_REQUESTED = 'NotificationRequested'


@dataclass(frozen=True)
class DomainEvent:
    type: str
    recipient_id: int
    sender_id: int | None
    title: str
    message: str
    appointment_id: int | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload['timestamp'] = self.timestamp.isoformat()
        return payload


class ConnectionRegistry(Protocol):
    def publish(self, user_id: int, event: DomainEvent) -> None:
        ...


class InMemoryConnectionRegistry:
    """Keeps per-user subscriber callbacks for the lifetime of the process."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._subscribers: dict[int, list[Callable[[DomainEvent], None]]] = defaultdict(list)

    def connect(self, user_id: int, callback: Callable[[DomainEvent], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers[user_id].append(callback)

        def disconnect() -> None:
            with self._lock:
                callbacks = self._subscribers.get(user_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(user_id, None)

        return disconnect

    def is_connected(self, user_id: int) -> bool:
        with self._lock:
            return bool(self._subscribers.get(user_id))

    def publish(self, user_id: int, event: DomainEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(user_id, ()))
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception('Subscriber for user %s failed on %s', user_id, event.type)


class EventPublisher:
    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    def publish(self, event: DomainEvent) -> None:
        logger.info(
            'Publishing %s for appointment %s to user %s',
            event.type,
            event.appointment_id,
            event.recipient_id,
        )
        self.registry.publish(event.recipient_id, event)


connection_registry = InMemoryConnectionRegistry()
event_publisher = EventPublisher(connection_registry)


def get_event_publisher() -> EventPublisher:
    return event_publisher
