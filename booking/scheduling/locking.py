from contextlib import contextmanager
from threading import Lock


class ParticipantLocks:
    """Per-user locks so conflict checks and the following write run as one step.

    Locks are taken in ascending user id order, so two bookings that share a
    participant serialize instead of deadlocking.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[int, Lock] = {}

    def _lock_for(self, user_id: int) -> Lock:
        with self._guard:
            if user_id not in self._locks:
                self._locks[user_id] = Lock()
            return self._locks[user_id]

    @contextmanager
    def hold(self, *user_ids: int):
        locks = [self._lock_for(user_id) for user_id in sorted(set(user_ids))]
        acquired: list[Lock] = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


participant_locks = ParticipantLocks()
