"""Per-application write locks"""

import threading
import uuid
from contextlib import contextmanager
from typing import Dict, Iterator, List


class ApplicationLocks:
    """
    Process-local registry of one lock per application id.

    Mutations hold the lock for the whole transaction, so a second writer on
    the same application only reads the row after the first has committed.
    Across processes the row lock taken by SELECT ... FOR UPDATE provides the
    same guarantee. An entry lives only while some thread holds or waits on it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # application id -> [lock, number of holders and waiters]
        self._locks: Dict[uuid.UUID, List] = {}

    def _acquire_entry(self, application_id: uuid.UUID) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(application_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[application_id] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, application_id: uuid.UUID) -> None:
        with self._guard:
            entry = self._locks[application_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[application_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, application_id: uuid.UUID) -> Iterator[None]:
        lock = self._acquire_entry(application_id)
        try:
            with lock:
                yield
        finally:
            self._release_entry(application_id)


application_locks = ApplicationLocks()
