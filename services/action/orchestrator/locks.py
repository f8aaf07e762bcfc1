"""Per-family lock registry shared by the engine and the mitigation controller."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class FamilyLocks:
    """Serializes read-modify-write cycles for one family at a time.

    Locks are re-entrant so an operation holding a family lock may call
    another locked operation for the same family. The registry holds one
    lock per family seen by this process and never evicts: a lock cannot be
    dropped safely while another thread may be waiting on it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def lock_for(self, family_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(family_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[family_id] = lock
            return lock

    @contextmanager
    def hold(self, family_id: str) -> Iterator[None]:
        with self.lock_for(family_id):
            yield
