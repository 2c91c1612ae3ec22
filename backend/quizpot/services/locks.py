import threading
from contextlib import contextmanager
from typing import Dict, Hashable


class KeyedLocks:
    """Process-local mutexes keyed by e.g. ``('wallet', user_id)``.

    Serialises read-check-write sequences on one key within a worker process.
    The database conditions (conditional updates, unique constraints) still
    guard correctness across processes.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}

    def _lock_for(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *key):
        lock = self._lock_for(key)
        with lock:
            yield
