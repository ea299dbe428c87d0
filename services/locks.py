import threading
from contextlib import contextmanager
from typing import Dict

from logger import get_logger

logger = get_logger(__name__)


class KeyedLockManager:
    """
    Hands out one re-entrant lock per key (an import session ID).

    Request handlers hold a session's lock for the whole preview or execute call;
    the cleanup sweep only try-locks, so it never deletes a session in use.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, threading.RLock] = {}
        self._global_lock = threading.Lock()

    def get_lock(self, key: str) -> threading.RLock:
        """Get or create the lock for a key."""
        with self._global_lock:
            if key not in self._locks:
                self._locks[key] = threading.RLock()
            return self._locks[key]

    def discard(self, key: str) -> None:
        """Forget a key's lock. Threads already holding or waiting on it keep it."""
        with self._global_lock:
            self._locks.pop(key, None)

    @contextmanager
    def hold(self, key: str):
        """Context manager that blocks until the key's lock is acquired."""
        lock = self.get_lock(key)
        lock.acquire()
        logger.debug(f"Acquired lock for session '{key}'")
        try:
            yield
        finally:
            lock.release()
            logger.debug(f"Released lock for session '{key}'")

    @contextmanager
    def try_hold(self, key: str):
        """Context manager that tries the key's lock without waiting.

        Yields:
            bool: True if the lock was acquired (and is held inside the block).
        """
        lock = self.get_lock(key)
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()
