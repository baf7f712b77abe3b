"""Per-key mutual exclusion for products, orders and communities."""

import logging
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)


class KeyedLocks:
    """
    A lazily populated map of key -> lock.

    hold() acquires several keys at once in sorted order, so two callers that
    need overlapping key sets can never deadlock against each other. A key's
    lock is dropped from the map once no caller holds or waits for it.
    """

    def __init__(self, name: str):
        self.name = name
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}  # holders plus waiters per key
        self._guard = threading.Lock()

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def hold(self, keys: Iterable[str]) -> Iterator[None]:
        """Acquire exclusive locks on every key for the duration of the block."""
        ordered = sorted(set(keys))
        checked_out: list[str] = []
        acquired: list[threading.Lock] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                checked_out.append(key)
                lock.acquire()
                acquired.append(lock)
            logger.debug("%s: holding %s", self.name, ordered)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in checked_out:
                self._checkin(key)

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._locks)
