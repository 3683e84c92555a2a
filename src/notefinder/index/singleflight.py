"""Per-key single-flight guard shared across threads."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator, Set


class SingleFlight:
    """Set of keys with work in flight; a second claim on a held key fails fast."""

    def __init__(self) -> None:
        self._keys: Set[Hashable] = set()
        self._lock = threading.Lock()

    def try_acquire(self, key: Hashable) -> bool:
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: Hashable) -> None:
        with self._lock:
            self._keys.discard(key)

    def is_running(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._keys

    @contextmanager
    def claim(self, key: Hashable) -> Iterator[bool]:
        """Yield ``True`` when the slot was acquired; it is released on every exit."""
        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)


# Users with a build in progress in this process.
INDEXING_USERS = SingleFlight()
