"""Per-order mutual exclusion.

Every mutation of one order runs while that order's lock is held, so a
webhook delivery and a status-poll result for the same order cannot
interleave. Locks for different orders are independent; there is no global
lock. Entries are weakly held and vanish once no caller is using them.
"""

import threading
import weakref
from contextlib import contextmanager


class _KeyedLock:
    __slots__ = ("lock", "__weakref__")

    def __init__(self) -> None:
        self.lock = threading.RLock()


class OrderLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, _KeyedLock] = weakref.WeakValueDictionary()

    def _entry(self, key: str) -> _KeyedLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = _KeyedLock()
                self._locks[key] = entry
            return entry

    @contextmanager
    def hold(self, key):
        """Hold the lock for ``key`` (an order id, or any scoped key) for the block."""
        entry = self._entry(str(key))
        with entry.lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


order_locks = OrderLocks()
