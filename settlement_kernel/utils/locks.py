"""
Per-aggregate in-process locks.

Cascades and guarded transitions run under a lock keyed by the aggregate
they protect (``batch:<batch_id>``, ``nota:<nota_number>``).  Locks are
re-entrant, so a cascade started from inside a guarded transition on the
same aggregate does not deadlock on itself.  Multiple keys are always
acquired in sorted order.

This serializes callers inside one process only.  Across processes the
version check in EntityStore.update is what detects interleaving.
"""

import threading
from contextlib import ExitStack, contextmanager
from typing import Iterator


def batch_lock_key(batch_id: str) -> str:
    return f"batch:{batch_id}"


def nota_lock_key(nota_number: str) -> str:
    return f"nota:{nota_number}"


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.holders = 0


class AggregateLockRegistry:
    """
    Hands out one RLock per aggregate key.

    An entry lives only while some caller holds or waits on it; the last
    release drops the key, so the registry does not grow with every batch
    and nota ever touched.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, _Entry] = {}

    def _checkout(self, key: str) -> threading.RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = _Entry()
                self._locks[key] = entry
            entry.holders += 1
            return entry.lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry.lock.release()
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        with ExitStack() as stack:
            for key in sorted(set(keys)):
                self._checkout(key).acquire()
                stack.callback(self._checkin, key)
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
