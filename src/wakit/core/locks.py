"""Named async locks for store mutations."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class NamedLockManager:
    """Arena of ``asyncio.Lock`` objects keyed by name, created on first use.

    Waiters queue in FIFO order and are never rejected, however many pile
    up behind a busy lock.  Idle locks beyond *max_locks* are evicted
    least-recently-used first; a lock that is held or awaited is never
    evicted.
    """

    def __init__(self, max_locks: int = 1024) -> None:
        self._locks: OrderedDict[str, asyncio.Lock] = OrderedDict()
        self._refcounts: dict[str, int] = {}
        self._max_locks = max_locks

    def _get_lock(self, name: str) -> asyncio.Lock:
        self._refcounts[name] = self._refcounts.get(name, 0) + 1
        if name in self._locks:
            self._locks.move_to_end(name)
            return self._locks[name]

        lock = asyncio.Lock()
        self._locks[name] = lock
        self._evict()
        return lock

    def _release_ref(self, name: str) -> None:
        count = self._refcounts.get(name, 0) - 1
        if count <= 0:
            self._refcounts.pop(name, None)
        else:
            self._refcounts[name] = count

    def _evict(self) -> None:
        if len(self._locks) <= self._max_locks:
            return
        to_remove: list[str] = []
        for key, lock in self._locks.items():
            if len(self._locks) - len(to_remove) <= self._max_locks:
                break
            if not lock.locked() and self._refcounts.get(key, 0) <= 0:
                to_remove.append(key)
        for key in to_remove:
            self._locks.pop(key)

    @asynccontextmanager
    async def locked(self, name: str) -> AsyncIterator[None]:
        """Hold the lock called *name* for the duration of the block."""
        lock = self._get_lock(name)
        try:
            async with lock:
                yield
        finally:
            self._release_ref(name)

    def is_locked(self, name: str) -> bool:
        lock = self._locks.get(name)
        return lock is not None and lock.locked()

    @property
    def size(self) -> int:
        """Return the number of locks currently tracked."""
        return len(self._locks)
