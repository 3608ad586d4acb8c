"""
Per-entity async locks.
Mutations touching a bus or a bay hold the lock for every key involved, taken
in sorted order so two operations on overlapping entities cannot deadlock.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class KeyedLocks:
    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def reset(self):
        """Drop every lock. Only safe while nothing is held (new event loop, tests)."""
        self._locks.clear()

    @asynccontextmanager
    async def hold(self, *keys: str):
        ordered = sorted(set(k for k in keys if k))
        acquired = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


def bus_key(bus_id) -> str:
    return f"bus:{bus_id}"


def bay_key(bay_id) -> str:
    return f"bay:{bay_id}"


entity_locks = KeyedLocks()
