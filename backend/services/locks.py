"""
Per-key asyncio locks serializing read-modify-write on a balance row
"""
import asyncio
from contextlib import asynccontextmanager


class KeyedLocks:
    """Map of lazily created locks, dropped once no task holds or awaits them"""

    def __init__(self):
        self._locks: dict = {}
        self._waiters: dict = {}

    @asynccontextmanager
    async def hold(self, *key):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def locked(self, *key) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self):
        return len(self._locks)


# Held while gating and writing a publish/capacity change for (user_id, product_type)
balance_locks = KeyedLocks()

# Held while a personalized RSVP reads and rewrites a guest's attendance
guest_locks = KeyedLocks()
