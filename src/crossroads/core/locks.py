"""Per-training mutual exclusion.

Every mutation of a training (signups, slot and boss edits, transitions,
resolver runs) runs while holding that training's lock, so the operations
on one training are linearizable. Different trainings never wait on each
other. Reads take no lock.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager


class TrainingLocks:
    """Lazily created asyncio.Lock per training id."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        # Holders plus waiters per training, counted from entry into hold().
        self._users: dict[int, int] = {}

    def lock_for(self, training_id: int) -> asyncio.Lock:
        # No await between lookup and insert, so this is atomic on the event loop.
        lock = self._locks.get(training_id)
        if lock is None:
            lock = self._locks[training_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, training_id: int) -> AsyncGenerator[None, None]:
        lock = self.lock_for(training_id)
        self._users[training_id] = self._users.get(training_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users[training_id] - 1
            if remaining:
                self._users[training_id] = remaining
            else:
                del self._users[training_id]

    def forget(self, training_id: int) -> None:
        """Drop the lock of a deleted training unless someone holds or awaits it."""
        if self._users.get(training_id):
            return
        self._locks.pop(training_id, None)

    def __len__(self) -> int:
        return len(self._locks)
