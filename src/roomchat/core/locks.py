"""Per-room async locking for membership mutation."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class RoomLockManager(ABC):
    """Abstract base for per-room locking.

    Join and leave read a room, check it, and write it back. Holding the
    room's lock across that sequence keeps two concurrent joins from both
    passing the capacity check. The package ships with
    ``InMemoryLockManager`` for single-process deployments; several
    processes sharing one store need a distributed implementation
    (Postgres advisory locks, Redis, or similar).
    """

    @abstractmethod
    @asynccontextmanager
    async def locked(self, room_id: str) -> AsyncIterator[None]:
        """Acquire an exclusive lock for *room_id*."""
        yield  # pragma: no cover


class InMemoryLockManager(RoomLockManager):
    """In-process per-room asyncio locks.

    A lock exists only while some task holds or waits for it, so idle rooms
    cost nothing.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def locked(self, room_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        self._waiters[room_id] = self._waiters.get(room_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._waiters[room_id] - 1
            if remaining:
                self._waiters[room_id] = remaining
            else:
                del self._waiters[room_id]
                del self._locks[room_id]

    @property
    def size(self) -> int:
        """Number of rooms with a held or awaited lock."""
        return len(self._locks)
