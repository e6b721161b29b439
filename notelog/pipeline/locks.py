"""Per-key asyncio locks, used to serialise lookup-then-write on one target text."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


def normalize_key(text: str) -> str:
    return " ".join(text.split()).casefold()


class KeyedLocks:
    """Hands out one ``asyncio.Lock`` per normalized key.

    Locks are dropped once nobody holds or waits on them, so the map only ever
    holds keys that are in flight.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        k = normalize_key(key)
        lock = self._locks.get(k)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[k] = lock
        self._waiters[k] = self._waiters.get(k, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[k] -= 1
            if self._waiters[k] == 0:
                del self._waiters[k]
                del self._locks[k]

    def __len__(self) -> int:
        return len(self._locks)
