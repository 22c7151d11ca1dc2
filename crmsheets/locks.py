"""Per-key asyncio locks for serializing check-then-act sequences in one process."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLock:
    """
    Hands out one asyncio.Lock per business key.

    Locks are dropped once no task holds or waits on them, so the registry does
    not grow with every company name ever seen.

    Usage:
        locks = KeyedLock()
        async with locks.hold("acme"):
            ...  # scan, then append
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
