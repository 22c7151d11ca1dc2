"""
TTLCache — process-wide, time-bounded cache of fully parsed tables.

Entries are keyed by logical table name ("companyList", "users", ...), never by
range. An entry is either fresh (returned as-is) or absent; there is no partial
revalidation. Writers call invalidate() and the next read refetches everything.
A read that was already in flight when its key was invalidated is not stored.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    data: Any
    fetched_at: float


class TTLCache:
    """
    Mapping of cache key → (data, fetched_at) with a fixed time-to-live.

    Args:
        ttl:   Seconds an entry stays fresh.
        clock: Monotonic time source; injectable for tests.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        # bumped by invalidate()/clear(); a fill started under an older value is dropped
        self._generations: dict[str, int] = {}
        self._epoch = 0

    def now(self) -> float:
        return self._clock()

    def get(self, key: str) -> Optional[Any]:
        """Return fresh data for key, or None when missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self.ttl:
            logger.debug("Cache expired: %s", key)
            return None
        logger.debug("Cache hit: %s", key)
        return entry.data

    def generation(self, key: str) -> tuple[int, int]:
        """Token to pass back to set() so a fill that raced an invalidate is discarded."""
        return self._epoch, self._generations.get(key, 0)

    def set(
        self,
        key: str,
        data: Any,
        fetched_at: Optional[float] = None,
        generation: Optional[tuple[int, int]] = None,
    ) -> bool:
        """
        Store data; fetched_at defaults to now. With a generation token, the
        store is skipped (returns False) when key was invalidated since.
        """
        if generation is not None and generation != self.generation(key):
            logger.debug("Discarding stale fill: %s", key)
            return False
        self._entries[key] = CacheEntry(
            data=data,
            fetched_at=self._clock() if fetched_at is None else fetched_at,
        )
        return True

    def invalidate(self, key: str) -> None:
        self._generations[key] = self._generations.get(key, 0) + 1
        if self._entries.pop(key, None) is not None:
            logger.debug("Cache invalidated: %s", key)

    def clear(self) -> None:
        self._epoch += 1
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
