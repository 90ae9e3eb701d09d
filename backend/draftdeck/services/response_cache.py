"""Process-wide expiring cache in front of the Figma API."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    data: T
    stored_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class ResponseCache:
    """Key -> value cache with per-entry TTL and lazy expiry.

    Reads past ``expires_at`` count as a miss and evict the entry. There is
    no background sweep; ``clear_expired()`` is offered for maintenance jobs.
    Nothing is invalidated on write, so callers see data up to one TTL old.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.misses += 1
            logger.debug("Cache expired: %s", key)
            return None
        self.hits += 1
        return entry.data

    def set(self, key: str, value: Any, ttl: float) -> None:
        now = self._clock()
        self._entries[key] = CacheEntry(data=value, stored_at=now, expires_at=now + ttl)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def clear_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_fetch(
        self, key: str, ttl: float, fetcher: Callable[[], Awaitable[T]]
    ) -> T:
        """Read-through helper: return cached value or fetch and store it.

        Only successful fetches are stored. Concurrent misses for one key may
        both fetch; the later result wins.
        """
        cached = self.get(key)
        if cached is not None or key in self._entries:
            return cached
        value = await fetcher()
        self.set(key, value, ttl)
        return value

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        expired = sum(1 for e in self._entries.values() if e.is_expired(now))
        lookups = self.hits + self.misses
        return {
            "entries": len(self._entries),
            "expired_entries": expired,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate_percent": round(self.hits / lookups * 100, 1) if lookups else None,
        }
