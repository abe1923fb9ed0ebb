"""Bounded, time-windowed read-through cache of opened envelopes.

Entries are keyed ``{table}:{PK}{SK}`` and carry the time they were last
read or written.  Eviction is oldest-by-last-read: whenever the map grows past
max_items the entries with the smallest last-read time are dropped until the
bound holds again.

Concurrent requests share one cache, so every access goes through a single
lock.  The lock is never held across an await.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


def cache_key(table: str, pk: str | None, sk: str | None) -> str:
    return f"{table}:{pk}{sk}"


@dataclass
class CacheEntry(Generic[V]):
    value: V
    last_read: float


class EnvelopeCache(Generic[V]):
    """Lock-guarded map of cached values with freshness and size policy.

    cache_time_seconds = 0 makes every entry stale unless always_cache is
    set, in which case entries never go stale.  max_items = 0 is unbounded.
    """

    def __init__(
        self,
        cache_time_seconds: float = 0,
        max_items: int = 0,
        always_cache: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if cache_time_seconds < 0:
            raise ValueError("cache_time_seconds must be >= 0")
        if max_items < 0:
            raise ValueError("max_items must be >= 0")
        self.cache_time_seconds = cache_time_seconds
        self.max_items = max_items
        self.always_cache = always_cache
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def _is_fresh(self, entry: CacheEntry[V], now: float) -> bool:
        if self.cache_time_seconds == 0:
            return self.always_cache
        return now - entry.last_read < self.cache_time_seconds

    def get(self, key: str) -> V | None:
        """Return the cached value if present and fresh, else None."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not self._is_fresh(entry, now):
                return None
            return entry.value

    def put(self, key: str, value: V) -> None:
        """Insert or refresh an entry, then enforce the size bound."""
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(value=value, last_read=now)
            self._prune_locked()

    def refresh_if_present(self, key: str, value: V) -> bool:
        """Replace an entry only if the key is already cached."""
        now = self._clock()
        with self._lock:
            if key not in self._entries:
                return False
            self._entries[key] = CacheEntry(value=value, last_read=now)
            return True

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def flush(self, table: str | None = None) -> int:
        """Drop every entry for table (all entries when table is None)."""
        with self._lock:
            if table is None:
                count = len(self._entries)
                self._entries.clear()
            else:
                prefix = f"{table}:"
                doomed = [k for k in self._entries if k.startswith(prefix)]
                for key in doomed:
                    del self._entries[key]
                count = len(doomed)
        logger.info("Flushed %d cache entries (table=%s)", count, table or "*")
        return count

    def prune(self) -> int:
        with self._lock:
            return self._prune_locked()

    def _prune_locked(self) -> int:
        if self.max_items == 0 or len(self._entries) <= self.max_items:
            return 0
        excess = len(self._entries) - self.max_items
        oldest = sorted(self._entries.items(), key=lambda item: item[1].last_read)[:excess]
        for key, _ in oldest:
            del self._entries[key]
        logger.debug("Evicted %d cache entries (max_items=%d)", excess, self.max_items)
        return excess
