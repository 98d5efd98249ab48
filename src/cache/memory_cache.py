"""Bounded in-process cache with value-scored eviction.

Entries are evicted by a value score that rewards frequent access and
penalises age, idleness and size:

    score = accessCount * 10 - ageMinutes * 0.1 - idleMinutes * 0.5 - sizeBytes / 1024

Lowest scores go first; ties go to the earliest inserted entry.
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from cache.models import CacheEntry, CacheMetadata, CacheStats, CacheStrategy, format_bytes

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 1000
DEFAULT_MAX_SIZE_BYTES = 50 * 1024 * 1024  # 50MB
DEFAULT_TTL = timedelta(hours=24)


def estimate_size(value: Any) -> int:
    """Approximate size of a value: UTF-8 length of its canonical JSON."""
    text = json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
    return len(text.encode("utf-8"))


class MemoryCache:
    """In-memory cache tier with entry-count and byte-budget caps."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize memory cache.

        Args:
            max_entries: Maximum number of entries
            max_size_bytes: Maximum total estimated size in bytes
            clock: Source of the current time
        """
        self.max_entries = max_entries
        self.max_size_bytes = max_size_bytes
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._current_size_bytes = 0
        self._lock = asyncio.Lock()

    @property
    def total_bytes(self) -> int:
        return self._current_size_bytes

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> List[str]:
        return list(self._entries)

    def contains(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.is_valid(self._clock())

    async def put(
        self,
        key: str,
        value: Any,
        ttl: Optional[timedelta] = None,
        strategy: CacheStrategy = CacheStrategy.CACHE_FIRST,
    ) -> None:
        """Store a value, evicting low-value entries if it would not fit.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time-to-live (default 24 hours)
            strategy: Strategy recorded in the entry's metadata
        """
        size_bytes = estimate_size(value)
        now = self._clock()

        async with self._lock:
            # Replacing an entry releases its bytes first
            self._remove_locked(key)

            if self._needs_eviction(size_bytes):
                self._evict_least_valuable(size_bytes, now)

            metadata = CacheMetadata(
                created_at=now,
                last_accessed=now,
                expires_at=now + (ttl if ttl is not None else DEFAULT_TTL),
                access_count=1,
                size_bytes=size_bytes,
                strategy=strategy,
            )
            self._entries[key] = CacheEntry(key=key, value=value, metadata=metadata)
            self._current_size_bytes += size_bytes

        logger.debug(
            f"Memory cached: {key} ({format_bytes(size_bytes)}, "
            f"total: {format_bytes(self._current_size_bytes)})"
        )

    def get(self, key: str) -> Optional[Any]:
        """Get a value, refreshing its access metadata on a hit.

        Expired entries are removed and reported as a miss.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = self._clock()
        if not entry.is_valid(now):
            self._remove_locked(key)
            logger.debug(f"Memory expired: {key}")
            return None

        self._entries[key] = CacheEntry(
            key=entry.key,
            value=entry.value,
            metadata=entry.metadata.with_access(now),
        )
        logger.debug(f"Memory hit: {key} (accessed {entry.metadata.access_count + 1} times)")
        return entry.value

    async def remove(self, key: str) -> bool:
        """Remove an entry. Returns True if it existed."""
        async with self._lock:
            return self._remove_locked(key)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            self._current_size_bytes = 0
        logger.info("Memory cache cleared")

    async def remove_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        async with self._lock:
            expired = [k for k, e in self._entries.items() if not e.is_valid(now)]
            for key in expired:
                self._remove_locked(key)
        return len(expired)

    def stats(self) -> CacheStats:
        now = self._clock()
        expired_count = 0
        stale_count = 0
        for entry in self._entries.values():
            if entry.metadata.is_expired(now):
                expired_count += 1
            if entry.metadata.is_stale(now):
                stale_count += 1

        return CacheStats(
            entry_count=len(self._entries),
            total_bytes=self._current_size_bytes,
            expired_count=expired_count,
            stale_count=stale_count,
        )

    def value_score(self, entry: CacheEntry, now: Optional[datetime] = None) -> float:
        """Score used for eviction. Higher means more valuable."""
        now = now or self._clock()
        metadata = entry.metadata
        age_minutes = metadata.age(now).total_seconds() / 60
        idle_minutes = (now - metadata.last_accessed).total_seconds() / 60
        return (
            metadata.access_count * 10
            - age_minutes * 0.1
            - idle_minutes * 0.5
            - metadata.size_bytes / 1024
        )

    def _remove_locked(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        self._current_size_bytes -= entry.metadata.size_bytes
        return True

    def _needs_eviction(self, new_item_size: int) -> bool:
        return (
            len(self._entries) >= self.max_entries
            or self._current_size_bytes + new_item_size > self.max_size_bytes
        )

    def _evict_least_valuable(self, new_item_size: int, now: datetime) -> None:
        # sorted() is stable, so equal scores keep insertion order
        candidates = sorted(self._entries.values(), key=lambda e: self.value_score(e, now))

        evicted = 0
        freed_bytes = 0
        for entry in candidates:
            if not self._needs_eviction(new_item_size):
                break
            self._remove_locked(entry.key)
            evicted += 1
            freed_bytes += entry.metadata.size_bytes

        if self._needs_eviction(new_item_size):
            logger.warning(
                f"Entry of {format_bytes(new_item_size)} exceeds memory cache capacity "
                f"({format_bytes(self.max_size_bytes)})"
            )
        logger.info(f"Evicted {evicted} entries, freed {format_bytes(freed_bytes)}")


__all__ = [
    "MemoryCache",
    "estimate_size",
    "DEFAULT_MAX_ENTRIES",
    "DEFAULT_MAX_SIZE_BYTES",
    "DEFAULT_TTL",
]
