"""Unified two-tier cache manager.

Combines MemoryCache (fast, volatile) and StorageCache (durable) behind a
single get/put/invalidate contract. Network fetching is deliberately not
part of this layer: network-bound strategies return None and the caller
fetches and puts.
"""

import logging
import re
from datetime import timedelta
from typing import Any, Dict, Optional, Pattern, Union

from cache.memory_cache import DEFAULT_TTL as MEMORY_DEFAULT_TTL, MemoryCache
from cache.models import CacheStrategy
from cache.storage_cache import StorageCache

logger = logging.getLogger(__name__)


class CacheManager:
    """Read-through cache over a memory tier and a storage tier."""

    def __init__(self, memory: MemoryCache, storage: StorageCache):
        """Initialize cache manager.

        Args:
            memory: In-process tier, owned by this manager
            storage: Durable tier, owned by this manager
        """
        self.memory = memory
        self.storage = storage

    async def get(
        self,
        key: str,
        strategy: CacheStrategy = CacheStrategy.CACHE_FIRST,
    ) -> Optional[Any]:
        """Get a value according to strategy.

        Stale-while-revalidate returns the cached value like cache-first;
        scheduling the refresh is the caller's job.

        Returns:
            Cached value, or None on miss or for network-bound strategies
        """
        if strategy in (CacheStrategy.NETWORK_FIRST, CacheStrategy.NETWORK_ONLY):
            return None
        return await self._get_cache_first(key)

    async def _get_cache_first(self, key: str) -> Optional[Any]:
        value = self.memory.get(key)
        if value is not None:
            return value

        entry = await self.storage.get_entry(key)
        if entry is not None and entry[0] is not None:
            value, remaining = entry
            # Promoted copy never outlives the stored entry
            await self.memory.put(key, value, ttl=min(remaining, MEMORY_DEFAULT_TTL))
            logger.debug(f"Promoted {key} from storage to memory")
            return value

        logger.debug(f"Cache miss: {key}")
        return None

    async def put(
        self,
        key: str,
        value: Any,
        ttl: Optional[timedelta] = None,
        persist: bool = True,
        strategy: CacheStrategy = CacheStrategy.CACHE_FIRST,
    ) -> None:
        """Store a value in memory and, when persist is set, in storage."""
        await self.memory.put(key, value, ttl=ttl, strategy=strategy)
        if persist:
            await self.storage.put(key, value, ttl=ttl)

    async def invalidate(self, key: str) -> None:
        """Remove a key from both tiers."""
        await self.memory.remove(key)
        await self.storage.remove(key)
        logger.info(f"Cache invalidated: {key}")

    async def invalidate_pattern(self, pattern: Union[str, Pattern[str]]) -> int:
        """Remove every key matching a regular expression from both tiers.

        Returns:
            Number of distinct keys removed
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        keys = set(self.memory.keys()) | set(await self.storage.keys())
        matched = sorted(k for k in keys if regex.search(k))
        for key in matched:
            await self.memory.remove(key)
            await self.storage.remove(key)
        logger.info(f"Cache invalidated by pattern {regex.pattern}: {len(matched)} keys")
        return len(matched)

    async def cleanup(self) -> int:
        """Drop expired entries from both tiers. Returns the total removed."""
        memory_removed = await self.memory.remove_expired()
        storage_removed = await self.storage.cleanup()
        logger.info(
            f"Cache cleanup completed (memory: {memory_removed}, storage: {storage_removed})"
        )
        return memory_removed + storage_removed

    async def clear(self) -> None:
        await self.memory.clear()
        await self.storage.clear()

    async def get_stats(self) -> Dict[str, Any]:
        """Statistics for both tiers."""
        return {
            "memory": self.memory.stats().to_dict(),
            "storage": await self.storage.stats(),
        }


__all__ = ["CacheManager"]
