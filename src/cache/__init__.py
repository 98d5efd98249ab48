"""Two-tier cache system.

This package provides:
- MemoryCache: bounded in-process tier with value-scored eviction
- StorageCache: durable tier with gzip compression for large payloads
- CacheManager: read-through orchestration of both tiers
- SQLiteKeyValueStore: aiosqlite-backed durable substrate
"""

from cache.cache_manager import CacheManager
from cache.database import KeyValueStore, SQLiteKeyValueStore
from cache.memory_cache import MemoryCache, estimate_size
from cache.models import CacheEntry, CacheMetadata, CacheStats, CacheStrategy
from cache.storage_cache import StorageCache

__all__ = [
    "CacheManager",
    "MemoryCache",
    "StorageCache",
    "KeyValueStore",
    "SQLiteKeyValueStore",
    "CacheEntry",
    "CacheMetadata",
    "CacheStats",
    "CacheStrategy",
    "estimate_size",
]
