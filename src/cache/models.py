"""Cache entry and metadata models shared by both cache tiers."""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

# Entries not accessed within this window are considered stale
STALE_WINDOW = timedelta(hours=1)


class CacheStrategy(Enum):
    """How a read should combine the cache tiers and the network."""

    CACHE_FIRST = "cache_first"  # Check cache first, then network
    NETWORK_FIRST = "network_first"  # Check network first, fallback to cache
    CACHE_ONLY = "cache_only"  # Only use cache (offline mode)
    NETWORK_ONLY = "network_only"  # Always use network
    STALE_WHILE_REVALIDATE = "stale_while_revalidate"  # Serve cache, refresh in background


@dataclass(frozen=True)
class CacheMetadata:
    """Bookkeeping for one cache entry."""

    created_at: datetime
    last_accessed: datetime
    expires_at: datetime
    access_count: int = 1
    size_bytes: int = 0
    strategy: CacheStrategy = CacheStrategy.CACHE_FIRST

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def is_stale(self, now: datetime) -> bool:
        return now > self.last_accessed + STALE_WINDOW

    def age(self, now: datetime) -> timedelta:
        return now - self.created_at

    def with_access(self, now: datetime) -> "CacheMetadata":
        """Copy with last_accessed refreshed and access_count incremented."""
        return replace(self, last_accessed=now, access_count=self.access_count + 1)


@dataclass(frozen=True)
class CacheEntry:
    """A cached value and its metadata."""

    key: str
    value: Any
    metadata: CacheMetadata

    def is_valid(self, now: datetime) -> bool:
        return not self.metadata.is_expired(now)

    def should_refresh(self, now: datetime) -> bool:
        return self.metadata.is_stale(now)


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of a cache tier."""

    entry_count: int
    total_bytes: int
    expired_count: int
    stale_count: int

    def to_dict(self) -> dict:
        return {
            "entries": self.entry_count,
            "size_bytes": self.total_bytes,
            "expired": self.expired_count,
            "stale": self.stale_count,
        }


def format_bytes(size: int) -> str:
    """Human-readable byte count."""
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}KB"
    return f"{size / (1024 * 1024):.1f}MB"


__all__ = [
    "STALE_WINDOW",
    "CacheStrategy",
    "CacheMetadata",
    "CacheEntry",
    "CacheStats",
    "format_bytes",
]
