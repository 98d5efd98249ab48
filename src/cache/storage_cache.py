"""Durable cache tier on top of a KeyValueStore.

Key layout in the store:
    cache_data:<key>   uncompressed payload (canonical JSON text)
    cache_gz:<key>     gzip + base64 payload
    cache_meta:<key>   JSON metadata record

Storage faults never escape a read: corrupt metadata, failed
decompression and store errors are logged and reported as a miss.
"""

import base64
import binascii
import gzip
import json
import logging
import zlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from cache.database import KeyValueStore
from cache.models import CacheMetadata, CacheStrategy, format_bytes
from network.errors import StorageError

logger = logging.getLogger(__name__)

DATA_PREFIX = "cache_data:"
COMPRESSED_PREFIX = "cache_gz:"
METADATA_PREFIX = "cache_meta:"

DEFAULT_TTL = timedelta(days=7)

# Optional metadata fields that must be integers when present
COUNTER_FIELDS = ("accessCount", "storedSize", "originalSize")

# Only payloads above this size are considered for compression
COMPRESSION_THRESHOLD_BYTES = 1024
# Compressed form is kept when it is at most this fraction of the original
COMPRESSION_MIN_RATIO = 0.8


@dataclass
class DecodeResult:
    """Result of decoding stored text: a value or an error message."""

    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def encode_value(value: Any) -> str:
    """Serialize a value to canonical JSON text.

    Raises:
        TypeError / ValueError: If the value is not JSON-serializable
    """
    return json.dumps(value, sort_keys=True, ensure_ascii=False)


def decode_value(text: str) -> DecodeResult:
    """Parse canonical JSON text back into a value."""
    try:
        return DecodeResult(value=json.loads(text))
    except (ValueError, TypeError) as e:
        return DecodeResult(error=f"Invalid payload: {e}")


def compress_text(text: str) -> str:
    return base64.b64encode(gzip.compress(text.encode("utf-8"))).decode("ascii")


def decompress_text(data: str) -> str:
    """Inverse of compress_text.

    Raises:
        ValueError / OSError / EOFError / zlib.error: If the data is not valid base64 gzip
    """
    return gzip.decompress(base64.b64decode(data, validate=True)).decode("utf-8")


def _to_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _from_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000)


class StorageCache:
    """Durable cache tier with optional compression."""

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize storage cache.

        Args:
            store: Durable key-value substrate
            clock: Source of the current time
        """
        self.store = store
        self._clock = clock

    async def put(
        self,
        key: str,
        value: Any,
        ttl: Optional[timedelta] = None,
        compress: bool = True,
    ) -> bool:
        """Persist a value.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time-to-live (default 7 days)
            compress: Whether compression may be used

        Returns:
            True if the value was stored
        """
        try:
            text = encode_value(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Storage cache put skipped for {key}: {e}")
            return False

        original_size = len(text.encode("utf-8"))
        stored = text
        compressed = False

        if compress and original_size > COMPRESSION_THRESHOLD_BYTES:
            packed = compress_text(text)
            if len(packed) <= original_size * COMPRESSION_MIN_RATIO:
                stored = packed
                compressed = True

        now = self._clock()
        metadata = {
            "createdAt": _to_millis(now),
            "lastAccessed": _to_millis(now),
            "expiresAt": _to_millis(now + (ttl if ttl is not None else DEFAULT_TTL)),
            "originalSize": original_size,
            "storedSize": len(stored),
            "compressed": compressed,
            "accessCount": 1,
        }

        live_slot = COMPRESSED_PREFIX if compressed else DATA_PREFIX
        stale_slot = DATA_PREFIX if compressed else COMPRESSED_PREFIX
        try:
            await self.store.write_string(f"{live_slot}{key}", stored)
            await self.store.remove_key(f"{stale_slot}{key}")
            await self.store.write_string(f"{METADATA_PREFIX}{key}", json.dumps(metadata))
        except StorageError as e:
            logger.warning(f"Storage cache put failed for {key}: {e}")
            return False

        if compressed:
            logger.debug(f"Storage cached (compressed): {key} ({original_size} -> {len(stored)} bytes)")
        else:
            logger.debug(f"Storage cached: {key} ({format_bytes(original_size)})")
        return True

    async def get(self, key: str) -> Optional[Any]:
        """Read a value, or None on miss, expiry or any storage fault."""
        entry = await self.get_entry(key)
        return entry[0] if entry is not None else None

    async def get_entry(self, key: str) -> Optional[Tuple[Any, timedelta]]:
        """Read a value together with its remaining time-to-live.

        Returns:
            (value, remaining ttl), or None on miss, expiry or any storage fault
        """
        try:
            raw_metadata = await self._read_metadata(key)
            if raw_metadata is None:
                return None

            metadata = self._to_cache_metadata(raw_metadata)
            now = self._clock()
            if metadata.is_expired(now):
                logger.debug(f"Storage expired: {key}")
                await self.remove(key)
                return None

            result = await self._read_payload(key)
            if result is None:
                return None

            await self._update_access(key, raw_metadata)
            return result.value, metadata.expires_at - now
        except StorageError as e:
            logger.warning(f"Storage cache get failed for {key}: {e}")
            return None

    async def remove(self, key: str) -> None:
        """Remove payload slots and metadata.

        Metadata goes first so an interrupted removal leaves at most an
        orphaned payload, which reads as a miss.
        """
        try:
            await self.store.remove_key(f"{METADATA_PREFIX}{key}")
            await self.store.remove_key(f"{DATA_PREFIX}{key}")
            await self.store.remove_key(f"{COMPRESSED_PREFIX}{key}")
        except StorageError as e:
            logger.warning(f"Storage cache remove failed for {key}: {e}")
            return
        logger.debug(f"Storage cache removed: {key}")

    async def clear(self) -> int:
        """Remove every cache key. Returns the number of store keys removed."""
        removed = 0
        try:
            for prefix in (METADATA_PREFIX, DATA_PREFIX, COMPRESSED_PREFIX):
                for store_key in await self.store.list_keys(prefix):
                    await self.store.remove_key(store_key)
                    removed += 1
        except StorageError as e:
            logger.warning(f"Storage cache clear failed: {e}")
        logger.info(f"Storage cache cleared ({removed} keys)")
        return removed

    async def keys(self) -> list:
        """Cache keys that have a metadata record."""
        try:
            meta_keys = await self.store.list_keys(METADATA_PREFIX)
        except StorageError as e:
            logger.warning(f"Storage cache key listing failed: {e}")
            return []
        return [k[len(METADATA_PREFIX):] for k in meta_keys]

    async def cleanup(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        removed_count = 0

        for key in await self.keys():
            try:
                raw_metadata = await self._read_metadata(key)
            except StorageError as e:
                logger.warning(f"Storage cleanup could not read {key}: {e}")
                continue
            if raw_metadata is None:
                continue
            if self._to_cache_metadata(raw_metadata).is_expired(now):
                await self.remove(key)
                removed_count += 1

        logger.info(f"Storage cache cleanup: removed {removed_count} expired entries")
        return removed_count

    async def stats(self) -> Dict[str, Any]:
        """Entry count, stored bytes, expired and compressed counts."""
        now = self._clock()
        stats = {"entries": 0, "stored_bytes": 0, "original_bytes": 0, "expired": 0, "compressed": 0}

        for key in await self.keys():
            try:
                raw_metadata = await self._read_metadata(key)
            except StorageError:
                continue
            if raw_metadata is None:
                continue
            stats["entries"] += 1
            stats["stored_bytes"] += raw_metadata.get("storedSize", 0)
            stats["original_bytes"] += raw_metadata.get("originalSize", 0)
            if raw_metadata.get("compressed"):
                stats["compressed"] += 1
            if self._to_cache_metadata(raw_metadata).is_expired(now):
                stats["expired"] += 1
        return stats

    async def _read_metadata(self, key: str) -> Optional[Dict[str, Any]]:
        """Load the metadata record, or None if missing or corrupt."""
        text = await self.store.read_string(f"{METADATA_PREFIX}{key}")
        if text is None:
            return None
        try:
            data = json.loads(text)
            if not isinstance(data, dict):
                raise ValueError("metadata is not an object")
            for field_name in ("createdAt", "lastAccessed", "expiresAt"):
                if not isinstance(data.get(field_name), (int, float)):
                    raise ValueError(f"missing {field_name}")
            for field_name in COUNTER_FIELDS:
                value = data.get(field_name)
                if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
                    raise ValueError(f"{field_name} is not an integer")
            self._to_cache_metadata(data)
        except (ValueError, OverflowError, OSError) as e:
            logger.warning(f"Corrupt metadata for {key}: {e}")
            return None
        return data

    def _to_cache_metadata(self, data: Dict[str, Any]) -> CacheMetadata:
        return CacheMetadata(
            created_at=_from_millis(data["createdAt"]),
            last_accessed=_from_millis(data["lastAccessed"]),
            expires_at=_from_millis(data["expiresAt"]),
            access_count=data.get("accessCount") or 1,
            size_bytes=data.get("storedSize") or 0,
            strategy=CacheStrategy.CACHE_FIRST,
        )

    async def _read_payload(self, key: str) -> Optional[DecodeResult]:
        """Try the compressed slot, then the uncompressed slot."""
        packed = await self.store.read_string(f"{COMPRESSED_PREFIX}{key}")
        if packed is not None:
            try:
                result = decode_value(decompress_text(packed))
            except (ValueError, OSError, EOFError, binascii.Error, zlib.error) as e:
                logger.warning(f"Decompression failed for {key}: {e}")
            else:
                if result.ok:
                    logger.debug(f"Storage hit: {key} (decompressed)")
                    return result
                logger.warning(f"Undecodable compressed payload for {key}: {result.error}")

        text = await self.store.read_string(f"{DATA_PREFIX}{key}")
        if text is None:
            return None
        result = decode_value(text)
        if not result.ok:
            logger.warning(f"Undecodable payload for {key}: {result.error}")
            return None
        logger.debug(f"Storage hit: {key}")
        return result

    async def _update_access(self, key: str, raw_metadata: Dict[str, Any]) -> None:
        updated = dict(raw_metadata)
        updated["lastAccessed"] = _to_millis(self._clock())
        updated["accessCount"] = (raw_metadata.get("accessCount") or 0) + 1
        try:
            await self.store.write_string(f"{METADATA_PREFIX}{key}", json.dumps(updated))
        except StorageError as e:
            logger.warning(f"Failed to update access time for {key}: {e}")


__all__ = [
    "StorageCache",
    "DecodeResult",
    "encode_value",
    "decode_value",
    "compress_text",
    "decompress_text",
    "DATA_PREFIX",
    "COMPRESSED_PREFIX",
    "METADATA_PREFIX",
    "DEFAULT_TTL",
    "COMPRESSION_THRESHOLD_BYTES",
]
