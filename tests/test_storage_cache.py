#!/usr/bin/env python
"""Tests for StorageCache.

Covers:
- Round trips under and over the compression threshold
- Compression only when it actually saves space
- Expiry, cleanup and stats
- Corrupt metadata / payload and failing stores degrade to a miss
- Durability across store instances (SQLite)

Run with: pytest tests/test_storage_cache.py -v
"""

import base64
import gzip
import json
import random
import string
import sys
from datetime import timedelta
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cache import storage_cache
from cache.database import SQLiteKeyValueStore
from cache.storage_cache import (
    COMPRESSED_PREFIX,
    COMPRESSION_THRESHOLD_BYTES,
    DATA_PREFIX,
    METADATA_PREFIX,
    StorageCache,
    compress_text,
    decompress_text,
)

LARGE_LIST = [{"id": i, "title": f"post {i}", "body": "lorem ipsum " * 5} for i in range(50)]
LARGE_MAP = {f"key_{i}": "value " * 10 for i in range(50)}

ROUND_TRIP_VALUES = [
    "hello",
    [1, 2, 3],
    {"a": 1, "nested": {"b": [True, None]}},
    "x" * 5000,
    LARGE_LIST,
    LARGE_MAP,
]


def incompressible_text(length: int) -> str:
    rng = random.Random(0)
    alphabet = string.ascii_letters + string.digits + "+/"
    return "".join(rng.choice(alphabet) for _ in range(length))


def metadata_of(store, key):
    return json.loads(store.data[f"{METADATA_PREFIX}{key}"])


# === Test 1: Round trips ===

@pytest.mark.asyncio
@pytest.mark.parametrize("value", ROUND_TRIP_VALUES)
async def test_round_trip(value, memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)

    assert await cache.put("k", value) is True
    assert await cache.get("k") == value


@pytest.mark.asyncio
async def test_small_values_are_not_compressed(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "small")

    assert f"{DATA_PREFIX}k" in memory_store.data
    assert f"{COMPRESSED_PREFIX}k" not in memory_store.data
    assert metadata_of(memory_store, "k")["compressed"] is False


@pytest.mark.asyncio
async def test_large_compressible_values_are_compressed(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", LARGE_LIST)

    metadata = metadata_of(memory_store, "k")
    assert f"{COMPRESSED_PREFIX}k" in memory_store.data
    assert f"{DATA_PREFIX}k" not in memory_store.data
    assert metadata["compressed"] is True
    assert metadata["originalSize"] > COMPRESSION_THRESHOLD_BYTES
    assert metadata["storedSize"] < metadata["originalSize"] * 0.8


@pytest.mark.asyncio
async def test_incompressible_values_stay_uncompressed(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    text = incompressible_text(4000)
    await cache.put("k", text)

    assert metadata_of(memory_store, "k")["compressed"] is False
    assert await cache.get("k") == text


@pytest.mark.asyncio
async def test_compression_kept_at_exact_ratio(memory_store, clock, monkeypatch):
    # "x" * 1998 encodes to 2000 bytes of JSON; 80% of that is 1600
    monkeypatch.setattr(storage_cache, "compress_text", lambda text: "A" * 1600)
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "x" * 1998)

    metadata = metadata_of(memory_store, "k")
    assert metadata["originalSize"] == 2000
    assert metadata["storedSize"] == 1600
    assert metadata["compressed"] is True


@pytest.mark.asyncio
async def test_compression_can_be_disabled(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "x" * 5000, compress=False)

    assert f"{COMPRESSED_PREFIX}k" not in memory_store.data
    assert await cache.get("k") == "x" * 5000


@pytest.mark.asyncio
async def test_reput_removes_previous_slot(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "x" * 5000)
    await cache.put("k", "small")

    assert f"{COMPRESSED_PREFIX}k" not in memory_store.data
    assert await cache.get("k") == "small"


@pytest.mark.asyncio
async def test_unserializable_value_is_rejected(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    assert await cache.put("k", {"when": object()}) is False
    assert memory_store.data == {}


def test_compress_helpers_round_trip():
    text = "résumé " * 300
    assert decompress_text(compress_text(text)) == text


# === Test 2: Expiry and access tracking ===

@pytest.mark.asyncio
async def test_expired_entries_are_removed_on_read(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "v", ttl=timedelta(hours=1))

    clock.advance(hours=2)

    assert await cache.get("k") is None
    assert memory_store.data == {}


@pytest.mark.asyncio
async def test_default_ttl_is_seven_days(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "v")

    clock.advance(days=7)
    assert await cache.get("k") == "v"
    clock.advance(seconds=1)
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_hit_updates_access_metadata(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "v")
    clock.advance(minutes=5)

    await cache.get("k")

    metadata = metadata_of(memory_store, "k")
    assert metadata["accessCount"] == 2
    assert metadata["lastAccessed"] > metadata["createdAt"]


# === Test 3: Corruption and storage faults ===

@pytest.mark.asyncio
async def test_corrupt_metadata_is_a_miss(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "v")
    memory_store.data[f"{METADATA_PREFIX}k"] = "{not json"

    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_metadata_missing_fields_is_a_miss(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "v")
    memory_store.data[f"{METADATA_PREFIX}k"] = json.dumps({"createdAt": "yesterday"})

    assert await cache.get("k") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("field_name,bad_value", [
    ("accessCount", "3"),
    ("storedSize", 1.5),
    ("originalSize", True),
])
async def test_metadata_non_integer_counters_are_a_miss(memory_store, clock, field_name, bad_value):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "v")
    metadata = metadata_of(memory_store, "k")
    metadata[field_name] = bad_value
    memory_store.data[f"{METADATA_PREFIX}k"] = json.dumps(metadata)

    assert await cache.get("k") is None
    assert await cache.get_entry("k") is None


@pytest.mark.asyncio
async def test_payload_without_metadata_is_a_miss(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    memory_store.data[f"{DATA_PREFIX}k"] = json.dumps("orphan")

    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_corrupt_compressed_payload_is_a_miss(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "x" * 5000)
    memory_store.data[f"{COMPRESSED_PREFIX}k"] = "definitely not gzip!"

    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_compressed_payload_damaged_after_header_is_a_miss(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "x" * 5000)
    assert f"{COMPRESSED_PREFIX}k" in memory_store.data

    blob = bytearray(gzip.compress(json.dumps("x" * 5000).encode("utf-8")))
    blob[10:] = b"\xff" * (len(blob) - 10)
    memory_store.data[f"{COMPRESSED_PREFIX}k"] = base64.b64encode(bytes(blob)).decode("ascii")

    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_corrupt_compressed_payload_falls_back_to_data_slot(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "plain")
    memory_store.data[f"{COMPRESSED_PREFIX}k"] = "AAAA"

    assert await cache.get("k") == "plain"


@pytest.mark.asyncio
async def test_failing_store_reads_are_a_miss(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("k", "v")
    memory_store.fail_reads = True

    assert await cache.get("k") is None
    assert await cache.keys() == []


@pytest.mark.asyncio
async def test_failing_store_writes_report_false(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    memory_store.fail_writes = True

    assert await cache.put("k", "v") is False
    await cache.remove("k")


# === Test 4: Maintenance ===

@pytest.mark.asyncio
async def test_cleanup_and_stats(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("short", "v", ttl=timedelta(minutes=10))
    await cache.put("long", LARGE_LIST)

    clock.advance(minutes=20)
    stats = await cache.stats()
    assert stats["entries"] == 2
    assert stats["expired"] == 1
    assert stats["compressed"] == 1
    assert stats["stored_bytes"] < stats["original_bytes"]

    assert await cache.cleanup() == 1
    assert await cache.keys() == ["long"]


@pytest.mark.asyncio
async def test_clear_removes_every_slot(memory_store, clock):
    cache = StorageCache(memory_store, clock=clock)
    await cache.put("a", "v")
    await cache.put("b", "x" * 5000)
    memory_store.data["offline_actions"] = "[]"

    assert await cache.clear() == 4
    assert list(memory_store.data) == ["offline_actions"]


# === Test 5: SQLite durability ===

@pytest.mark.asyncio
async def test_values_survive_a_new_store_instance(tmp_path, clock):
    db_path = tmp_path / "cache.db"
    await StorageCache(SQLiteKeyValueStore(db_path), clock=clock).put("posts", LARGE_LIST)

    reopened = StorageCache(SQLiteKeyValueStore(db_path), clock=clock)
    assert await reopened.get("posts") == LARGE_LIST
    assert await reopened.keys() == ["posts"]
