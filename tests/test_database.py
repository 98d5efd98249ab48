#!/usr/bin/env python
"""Tests for the SQLite key-value store.

Run with: pytest tests/test_database.py -v
"""

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cache.database import SQLiteKeyValueStore
from network.errors import StorageError


@pytest.mark.asyncio
async def test_write_read_and_upsert(sqlite_store):
    assert await sqlite_store.read_string("a") is None

    await sqlite_store.write_string("a", "1")
    await sqlite_store.write_string("a", "2")

    assert await sqlite_store.read_string("a") == "2"


@pytest.mark.asyncio
async def test_list_keys_by_prefix_sorted(sqlite_store):
    for key in ["cache_meta:b", "cache_data:b", "cache_data:a", "offline_actions"]:
        await sqlite_store.write_string(key, "x")

    assert await sqlite_store.list_keys("cache_data:") == ["cache_data:a", "cache_data:b"]
    assert len(await sqlite_store.list_keys()) == 4


@pytest.mark.asyncio
async def test_prefix_is_literal(sqlite_store):
    await sqlite_store.write_string("a%b", "x")
    await sqlite_store.write_string("aXb", "x")

    assert await sqlite_store.list_keys("a%") == ["a%b"]


@pytest.mark.asyncio
async def test_remove_missing_key_is_not_an_error(sqlite_store):
    await sqlite_store.write_string("a", "1")
    await sqlite_store.remove_key("a")
    await sqlite_store.remove_key("a")

    assert await sqlite_store.read_string("a") is None


@pytest.mark.asyncio
async def test_data_survives_new_instance(tmp_path):
    path = tmp_path / "persist.db"
    await SQLiteKeyValueStore(path).write_string("k", "v")

    assert await SQLiteKeyValueStore(path).read_string("k") == "v"


@pytest.mark.asyncio
async def test_stats(sqlite_store):
    await sqlite_store.write_string("k", "hello")

    stats = sqlite_store.get_stats()

    assert stats["key_count"] == 1
    assert stats["value_bytes"] == 5
    sqlite_store.vacuum()


@pytest.mark.asyncio
async def test_unusable_database_raises_storage_error(tmp_path):
    path = tmp_path / "not_a_db"
    path.mkdir()

    with pytest.raises(StorageError):
        await SQLiteKeyValueStore(path).read_string("k")
