"""Shared test doubles: a settable clock, an in-memory store and a recording sleep."""

import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cache.database import KeyValueStore, SQLiteKeyValueStore  # noqa: E402
from network.errors import StorageError  # noqa: E402


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class InMemoryStore(KeyValueStore):
    """Dict-backed KeyValueStore. Set fail_reads / fail_writes to inject faults."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.fail_reads = False
        self.fail_writes = False

    async def read_string(self, key: str) -> Optional[str]:
        if self.fail_reads:
            raise StorageError(f"read failed: {key}")
        return self.data.get(key)

    async def write_string(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StorageError(f"write failed: {key}")
        self.data[key] = value

    async def remove_key(self, key: str) -> None:
        if self.fail_writes:
            raise StorageError(f"remove failed: {key}")
        self.data.pop(key, None)

    async def list_keys(self, prefix: str = "") -> List[str]:
        if self.fail_reads:
            raise StorageError(f"list failed: {prefix}")
        return sorted(k for k in self.data if k.startswith(prefix))


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def sqlite_store(tmp_path) -> SQLiteKeyValueStore:
    return SQLiteKeyValueStore(tmp_path / "test.db")


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
