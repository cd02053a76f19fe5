"""Tests for the SQLite storage backend."""

import asyncio
from pathlib import Path

import pytest

from memproto.core.errors import AlreadyInitialized, NotFound, NotInitialized
from memproto.memory.base import MemoryQuery, StorageTier
from memproto.memory.sqlite import SQLiteBackend


@pytest.fixture
async def sqlite_backend(tmp_path: Path):
    """Create a temporary SQLite backend."""
    store = SQLiteBackend(tmp_path / "memories.db")
    await store.initialize()
    yield store
    await store.close()


@pytest.mark.asyncio
async def test_store_and_get(sqlite_backend: SQLiteBackend, make_record):
    record = make_record("m-1", "User asked about weather", tags=["weather"], city="Lisbon")
    await sqlite_backend.store(record)

    fetched = await sqlite_backend.get("m-1")
    assert fetched == record


@pytest.mark.asyncio
async def test_double_initialize_raises(sqlite_backend: SQLiteBackend):
    with pytest.raises(AlreadyInitialized):
        await sqlite_backend.initialize()


@pytest.mark.asyncio
async def test_calls_before_initialize_raise(tmp_path: Path, make_record):
    store = SQLiteBackend(tmp_path / "memories.db")
    with pytest.raises(NotInitialized):
        await store.store(make_record("m-1", "text"))


@pytest.mark.asyncio
async def test_store_is_upsert(sqlite_backend: SQLiteBackend, make_record):
    await sqlite_backend.store(make_record("m-1", "first"))
    await sqlite_backend.store(make_record("m-1", "second"))

    records = await sqlite_backend.all_records()
    assert [r.text for r in records] == ["second"]


@pytest.mark.asyncio
async def test_retrieve_tracks_access(sqlite_backend: SQLiteBackend, make_record):
    await sqlite_backend.store(make_record("m-1", "weather in Lisbon"))

    result = await sqlite_backend.retrieve(MemoryQuery(query="weather"))

    assert result.ids == ["m-1"]
    assert (await sqlite_backend.get("m-1")).metadata.access_count == 1


@pytest.mark.asyncio
async def test_update_and_delete(sqlite_backend: SQLiteBackend, make_record):
    await sqlite_backend.store(make_record("m-1", "text"))

    await sqlite_backend.update("m-1", {"metadata": {"importance": 0.9, "owner": "ops"}})
    fetched = await sqlite_backend.get("m-1")
    assert fetched.metadata.importance == 0.9
    assert fetched.metadata.extra == {"owner": "ops"}

    await sqlite_backend.delete("m-1")
    assert await sqlite_backend.get("m-1") is None

    with pytest.raises(NotFound):
        await sqlite_backend.delete("m-1")
    with pytest.raises(NotFound):
        await sqlite_backend.update("m-1", {"ttl": 5})


@pytest.mark.asyncio
async def test_records_survive_reopen(tmp_path: Path, make_record):
    path = tmp_path / "memories.db"
    store = SQLiteBackend(path)
    await store.initialize()
    await store.store(make_record("m-1", "durable fact"))
    await store.close()

    reopened = SQLiteBackend(path)
    await reopened.initialize()
    try:
        assert (await reopened.get("m-1")).text == "durable fact"
    finally:
        await reopened.close()


@pytest.mark.asyncio
async def test_creates_parent_directory(tmp_path: Path):
    store = SQLiteBackend(tmp_path / "nested" / "dir" / "memories.db")
    await store.initialize()
    await store.close()
    assert (tmp_path / "nested" / "dir" / "memories.db").exists()


def test_default_tier(tmp_path: Path):
    assert SQLiteBackend(tmp_path / "x.db").tier == StorageTier.EXTERNAL_CONTEXT


@pytest.mark.asyncio
async def test_concurrent_retrieves_count_every_access(sqlite_backend: SQLiteBackend, make_record):
    await sqlite_backend.store(make_record("m-1", "deploy checklist"))

    await asyncio.gather(*(sqlite_backend.retrieve(MemoryQuery(query="deploy")) for _ in range(5)))

    assert (await sqlite_backend.get("m-1")).metadata.access_count == 5
