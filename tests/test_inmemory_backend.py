"""Tests for the in-memory storage backend."""

import pytest

from memproto.core.errors import AlreadyInitialized, NotFound, NotInitialized
from memproto.memory.base import MemoryQuery, StorageTier
from memproto.memory.inmemory import InMemoryBackend


@pytest.mark.asyncio
async def test_uninitialized_backend_rejects_calls(make_record):
    store = InMemoryBackend()
    with pytest.raises(NotInitialized):
        await store.store(make_record("m-1", "text"))
    with pytest.raises(NotInitialized):
        await store.retrieve(MemoryQuery(query="text"))


@pytest.mark.asyncio
async def test_double_initialize_raises():
    store = InMemoryBackend()
    await store.initialize()
    with pytest.raises(AlreadyInitialized):
        await store.initialize()


@pytest.mark.asyncio
async def test_close_clears_and_allows_reinitialize(backend: InMemoryBackend, make_record):
    await backend.store(make_record("m-1", "text"))
    await backend.close()

    assert not backend.initialized
    await backend.initialize()
    assert len(backend) == 0


@pytest.mark.asyncio
async def test_store_and_get_returns_copies(backend: InMemoryBackend, make_record):
    record = make_record("m-1", "Deploys run on Fridays")
    await backend.store(record)
    record.content.text = "mutated by caller"

    fetched = await backend.get("m-1")
    assert fetched.text == "Deploys run on Fridays"

    fetched.metadata.importance = 0.0
    again = await backend.get("m-1")
    assert again.metadata.importance == 0.5


@pytest.mark.asyncio
async def test_get_missing_returns_none(backend: InMemoryBackend):
    assert await backend.get("missing") is None


@pytest.mark.asyncio
async def test_retrieve_tracks_access(backend: InMemoryBackend, make_record):
    """Returned records get their access count bumped on the stored copy."""
    await backend.store(make_record("m-1", "alpha release"))
    await backend.store(make_record("m-2", "beta release"))

    result = await backend.retrieve(MemoryQuery(query="alpha"))

    assert result.ids == ["m-1"]
    assert result.total_count == 1
    assert (await backend.get("m-1")).metadata.access_count == 1
    assert (await backend.get("m-2")).metadata.access_count == 0


@pytest.mark.asyncio
async def test_access_only_for_returned_page(backend: InMemoryBackend, make_record):
    for i in range(5):
        await backend.store(make_record(f"m-{i}", "release note", importance=i / 10))

    result = await backend.retrieve(MemoryQuery(query="release", limit=2))

    assert result.total_count == 5
    assert result.ids == ["m-4", "m-3"]
    counts = {r.id: r.metadata.access_count for r in await backend.all_records()}
    assert counts == {"m-0": 0, "m-1": 0, "m-2": 0, "m-3": 1, "m-4": 1}


@pytest.mark.asyncio
async def test_retrieve_reports_scores(backend: InMemoryBackend, make_record):
    await backend.store(make_record("m-1", "alpha"))
    result = await backend.retrieve(MemoryQuery(query="alpha"))
    assert result.scores["m-1"] == pytest.approx(1.4)
    assert result.search_time >= 0


@pytest.mark.asyncio
async def test_update_merges(backend: InMemoryBackend, make_record):
    await backend.store(make_record("m-1", "old text"))
    updated = await backend.update("m-1", {"content": {"text": "new text"}, "metadata": {"importance": 0.9}})

    assert updated.text == "new text"
    stored = await backend.get("m-1")
    assert stored.metadata.importance == 0.9
    assert stored.metadata.updated >= stored.metadata.created


@pytest.mark.asyncio
async def test_update_missing_raises(backend: InMemoryBackend):
    with pytest.raises(NotFound):
        await backend.update("missing", {"metadata": {"importance": 0.1}})


@pytest.mark.asyncio
async def test_delete_then_exact_lookup_is_empty(backend: InMemoryBackend, make_record):
    await backend.store(make_record("m-1", "text"))
    await backend.delete("m-1")

    result = await backend.retrieve(MemoryQuery(id="m-1"))
    assert result.memories == []
    assert result.total_count == 0


@pytest.mark.asyncio
async def test_delete_missing_raises(backend: InMemoryBackend):
    with pytest.raises(NotFound):
        await backend.delete("missing")


@pytest.mark.asyncio
async def test_consolidate_uses_engine(backend: InMemoryBackend, make_record):
    records = [make_record("a", "same"), make_record("b", "SAME")]
    kept = await backend.consolidate(records)
    assert [r.id for r in kept] == ["a"]


def test_default_tier():
    assert InMemoryBackend().tier == StorageTier.MAIN_CONTEXT
