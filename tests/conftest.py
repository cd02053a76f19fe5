"""Shared fixtures for memproto tests."""

from datetime import datetime, timedelta

import pytest

from memproto.core.config import Settings
from memproto.memory.base import MemoryContent, MemoryMetadata, MemoryRecord, MemoryType, extract_keywords
from memproto.memory.inmemory import InMemoryBackend
from memproto.protocol.service import MemoryProtocol


def build_record(
    memory_id: str,
    text: str,
    memory_type: MemoryType = MemoryType.SEMANTIC,
    importance: float = 0.5,
    access_count: int = 0,
    tags: list[str] | None = None,
    age: timedelta = timedelta(0),
    **extra,
) -> MemoryRecord:
    """Build a record as if it had been stored ``age`` ago."""
    created = datetime.now() - age
    return MemoryRecord(
        id=memory_id,
        memory_type=memory_type,
        content=MemoryContent(text=text, keywords=extract_keywords(text), tags=tags or []),
        metadata=MemoryMetadata(
            importance=importance,
            access_count=access_count,
            created=created,
            updated=created,
            last_accessed=created,
            extra=extra,
        ),
        timestamp=created,
    )


@pytest.fixture
def make_record():
    return build_record


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(_env_file=None, data_dir=tmp_path)


@pytest.fixture
async def backend():
    store = InMemoryBackend()
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def protocol(settings: Settings):
    service = MemoryProtocol(settings)
    await service.initialize()
    yield service
    await service.shutdown()


@pytest.fixture
async def session_id(protocol: MemoryProtocol) -> str:
    return await protocol.create_session(user_id="user-1", agent_id="agent-1")
