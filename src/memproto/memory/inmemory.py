"""In-memory storage backend - volatile dict keyed by record id."""

import asyncio
from datetime import datetime
from typing import Any

from memproto.core.errors import AlreadyInitialized, NotFound
from memproto.core.logging import get_logger
from memproto.memory.backend import StorageBackend
from memproto.memory.base import MemoryRecord, StorageTier, apply_updates, normalize_updates
from memproto.memory.retrieval import Scorer

logger = get_logger("memory.inmemory")


class InMemoryBackend(StorageBackend):
    """Map-backed store. Stored records are never handed out directly."""

    def __init__(
        self,
        name: str = "in-memory",
        tier: StorageTier = StorageTier.MAIN_CONTEXT,
        scorer: Scorer | None = None,
    ):
        super().__init__(name, tier, scorer)
        self._records: dict[str, MemoryRecord] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        if self._initialized:
            raise AlreadyInitialized(f"Backend already initialized: {self.name}")
        self._initialized = True
        logger.debug(f"Initialized in-memory backend: {self.name} ({self.tier.value})")

    async def store(self, record: MemoryRecord) -> None:
        self._check_ready()
        async with self._lock:
            self._records[record.id] = record.copy()

    async def get(self, memory_id: str) -> MemoryRecord | None:
        self._check_ready()
        record = self._records.get(memory_id)
        return record.copy() if record else None

    async def update(self, memory_id: str, updates: dict[str, Any]) -> MemoryRecord:
        self._check_ready()
        normalized = normalize_updates(updates)
        async with self._lock:
            record = self._records.get(memory_id)
            if record is None:
                raise NotFound(f"Memory not found: {memory_id}", {"memory_id": memory_id})
            updated = apply_updates(record, normalized)
            self._records[memory_id] = updated
            return updated.copy()

    async def delete(self, memory_id: str) -> None:
        self._check_ready()
        async with self._lock:
            if self._records.pop(memory_id, None) is None:
                raise NotFound(f"Memory not found: {memory_id}", {"memory_id": memory_id})

    async def all_records(self) -> list[MemoryRecord]:
        self._check_ready()
        return [r.copy() for r in self._records.values()]

    async def record_access(self, memory_ids: list[str], when: datetime) -> None:
        self._check_ready()
        async with self._lock:
            for memory_id in memory_ids:
                stored = self._records.get(memory_id)
                if stored is None:
                    continue
                stored.metadata.access_count += 1
                stored.metadata.last_accessed = max(when, stored.metadata.created)

    async def close(self) -> None:
        async with self._lock:
            self._records.clear()
        self._initialized = False
        logger.debug(f"Closed in-memory backend: {self.name}")

    def __len__(self) -> int:
        return len(self._records)
