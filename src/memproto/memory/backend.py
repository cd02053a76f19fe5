"""
Storage backend interface.

Concrete stores implement record persistence; retrieval and consolidation
are defined once here on top of that so every backend follows the same
retrieval engine contract.
"""

import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from memproto.core.errors import NotInitialized
from memproto.memory.base import MemoryQuery, MemoryRecord, MemorySearchResult, ScoredRecord, StorageTier
from memproto.memory.consolidation import consolidate_records
from memproto.memory.retrieval import Scorer, lexical_score, paginate, search


class StorageBackend(ABC):
    """Abstract memory storage backend."""

    supports_consolidation = True

    def __init__(self, name: str, tier: StorageTier, scorer: Scorer | None = None):
        self.name = name
        self.tier = tier
        self.scorer = scorer or lexical_score
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _check_ready(self) -> None:
        if not self._initialized:
            raise NotInitialized(f"Backend not initialized: {self.name}")

    @abstractmethod
    async def initialize(self) -> None:
        """Open the backend. Raises AlreadyInitialized on a second call."""
        ...

    @abstractmethod
    async def store(self, record: MemoryRecord) -> None:
        """Store a record under its id."""
        ...

    @abstractmethod
    async def get(self, memory_id: str) -> MemoryRecord | None:
        """Fetch a copy of a record without touching access metadata."""
        ...

    @abstractmethod
    async def update(self, memory_id: str, updates: dict[str, Any]) -> MemoryRecord:
        """Merge a partial record. Raises NotFound if absent."""
        ...

    @abstractmethod
    async def delete(self, memory_id: str) -> None:
        """Delete a record. Raises NotFound if absent."""
        ...

    @abstractmethod
    async def all_records(self) -> list[MemoryRecord]:
        """Copies of every stored record."""
        ...

    @abstractmethod
    async def record_access(self, memory_ids: list[str], when: datetime) -> None:
        """Bump access_count and last_accessed on the stored copies."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release all records and return to the uninitialized state."""
        ...

    async def contains(self, memory_id: str) -> bool:
        return await self.get(memory_id) is not None

    async def search(self, query: MemoryQuery) -> list[ScoredRecord]:
        """Scored, filtered and sorted hits with no pagination or side effects."""
        self._check_ready()
        if query.id is not None:
            record = await self.get(query.id)
            candidates = [record] if record else []
        else:
            candidates = await self.all_records()
        return search(candidates, query, self.scorer)

    async def retrieve(self, query: MemoryQuery) -> MemorySearchResult:
        """Run the full retrieval pipeline, tracking access on the returned page."""
        started = time.perf_counter()
        hits = await self.search(query)
        page = paginate(hits, query)

        if page:
            await self.record_access([h.record.id for h in page], datetime.now())

        return MemorySearchResult(
            memories=[h.record for h in page],
            total_count=len(hits),
            query=query,
            search_time=(time.perf_counter() - started) * 1000,
            scores={h.record.id: h.score for h in page if h.score is not None},
        )

    async def consolidate(self, records: list[MemoryRecord]) -> list[MemoryRecord]:
        """Deduplicate records by content fingerprint."""
        self._check_ready()
        return consolidate_records(records)
