"""
Multi-backend dispatcher.

Routes store/update/delete/retrieve calls to the registered backends that are
relevant for a record's memory type or a query's storage tiers, in priority
order. Multi-backend writes are at-least-once: a failure part way through a
fan-out raises StorageFailure naming the backends that already succeeded, and
nothing is rolled back.
"""

import asyncio
import time
import weakref
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

from memproto.core.config import default_tier_policy
from memproto.core.errors import NotFound, StorageFailure, ValidationFailure
from memproto.core.logging import get_logger
from memproto.memory.backend import StorageBackend
from memproto.memory.base import (
    MemoryQuery,
    MemoryRecord,
    MemorySearchResult,
    MemoryType,
    ScoredRecord,
    StorageTier,
    normalize_updates,
)
from memproto.memory.retrieval import paginate, sort_hits

logger = get_logger("memory.dispatcher")

T = TypeVar("T")


@dataclass
class BackendRegistration:
    name: str
    backend: StorageBackend
    tier: StorageTier
    priority: int = 1


@dataclass
class ConsolidationReport:
    """Per-backend counts from one consolidation pass."""

    examined: dict[str, int] = field(default_factory=dict)
    folded: dict[str, list[str]] = field(default_factory=dict)

    @property
    def total_folded(self) -> int:
        return sum(len(ids) for ids in self.folded.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "examined": dict(self.examined),
            "folded": {name: list(ids) for name, ids in self.folded.items()},
            "total_folded": self.total_folded,
        }


class BackendDispatcher:
    """Owns backend registrations and fans operations out to them."""

    def __init__(
        self,
        tier_policy: dict[MemoryType, list[StorageTier]] | None = None,
        operation_timeout: float | None = None,
    ):
        self._backends: dict[str, BackendRegistration] = {}
        self.tier_policy = tier_policy or default_tier_policy()
        self.operation_timeout = operation_timeout
        # Per-record locks; entries vanish once no caller holds them
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    # Registration

    def register(
        self,
        backend: StorageBackend,
        priority: int = 1,
        tier: StorageTier | None = None,
    ) -> BackendRegistration:
        """Register a backend under its name."""
        if backend.name in self._backends:
            raise ValidationFailure(f"Backend already registered: {backend.name}")
        registration = BackendRegistration(
            name=backend.name,
            backend=backend,
            tier=tier or backend.tier,
            priority=priority,
        )
        self._backends[backend.name] = registration
        logger.debug(f"Registered backend: {backend.name} ({registration.tier.value}, priority {priority})")
        return registration

    def unregister(self, name: str) -> StorageBackend:
        registration = self._backends.pop(name, None)
        if registration is None:
            raise NotFound(f"Backend not registered: {name}")
        return registration.backend

    def is_registered(self, name: str) -> bool:
        return name in self._backends

    def get(self, name: str) -> StorageBackend:
        registration = self._backends.get(name)
        if registration is None:
            raise NotFound(f"Backend not registered: {name}")
        return registration.backend

    @property
    def registrations(self) -> list[BackendRegistration]:
        """All registrations, lowest priority number first."""
        return sorted(self._backends.values(), key=lambda r: r.priority)

    async def initialize_all(self) -> None:
        for registration in self.registrations:
            if not registration.backend.initialized:
                await registration.backend.initialize()

    async def close_all(self) -> None:
        for registration in self.registrations:
            await registration.backend.close()
        logger.info(f"Closed {len(self._backends)} backends")

    # Routing

    def eligible_backends(
        self,
        memory_type: MemoryType,
        pinned_tier: StorageTier | None = None,
    ) -> list[BackendRegistration]:
        """Backends whose tier may hold a record of this type, in write order."""
        tiers = [pinned_tier] if pinned_tier else self.tier_policy.get(memory_type, [])
        eligible = [r for r in self._backends.values() if r.tier in tiers]
        return sorted(eligible, key=lambda r: (r.priority, tiers.index(r.tier)))

    def _query_targets(self, query: MemoryQuery) -> list[BackendRegistration]:
        if not query.storage_tiers:
            return self.registrations
        return [r for r in self.registrations if r.tier in query.storage_tiers]

    def _lock_for(self, memory_id: str) -> asyncio.Lock:
        lock = self._locks.get(memory_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[memory_id] = lock
        return lock

    async def _call(self, awaitable: Awaitable[T]) -> T:
        if self.operation_timeout:
            return await asyncio.wait_for(awaitable, self.operation_timeout)
        return await awaitable

    async def _holders(self, memory_id: str) -> list[BackendRegistration]:
        holders = []
        for registration in self.registrations:
            try:
                if await self._call(registration.backend.contains(memory_id)):
                    holders.append(registration)
            except Exception as e:
                raise StorageFailure(
                    f"Lookup of {memory_id} failed on {registration.name}: {e}",
                    failed=[registration.name],
                ) from e
        return holders

    # Operations

    async def store(self, record: MemoryRecord, pinned_tier: StorageTier | None = None) -> list[str]:
        """Write the record to every eligible backend, returning their names."""
        targets = self.eligible_backends(record.memory_type, pinned_tier)
        if not targets:
            raise StorageFailure(f"No backend eligible for {record.memory_type.value} memory {record.id}")

        succeeded: list[str] = []
        async with self._lock_for(record.id):
            for registration in targets:
                copy = record.copy()
                copy.metadata.storage_tier = registration.tier
                try:
                    await self._call(registration.backend.store(copy))
                except Exception as e:
                    logger.warning(f"Store of {record.id} failed on {registration.name} after {succeeded}")
                    raise StorageFailure(
                        f"Store failed on backend {registration.name}: {e}",
                        succeeded=succeeded,
                        failed=[registration.name],
                    ) from e
                succeeded.append(registration.name)

        logger.debug(f"Stored {record.id} in {succeeded}")
        return succeeded

    async def update(self, memory_id: str, updates: dict[str, Any]) -> list[str]:
        """Apply a partial update on every backend holding the record."""
        normalize_updates(updates)  # reject malformed input before any backend is touched

        succeeded: list[str] = []
        async with self._lock_for(memory_id):
            holders = await self._holders(memory_id)
            if not holders:
                raise NotFound(f"Memory not found: {memory_id}", {"memory_id": memory_id})

            for registration in holders:
                try:
                    await self._call(registration.backend.update(memory_id, updates))
                except Exception as e:
                    raise StorageFailure(
                        f"Update of {memory_id} failed on backend {registration.name}: {e}",
                        succeeded=succeeded,
                        failed=[registration.name],
                    ) from e
                succeeded.append(registration.name)
        return succeeded

    async def delete(self, memory_id: str) -> list[str]:
        """Delete the record from every backend holding it."""
        succeeded: list[str] = []
        async with self._lock_for(memory_id):
            holders = await self._holders(memory_id)
            if not holders:
                raise NotFound(f"Memory not found: {memory_id}", {"memory_id": memory_id})

            for registration in holders:
                try:
                    await self._call(registration.backend.delete(memory_id))
                except Exception as e:
                    raise StorageFailure(
                        f"Delete of {memory_id} failed on backend {registration.name}: {e}",
                        succeeded=succeeded,
                        failed=[registration.name],
                    ) from e
                succeeded.append(registration.name)
        return succeeded

    async def retrieve(self, query: MemoryQuery) -> MemorySearchResult:
        """Search every permitted backend, then sort and paginate the merged set once."""
        started = time.perf_counter()
        merged: dict[str, ScoredRecord] = {}
        contributors: dict[str, list[BackendRegistration]] = {}

        for registration in self._query_targets(query):
            try:
                hits = await self._call(registration.backend.search(query))
            except Exception as e:
                raise StorageFailure(
                    f"Search failed on backend {registration.name}: {e}",
                    failed=[registration.name],
                ) from e
            for hit in hits:
                # First copy wins; backends are visited in priority order
                merged.setdefault(hit.record.id, hit)
                contributors.setdefault(hit.record.id, []).append(registration)

        ordered = sort_hits(list(merged.values())) if query.id is None else list(merged.values())
        page = paginate(ordered, query)

        if page:
            now = datetime.now()
            touched: dict[str, list[str]] = {}
            for hit in page:
                for registration in contributors[hit.record.id]:
                    touched.setdefault(registration.name, []).append(hit.record.id)

            recorded: list[str] = []
            for name, ids in touched.items():
                try:
                    await self._call(self._backends[name].backend.record_access(ids, now))
                except Exception as e:
                    raise StorageFailure(
                        f"Access tracking failed on backend {name}: {e}",
                        succeeded=recorded,
                        failed=[name],
                    ) from e
                recorded.append(name)

        return MemorySearchResult(
            memories=[h.record for h in page],
            total_count=len(ordered),
            query=query,
            search_time=(time.perf_counter() - started) * 1000,
            scores={h.record.id: h.score for h in page if h.score is not None},
        )

    async def consolidate(self, older_than: datetime | None = None) -> ConsolidationReport:
        """Fold duplicate records on each backend that supports consolidation.

        Only records created at or before ``older_than`` take part; they are
        processed oldest first so the earliest copy survives. A failing backend
        raises StorageFailure naming the backends already consolidated.
        """
        report = ConsolidationReport()
        for registration in self.registrations:
            if not registration.backend.supports_consolidation:
                continue
            try:
                examined, folded = await self._consolidate_backend(registration.backend, older_than)
            except Exception as e:
                raise StorageFailure(
                    f"Consolidation failed on backend {registration.name}: {e}",
                    succeeded=list(report.examined),
                    failed=[registration.name],
                ) from e

            report.examined[registration.name] = examined
            report.folded[registration.name] = folded
            if folded:
                logger.info(f"Consolidated {registration.name}: folded {len(folded)} of {examined} records")

        return report

    async def _consolidate_backend(
        self,
        backend: StorageBackend,
        older_than: datetime | None,
    ) -> tuple[int, list[str]]:
        records = [
            r for r in await self._call(backend.all_records())
            if older_than is None or r.metadata.created <= older_than
        ]
        records.sort(key=lambda r: r.metadata.created)
        originals = {r.id: r for r in records}

        kept = await self._call(backend.consolidate(records))
        kept_ids = {r.id for r in kept}

        for record in kept:
            before = originals[record.id].metadata
            if (
                record.metadata.importance != before.importance
                or record.metadata.access_count != before.access_count
            ):
                async with self._lock_for(record.id):
                    await self._call(
                        backend.update(
                            record.id,
                            {
                                "metadata": {
                                    "importance": record.metadata.importance,
                                    "access_count": record.metadata.access_count,
                                }
                            },
                        )
                    )

        folded = [r.id for r in records if r.id not in kept_ids]
        for memory_id in folded:
            async with self._lock_for(memory_id):
                await self._call(backend.delete(memory_id))
        return len(records), folded

    async def evict_expired(self, now: datetime | None = None) -> list[str]:
        """Delete records whose ttl has elapsed, returning their ids."""
        now = now or datetime.now()
        evicted: list[str] = []
        swept: list[str] = []
        for registration in self.registrations:
            try:
                for record in await self._call(registration.backend.all_records()):
                    if record.is_expired(now):
                        async with self._lock_for(record.id):
                            await self._call(registration.backend.delete(record.id))
                        if record.id not in evicted:
                            evicted.append(record.id)
            except Exception as e:
                raise StorageFailure(
                    f"Eviction failed on backend {registration.name}: {e}",
                    succeeded=swept,
                    failed=[registration.name],
                ) from e
            swept.append(registration.name)

        if evicted:
            logger.info(f"Evicted {len(evicted)} expired records")
        return evicted
