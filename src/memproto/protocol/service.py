"""
Memory protocol service - the inbound call surface.

Owns the session manager, the backend dispatcher and the event bus. Every
call except session creation is scoped to an open session.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from memproto.core.config import BackendSpec, Settings
from memproto.core.errors import AlreadyInitialized, NotInitialized, ValidationFailure
from memproto.core.events import EventBus
from memproto.core.logging import get_logger
from memproto.core.session import SessionManager
from memproto.core.types import MemoryEventType
from memproto.memory.backend import StorageBackend
from memproto.memory.base import (
    MemoryContent,
    MemoryMetadata,
    MemoryQuery,
    MemoryRecord,
    MemorySearchResult,
    MemoryType,
    StorageTier,
    check_unit,
    extract_keywords,
    parse_enum,
)
from memproto.memory.dispatcher import BackendDispatcher, ConsolidationReport
from memproto.memory.registry import create_backend, resolve_backend_specs

logger = get_logger("protocol.service")


def _string_list(value: Any, field_name: str) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValidationFailure(f"{field_name} must be a list of strings, got {value!r}")
    return list(value)


class MemoryProtocol:
    """Session-scoped memory store over one or more tiered backends."""

    def __init__(self, settings: Settings | None = None, events: EventBus | None = None):
        self.settings = settings or Settings()
        self.events = events or EventBus()
        self.dispatcher = BackendDispatcher(
            tier_policy=self.settings.tier_policy,
            operation_timeout=self.settings.operation_timeout,
        )
        self.sessions = SessionManager(self.events, self.dispatcher)
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def register_backend(self, backend: StorageBackend, priority: int = 1) -> None:
        """Register a pre-built backend. Only allowed before initialize()."""
        if self._initialized:
            raise AlreadyInitialized("Backends cannot be registered after initialization")
        self.dispatcher.register(backend, priority=priority)

    async def initialize(self, specs: list[BackendSpec] | None = None) -> None:
        """Build backends from config and open every registered backend."""
        if self._initialized:
            raise AlreadyInitialized("Protocol already initialized")

        for spec in specs if specs is not None else resolve_backend_specs(self.settings):
            if self.dispatcher.is_registered(spec.name):
                # Kept from before a shutdown; reopened by initialize_all below
                continue
            self.dispatcher.register(create_backend(spec, self.settings), priority=spec.priority, tier=spec.tier)

        await self.dispatcher.initialize_all()
        self._initialized = True
        logger.info(f"Memory protocol initialized with {len(self.dispatcher.registrations)} backends")
        await self.events.emit(MemoryEventType.INITIALIZED, backends=[r.name for r in self.dispatcher.registrations])

    async def shutdown(self) -> None:
        """Close every session and every backend."""
        await self.sessions.shutdown()
        self._initialized = False
        await self.events.emit(MemoryEventType.SHUTDOWN)

    def _check_ready(self) -> None:
        if not self._initialized:
            raise NotInitialized("Protocol not initialized")

    # Sessions

    async def create_session(self, user_id: str | None = None, agent_id: str | None = None) -> str:
        """Open a session. Allowed before initialize()."""
        return await self.sessions.create_session(user_id, agent_id)

    async def close_session(self, session_id: str) -> None:
        self._check_ready()
        await self.sessions.close_session(session_id)

    # Memory operations

    def _build_record(
        self,
        text: str,
        memory_type: MemoryType,
        session_id: str,
        overrides: dict[str, Any],
    ) -> tuple[MemoryRecord, StorageTier | None]:
        context = self.sessions.get(session_id)
        if not isinstance(overrides, dict):
            raise ValidationFailure("metadata must be a mapping")
        overrides = dict(overrides)
        memory_id = str(uuid4())
        now = datetime.now()

        tags = _string_list(overrides.pop("tags", None), "tags") or []
        keywords = _string_list(overrides.pop("keywords", None), "keywords")
        ttl = overrides.pop("ttl", self.settings.default_ttl)
        if ttl is not None and (isinstance(ttl, bool) or not isinstance(ttl, int)):
            raise ValidationFailure(f"ttl must be an integer number of seconds, got {ttl!r}")
        pinned = overrides.pop("storage_tier", None)
        pinned_tier = parse_enum(StorageTier, pinned, "storage tier") if pinned is not None else None

        metadata = MemoryMetadata(created=now, updated=now, last_accessed=now)
        metadata.storage_tier = pinned_tier or StorageTier.MAIN_CONTEXT
        for key in ("importance", "confidence"):
            if key in overrides:
                setattr(metadata, key, check_unit(overrides.pop(key), key))
        if "source" in overrides:
            metadata.source = str(overrides.pop("source"))
        for key in ("access_count", "created", "updated", "last_accessed"):
            if key in overrides:
                raise ValidationFailure(f"metadata.{key} is managed by the store")
        metadata.extra = overrides

        record_context = replace(context, state=dict(context.state), memory_id=memory_id)

        record = MemoryRecord(
            id=memory_id,
            memory_type=memory_type,
            content=MemoryContent(
                text=text,
                keywords=list(keywords) if keywords is not None else extract_keywords(text),
                tags=tags,
            ),
            metadata=metadata,
            context=record_context,
            timestamp=now,
            ttl=ttl,
        )
        return record, pinned_tier

    async def store(
        self,
        text: str,
        memory_type: MemoryType | str,
        session_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Store a memory fact and return its id."""
        self._check_ready()
        if not isinstance(text, str) or not text:
            raise ValidationFailure("Memory content must be a non-empty string")
        memory_type = parse_enum(MemoryType, memory_type, "memory type")

        record, pinned_tier = self._build_record(text, memory_type, session_id, metadata or {})
        backends = await self.dispatcher.store(record, pinned_tier)

        await self.events.emit(MemoryEventType.STORE, record=record, backends=backends)
        return record.id

    async def retrieve(
        self,
        query: str,
        session_id: str,
        options: dict[str, Any] | MemoryQuery | None = None,
    ) -> MemorySearchResult:
        """Search memories visible to the session's backends."""
        self._check_ready()
        self.sessions.get(session_id)

        if isinstance(options, MemoryQuery):
            memory_query = replace(options, query=query)
        else:
            fields = {
                "limit": self.settings.default_search_limit,
                "threshold": self.settings.default_threshold,
                **(options or {}),
                "query": query,
            }
            memory_query = MemoryQuery.from_dict(fields)

        result = await self.dispatcher.retrieve(memory_query)
        await self.events.emit(MemoryEventType.RETRIEVE, query=memory_query, total_count=result.total_count)
        return result

    async def update(self, memory_id: str, updates: dict[str, Any], session_id: str) -> None:
        self._check_ready()
        self.sessions.get(session_id)

        backends = await self.dispatcher.update(memory_id, updates)
        await self.events.emit(MemoryEventType.UPDATE, memory_id=memory_id, updates=updates, backends=backends)

    async def delete(self, memory_id: str, session_id: str) -> None:
        self._check_ready()
        self.sessions.get(session_id)

        backends = await self.dispatcher.delete(memory_id)
        await self.events.emit(MemoryEventType.DELETE, memory_id=memory_id, backends=backends)

    # Maintenance

    async def consolidate(self, older_than: datetime | timedelta | None = None) -> ConsolidationReport:
        """Fold duplicate records on every backend.

        ``older_than`` is either an absolute horizon or an age relative to now.
        """
        self._check_ready()
        if isinstance(older_than, timedelta):
            older_than = datetime.now() - older_than

        report = await self.dispatcher.consolidate(older_than)
        await self.events.emit(MemoryEventType.CONSOLIDATE, report=report)
        return report

    async def evict_expired(self, now: datetime | None = None) -> list[str]:
        """Delete records whose ttl has elapsed."""
        self._check_ready()
        evicted = await self.dispatcher.evict_expired(now)
        if evicted:
            await self.events.emit(MemoryEventType.EVICT, memory_ids=evicted)
        return evicted
