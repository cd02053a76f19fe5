"""
Memory record model.

A record is one stored fact: text content with keywords, tags and optional
embedding/relationships, metadata tracking importance and access, and the
session context captured when it was written.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from memproto.core.errors import ValidationFailure
from memproto.core.types import DEFAULT_SEARCH_LIMIT, ENGINE_THRESHOLD, SessionContext


class MemoryType(Enum):
    EPISODIC = "episodic"  # time-based events
    SEMANTIC = "semantic"  # facts
    PROCEDURAL = "procedural"  # how-to knowledge
    WORKING = "working"  # short-term active memory
    ARCHIVAL = "archival"  # long-term storage


class StorageTier(Enum):
    MAIN_CONTEXT = "main_context"
    EXTERNAL_CONTEXT = "external_context"
    VECTOR_STORE = "vector_store"
    GRAPH_STORE = "graph_store"
    TEMPORAL_STORE = "temporal_store"


class RelationshipType(Enum):
    REFERENCES = "references"
    CAUSED_BY = "caused_by"
    LEADS_TO = "leads_to"
    SIMILAR_TO = "similar_to"
    PART_OF = "part_of"
    CONTRADICTS = "contradicts"
    SUPPORTS = "supports"


def clamp_unit(value: float) -> float:
    """Clamp a score into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


def parse_enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    """Coerce a value into an enum member, raising ValidationFailure."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationFailure(f"Invalid {field_name}: {value!r} (expected one of {allowed})") from None


def check_unit(value: Any, field_name: str) -> float:
    """Validate a caller-supplied score lies in [0, 1]."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationFailure(f"{field_name} must be a number, got {value!r}")
    if not 0.0 <= value <= 1.0:
        raise ValidationFailure(f"{field_name} must be within [0, 1], got {value}")
    return float(value)


def parse_datetime(value: Any, field_name: str) -> datetime:
    """Parse an ISO timestamp into naive local time, the form records are stamped in."""
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(value)
        except (TypeError, ValueError):
            raise ValidationFailure(f"Invalid timestamp for {field_name}: {value!r}") from None
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


def extract_keywords(text: str, limit: int = 10) -> list[str]:
    """Naive keyword extraction: lower-cased words longer than 3 characters."""
    return [word for word in text.lower().split() if len(word) > 3][:limit]


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


@dataclass
class MemoryRelationship:
    """Directed edge to another record."""

    type: RelationshipType
    target_id: str
    strength: float = 1.0
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "target_id": self.target_id,
            "strength": self.strength,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryRelationship":
        return cls(
            type=parse_enum(RelationshipType, data.get("type"), "relationship type"),
            target_id=str(data["target_id"]),
            strength=check_unit(data.get("strength", 1.0), "strength"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class MemoryContent:
    text: str
    keywords: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)  # set semantics, order kept
    embedding: list[float] | None = None
    embedding_model: str | None = None
    relationships: list[MemoryRelationship] = field(default_factory=list)

    def __post_init__(self):
        self.tags = _unique(self.tags)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "keywords": list(self.keywords),
            "tags": list(self.tags),
            "embedding": list(self.embedding) if self.embedding is not None else None,
            "embedding_model": self.embedding_model,
            "relationships": [r.to_dict() for r in self.relationships],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryContent":
        if not isinstance(data.get("text"), str):
            raise ValidationFailure("content.text must be a string")
        keywords = data.get("keywords")
        return cls(
            text=data["text"],
            keywords=list(keywords) if keywords is not None else extract_keywords(data["text"]),
            tags=list(data.get("tags") or []),
            embedding=list(data["embedding"]) if data.get("embedding") is not None else None,
            embedding_model=data.get("embedding_model"),
            relationships=[MemoryRelationship.from_dict(r) for r in data.get("relationships") or []],
        )


# Named metadata fields; anything else a caller supplies lands in ``extra``.
METADATA_FIELDS = (
    "source",
    "confidence",
    "importance",
    "access_count",
    "created",
    "updated",
    "last_accessed",
    "storage_tier",
)


@dataclass
class MemoryMetadata:
    source: str = "user"
    confidence: float = 1.0
    importance: float = 0.5
    access_count: int = 0
    created: datetime = field(default_factory=datetime.now)
    updated: datetime = field(default_factory=datetime.now)
    last_accessed: datetime = field(default_factory=datetime.now)
    storage_tier: StorageTier = StorageTier.MAIN_CONTEXT
    extra: dict[str, Any] = field(default_factory=dict)

    def lookup(self, key: str) -> Any:
        """Value used by metadata equality filters (enums compare by value)."""
        if key in METADATA_FIELDS:
            value = getattr(self, key)
            return value.value if isinstance(value, Enum) else value
        return self.extra.get(key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "confidence": self.confidence,
            "importance": self.importance,
            "access_count": self.access_count,
            "created": self.created.isoformat(),
            "updated": self.updated.isoformat(),
            "last_accessed": self.last_accessed.isoformat(),
            "storage_tier": self.storage_tier.value,
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryMetadata":
        now = datetime.now()
        return cls(
            source=data.get("source", "user"),
            confidence=clamp_unit(data.get("confidence", 1.0)),
            importance=clamp_unit(data.get("importance", 0.5)),
            access_count=max(0, int(data.get("access_count", 0))),
            created=parse_datetime(data["created"], "created") if data.get("created") else now,
            updated=parse_datetime(data["updated"], "updated") if data.get("updated") else now,
            last_accessed=(
                parse_datetime(data["last_accessed"], "last_accessed") if data.get("last_accessed") else now
            ),
            storage_tier=parse_enum(StorageTier, data.get("storage_tier", "main_context"), "storage tier"),
            extra=dict(data.get("extra") or {}),
        )


@dataclass
class MemoryRecord:
    """Single stored fact."""

    id: str
    memory_type: MemoryType
    content: MemoryContent
    metadata: MemoryMetadata = field(default_factory=MemoryMetadata)
    context: SessionContext | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    ttl: int | None = None  # seconds from creation; enforced only by eviction sweeps

    @property
    def text(self) -> str:
        return self.content.text

    def copy(self) -> "MemoryRecord":
        return copy.deepcopy(self)

    def is_expired(self, now: datetime) -> bool:
        if self.ttl is None or self.ttl < 0:
            return False
        return (now - self.timestamp).total_seconds() > self.ttl

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "memory_type": self.memory_type.value,
            "content": self.content.to_dict(),
            "metadata": self.metadata.to_dict(),
            "context": self.context.to_dict() if self.context else None,
            "timestamp": self.timestamp.isoformat(),
            "ttl": self.ttl,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryRecord":
        return cls(
            id=data["id"],
            memory_type=parse_enum(MemoryType, data["memory_type"], "memory type"),
            content=MemoryContent.from_dict(data["content"]),
            metadata=MemoryMetadata.from_dict(data.get("metadata") or {}),
            context=SessionContext.from_dict(data["context"]) if data.get("context") else None,
            timestamp=parse_datetime(data["timestamp"], "timestamp") if data.get("timestamp") else datetime.now(),
            ttl=data.get("ttl"),
        )


# Partial updates


UPDATABLE_FIELDS = ("content", "metadata", "context", "ttl")


def normalize_updates(updates: dict[str, Any]) -> dict[str, Any]:
    """Validate a partial record and coerce it into typed values.

    Nested content and context replace the stored objects wholesale; metadata
    is kept as a key-by-key dict for merging. Raises ValidationFailure on
    malformed input.
    """
    if not isinstance(updates, dict):
        raise ValidationFailure("Updates must be a mapping of record fields")

    normalized: dict[str, Any] = {}
    for key, value in updates.items():
        if key in ("id", "memory_type"):
            raise ValidationFailure(f"{key} is fixed at creation")
        elif key == "content":
            normalized[key] = value if isinstance(value, MemoryContent) else MemoryContent.from_dict(value)
        elif key == "context":
            if value is None or isinstance(value, SessionContext):
                normalized[key] = value
            else:
                normalized[key] = SessionContext.from_dict(value)
        elif key == "ttl":
            if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                raise ValidationFailure(f"ttl must be an integer number of seconds, got {value!r}")
            normalized[key] = value
        elif key == "metadata":
            normalized[key] = _normalize_metadata(value)
        else:
            raise ValidationFailure(f"Unknown record field: {key}")
    return normalized


def _normalize_metadata(value: Any) -> dict[str, Any]:
    if isinstance(value, MemoryMetadata):
        value = {k: getattr(value, k) for k in METADATA_FIELDS if k != "created"}
        value.update({"extra": {}})
    if not isinstance(value, dict):
        raise ValidationFailure("metadata must be a mapping")

    fields: dict[str, Any] = {}
    for key, item in value.items():
        if key in ("importance", "confidence"):
            fields[key] = check_unit(item, key)
        elif key == "access_count":
            if isinstance(item, bool) or not isinstance(item, int) or item < 0:
                raise ValidationFailure(f"access_count must be a non-negative integer, got {item!r}")
            fields[key] = item
        elif key == "storage_tier":
            fields[key] = parse_enum(StorageTier, item, "storage tier")
        elif key in ("updated", "last_accessed"):
            fields[key] = parse_datetime(item, key)
        elif key == "created":
            raise ValidationFailure("metadata.created is immutable")
        elif key == "source":
            fields[key] = str(item)
        elif key == "extra":
            if not isinstance(item, dict):
                raise ValidationFailure("metadata.extra must be a mapping")
            fields.setdefault("extra", {}).update(item)
        else:
            fields.setdefault("extra", {})[key] = item
    return fields


def apply_updates(record: MemoryRecord, updates: dict[str, Any], now: datetime | None = None) -> MemoryRecord:
    """Return a copy of ``record`` with normalized updates merged in."""
    now = now or datetime.now()

    updated = record.copy()
    if "content" in updates:
        updated.content = copy.deepcopy(updates["content"])
    if "context" in updates:
        updated.context = copy.deepcopy(updates["context"])
    if "ttl" in updates:
        updated.ttl = updates["ttl"]

    meta = updated.metadata
    for key, value in updates.get("metadata", {}).items():
        if key == "extra":
            meta.extra.update(copy.deepcopy(value))
        elif key == "access_count":
            meta.access_count = max(meta.access_count, value)
        elif key == "last_accessed":
            meta.last_accessed = max(value, meta.created)
        else:
            setattr(meta, key, value)

    meta.updated = max(now, meta.created)
    return updated


# Queries and results


@dataclass
class TimeRange:
    start: datetime | None = None
    end: datetime | None = None

    def __post_init__(self):
        if self.start is not None:
            self.start = parse_datetime(self.start, "time_range.start")
        if self.end is not None:
            self.end = parse_datetime(self.end, "time_range.end")

    def contains(self, when: datetime) -> bool:
        if self.start is not None and when < self.start:
            return False
        if self.end is not None and when > self.end:
            return False
        return True


@dataclass
class MemoryQuery:
    """Transient search request."""

    query: str = ""
    id: str | None = None
    memory_types: list[MemoryType] | None = None
    storage_tiers: list[StorageTier] | None = None
    time_range: TimeRange | None = None
    filters: dict[str, Any] | None = None
    limit: int = DEFAULT_SEARCH_LIMIT
    offset: int = 0
    threshold: float = ENGINE_THRESHOLD

    def __post_init__(self):
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 0:
            raise ValidationFailure(f"limit must be a non-negative integer, got {self.limit!r}")
        if isinstance(self.offset, bool) or not isinstance(self.offset, int) or self.offset < 0:
            raise ValidationFailure(f"offset must be a non-negative integer, got {self.offset!r}")
        if isinstance(self.threshold, bool) or not isinstance(self.threshold, (int, float)):
            raise ValidationFailure(f"threshold must be a number, got {self.threshold!r}")
        if not isinstance(self.query, str):
            raise ValidationFailure("query must be a string")

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "id": self.id,
            "memory_types": [t.value for t in self.memory_types] if self.memory_types else None,
            "storage_tiers": [t.value for t in self.storage_tiers] if self.storage_tiers else None,
            "time_range": (
                {
                    "start": self.time_range.start.isoformat() if self.time_range.start else None,
                    "end": self.time_range.end.isoformat() if self.time_range.end else None,
                }
                if self.time_range
                else None
            ),
            "filters": (
                {k: v.value if isinstance(v, Enum) else v for k, v in self.filters.items()}
                if self.filters
                else None
            ),
            "limit": self.limit,
            "offset": self.offset,
            "threshold": self.threshold,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryQuery":
        time_range = None
        if isinstance(data.get("time_range"), TimeRange):
            time_range = data["time_range"]
        elif data.get("time_range"):
            raw = data["time_range"]
            if not isinstance(raw, dict):
                raise ValidationFailure("time_range must be a mapping with start and/or end")
            time_range = TimeRange(
                start=raw.get("start") or None,
                end=raw.get("end") or None,
            )
        return cls(
            query=data.get("query", ""),
            id=data.get("id"),
            memory_types=(
                [parse_enum(MemoryType, t, "memory type") for t in data["memory_types"]]
                if data.get("memory_types")
                else None
            ),
            storage_tiers=(
                [parse_enum(StorageTier, t, "storage tier") for t in data["storage_tiers"]]
                if data.get("storage_tiers")
                else None
            ),
            time_range=time_range,
            filters=dict(data["filters"]) if data.get("filters") else None,
            limit=data.get("limit", DEFAULT_SEARCH_LIMIT),
            offset=data.get("offset", 0),
            threshold=data.get("threshold", ENGINE_THRESHOLD),
        )


@dataclass
class ScoredRecord:
    record: MemoryRecord
    score: float | None = None  # None for exact-id lookups


@dataclass
class MemorySearchResult:
    memories: list[MemoryRecord]
    total_count: int
    query: MemoryQuery
    search_time: float = 0.0  # milliseconds
    scores: dict[str, float] = field(default_factory=dict)

    @property
    def ids(self) -> list[str]:
        return [m.id for m in self.memories]

    def to_dict(self) -> dict[str, Any]:
        return {
            "memories": [m.to_dict() for m in self.memories],
            "total_count": self.total_count,
            "query": self.query.to_dict(),
            "search_time": self.search_time,
            "scores": dict(self.scores),
        }
