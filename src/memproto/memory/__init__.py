"""
Memory module - tiered record storage.

Tiers:
- main_context: in-process working set
- external_context: durable store (SQLite)
- vector_store / graph_store / temporal_store: pluggable backends

Every backend shares one retrieval contract: lexical scoring, filtering,
sorting, pagination and access tracking.
"""

from memproto.memory.base import (
    MemoryContent,
    MemoryMetadata,
    MemoryQuery,
    MemoryRecord,
    MemorySearchResult,
    MemoryType,
    StorageTier,
    TimeRange,
)

__all__ = [
    "MemoryContent",
    "MemoryMetadata",
    "MemoryQuery",
    "MemoryRecord",
    "MemorySearchResult",
    "MemoryType",
    "StorageTier",
    "TimeRange",
]
