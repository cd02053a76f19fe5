"""
Configuration management.

Loads settings from environment variables and .env file.
Prefix: MEMPROTO_
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from memproto.core.types import DEFAULT_SEARCH_LIMIT, DEFAULT_SIMILARITY_THRESHOLD, DEFAULT_TTL
from memproto.memory.base import MemoryType, StorageTier


class BackendSpec(BaseModel):
    """Startup registration of one storage backend."""

    name: str
    backend: str = Field(default="in-memory", description="Backend kind: in-memory | sqlite")
    tier: StorageTier = StorageTier.MAIN_CONTEXT
    priority: int = Field(default=1, description="Lower numbers are written first")
    options: dict[str, Any] = Field(default_factory=dict)


def default_backends() -> list[BackendSpec]:
    return [BackendSpec(name="in-memory", backend="in-memory", tier=StorageTier.MAIN_CONTEXT, priority=1)]


def default_tier_policy() -> dict[MemoryType, list[StorageTier]]:
    """Eligible tiers per memory type, in preference order."""
    return {
        MemoryType.WORKING: [StorageTier.MAIN_CONTEXT],
        MemoryType.EPISODIC: [StorageTier.MAIN_CONTEXT, StorageTier.VECTOR_STORE],
        MemoryType.SEMANTIC: [StorageTier.MAIN_CONTEXT, StorageTier.VECTOR_STORE],
        MemoryType.PROCEDURAL: [StorageTier.MAIN_CONTEXT, StorageTier.VECTOR_STORE],
        MemoryType.ARCHIVAL: [
            StorageTier.EXTERNAL_CONTEXT,
            StorageTier.MAIN_CONTEXT,
            StorageTier.VECTOR_STORE,
            StorageTier.GRAPH_STORE,
            StorageTier.TEMPORAL_STORE,
        ],
    }


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MEMPROTO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    data_dir: Path = Field(default=Path("data"), description="Directory for durable backends")
    backends: list[BackendSpec] = Field(default_factory=default_backends)
    backends_file: Path | None = Field(default=None, description="YAML file listing backends")
    tier_policy: dict[MemoryType, list[StorageTier]] = Field(default_factory=default_tier_policy)

    # Retrieval
    default_search_limit: int = Field(default=DEFAULT_SEARCH_LIMIT, description="Page size when unset")
    default_threshold: float = Field(default=DEFAULT_SIMILARITY_THRESHOLD, description="Query score threshold")

    # Records
    default_ttl: int | None = Field(default=DEFAULT_TTL, description="Seconds to live, recorded on every record")
    operation_timeout: float | None = Field(default=None, description="Per-backend call deadline in seconds")

    # Consolidation
    consolidation_enabled: bool = Field(default=False)
    consolidation_interval: float = Field(default=3600.0, description="Seconds between consolidation runs")
    consolidation_horizon: float = Field(default=0.0, description="Only consolidate records older than this")
    eviction_enabled: bool = Field(default=False, description="Delete records whose ttl elapsed")

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Path | None = Field(default=None)


def get_settings() -> Settings:
    """Get settings instance."""
    return Settings()
