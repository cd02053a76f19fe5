"""
Shared type definitions.

Session context and protocol constants used across modules.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

PROTOCOL_VERSION = "1.0.0"
DEFAULT_SEARCH_LIMIT = 10
DEFAULT_SIMILARITY_THRESHOLD = 0.7  # protocol-facing default
ENGINE_THRESHOLD = 0.5  # retrieval engine fallback
DEFAULT_TTL = 86400  # 24 hours in seconds


class MemoryEventType(Enum):
    STORE = "store"
    RETRIEVE = "retrieve"
    UPDATE = "update"
    DELETE = "delete"
    CONSOLIDATE = "consolidate"
    EVICT = "evict"
    SESSION_CREATED = "session_created"
    SESSION_CLOSED = "session_closed"
    INITIALIZED = "initialized"
    SHUTDOWN = "shutdown"


@dataclass
class SessionContext:
    """Correlation handle scoping one caller's interaction stream."""

    session_id: str
    user_id: str | None = None
    agent_id: str | None = None
    state: dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    version: str = PROTOCOL_VERSION
    flags: str = ""
    memory_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "agent_id": self.agent_id,
            "state": dict(self.state),
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
            "flags": self.flags,
            "memory_id": self.memory_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionContext":
        return cls(
            session_id=data["session_id"],
            user_id=data.get("user_id"),
            agent_id=data.get("agent_id"),
            state={str(k): str(v) for k, v in (data.get("state") or {}).items()},
            timestamp=datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else datetime.now(),
            version=data.get("version", PROTOCOL_VERSION),
            flags=data.get("flags", ""),
            memory_id=data.get("memory_id", ""),
        )
