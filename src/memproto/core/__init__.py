"""
Core module - configuration, sessions and shared types.

Components:
- config: Settings management via pydantic-settings
- types: Session context and protocol constants
- errors: Error taxonomy
- session: Session manager
- events: Observer bus for memory and session notifications
- logging: Structured logging setup
"""

from memproto.core.errors import (
    AlreadyInitialized,
    MemoryProtocolError,
    NotFound,
    NotInitialized,
    SessionNotFound,
    StorageFailure,
    ValidationFailure,
)
from memproto.core.types import MemoryEventType, SessionContext

__all__ = [
    "AlreadyInitialized",
    "MemoryEventType",
    "MemoryProtocolError",
    "NotFound",
    "NotInitialized",
    "SessionContext",
    "SessionNotFound",
    "StorageFailure",
    "ValidationFailure",
]
