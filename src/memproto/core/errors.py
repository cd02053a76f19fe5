"""
Error taxonomy.

Every error carries a stable machine-readable ``kind``, a numeric ``code``
used in protocol error envelopes, a human-readable message and optional data.
"""

from typing import Any


class MemoryProtocolError(Exception):
    """Base error for all memory protocol failures."""

    kind = "protocol_error"
    code = 500

    def __init__(self, message: str, data: Any = None):
        super().__init__(message)
        self.message = message
        self.data = data

    def to_error(self) -> dict[str, Any]:
        """Render as an envelope error triple."""
        data: dict[str, Any] = {"kind": self.kind}
        if self.data is not None:
            data["details"] = self.data
        return {"code": self.code, "message": self.message, "data": data}


class NotFound(MemoryProtocolError):
    """A session, record or backend is absent."""

    kind = "not_found"
    code = 404


class SessionNotFound(NotFound):
    kind = "session_not_found"

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", {"session_id": session_id})
        self.session_id = session_id


class AlreadyInitialized(MemoryProtocolError):
    kind = "already_initialized"
    code = 400


class NotInitialized(MemoryProtocolError):
    kind = "not_initialized"
    code = 400


class ValidationFailure(MemoryProtocolError):
    """Malformed query, record fields or request parameters."""

    kind = "validation_failure"
    code = 400


class UnknownMethod(MemoryProtocolError):
    kind = "unknown_method"
    code = 400


class StorageFailure(MemoryProtocolError):
    """A backend operation failed.

    ``succeeded`` lists the backends that completed before the failure so
    callers can see partial multi-backend writes. Nothing is rolled back.
    """

    kind = "storage_failure"
    code = 500

    def __init__(
        self,
        message: str,
        succeeded: list[str] | None = None,
        failed: list[str] | None = None,
    ):
        self.succeeded = list(succeeded or [])
        self.failed = list(failed or [])
        super().__init__(message, {"succeeded": self.succeeded, "failed": self.failed})
