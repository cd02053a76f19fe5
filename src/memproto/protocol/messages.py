"""
Protocol message envelope.

JSON-RPC 2.0 shaped request/response dicts exchanged with a transport. The
transport decides how envelopes travel; this module only maps method names to
MemoryProtocol calls and renders results or ``{code, message, data}`` errors.
"""

import json
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from memproto.core.errors import MemoryProtocolError, UnknownMethod, ValidationFailure
from memproto.core.logging import get_logger
from memproto.protocol.service import MemoryProtocol

logger = get_logger("protocol.messages")

JSONRPC_VERSION = "2.0"
ERROR_PARSE = -32700
ERROR_INTERNAL = 500

METHOD_STORE = "memory/store"
METHOD_RETRIEVE = "memory/retrieve"
METHOD_UPDATE = "memory/update"
METHOD_DELETE = "memory/delete"
METHOD_CONSOLIDATE = "memory/consolidate"
METHOD_SESSION_CREATE = "session/create"
METHOD_SESSION_CLOSE = "session/close"


def create_request(method: str, params: dict[str, Any] | None = None, request_id: Any = None) -> dict:
    """Create a request envelope."""
    message = {"jsonrpc": JSONRPC_VERSION, "method": method, "params": params or {}}
    if request_id is not None:
        message["id"] = request_id
    return message


def create_result_response(request_id: Any, result: Any) -> dict:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def create_error_response(request_id: Any, code: int, message: str, data: Any = None) -> dict:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}


def _require(params: dict[str, Any], *names: str) -> list[Any]:
    missing = [n for n in names if params.get(n) is None]
    if missing:
        raise ValidationFailure(f"Missing required params: {', '.join(missing)}")
    return [params[n] for n in names]


Handler = Callable[[dict[str, Any]], Awaitable[Any]]


class MessageHandler:
    """Routes request envelopes to a MemoryProtocol instance."""

    def __init__(self, protocol: MemoryProtocol):
        self.protocol = protocol
        self._handlers: dict[str, Handler] = {
            METHOD_STORE: self._handle_store,
            METHOD_RETRIEVE: self._handle_retrieve,
            METHOD_UPDATE: self._handle_update,
            METHOD_DELETE: self._handle_delete,
            METHOD_CONSOLIDATE: self._handle_consolidate,
            METHOD_SESSION_CREATE: self._handle_create_session,
            METHOD_SESSION_CLOSE: self._handle_close_session,
        }

    @property
    def methods(self) -> list[str]:
        return list(self._handlers)

    async def handle_message(self, message: dict[str, Any]) -> dict:
        """Process one request envelope. Never raises; errors become envelopes."""
        request_id = message.get("id") if isinstance(message, dict) else None
        try:
            if not isinstance(message, dict) or message.get("jsonrpc", JSONRPC_VERSION) != JSONRPC_VERSION:
                raise ValidationFailure("Invalid request envelope")

            method = message.get("method")
            handler = self._handlers.get(method)
            if handler is None:
                raise UnknownMethod(f"Unknown method: {method}", {"method": method})

            params = message.get("params") or {}
            if not isinstance(params, dict):
                raise ValidationFailure("params must be an object")

            result = await handler(params)
            return create_result_response(request_id, result)

        except MemoryProtocolError as e:
            logger.debug(f"Request {request_id} failed: {e.kind}: {e.message}")
            error = e.to_error()
            return create_error_response(request_id, error["code"], error["message"], error["data"])
        except Exception as e:
            logger.error(f"Unexpected error handling request {request_id}: {e}", exc_info=True)
            return create_error_response(
                request_id, ERROR_INTERNAL, f"Internal error: {e}", {"kind": "internal_error"}
            )

    async def handle_raw(self, raw: str) -> str:
        """Parse a JSON text request and return the JSON text response."""
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            response = create_error_response(None, ERROR_PARSE, f"Parse error: {e}", {"kind": "parse_error"})
        else:
            response = await self.handle_message(message)
        return json.dumps(response)

    # Method handlers

    async def _handle_store(self, params: dict[str, Any]) -> dict:
        content = params.get("content", params.get("text"))
        memory_type = params.get("type", params.get("memory_type"))
        if content is None or memory_type is None:
            raise ValidationFailure("Missing required params: content, type")
        (session_id,) = _require(params, "session_id")

        memory_id = await self.protocol.store(content, memory_type, session_id, params.get("metadata"))
        return {"memory_id": memory_id}

    async def _handle_retrieve(self, params: dict[str, Any]) -> dict:
        (session_id,) = _require(params, "session_id")
        result = await self.protocol.retrieve(params.get("query", ""), session_id, params.get("options"))
        return result.to_dict()

    async def _handle_update(self, params: dict[str, Any]) -> dict:
        memory_id, updates, session_id = _require(params, "memory_id", "updates", "session_id")
        await self.protocol.update(memory_id, updates, session_id)
        return {"success": True}

    async def _handle_delete(self, params: dict[str, Any]) -> dict:
        memory_id, session_id = _require(params, "memory_id", "session_id")
        await self.protocol.delete(memory_id, session_id)
        return {"success": True}

    async def _handle_consolidate(self, params: dict[str, Any]) -> dict:
        (session_id,) = _require(params, "session_id")
        self.protocol.sessions.get(session_id)

        older_than = params.get("older_than_seconds")
        if older_than is not None and (isinstance(older_than, bool) or not isinstance(older_than, (int, float))):
            raise ValidationFailure("older_than_seconds must be a number")
        horizon = timedelta(seconds=older_than) if older_than is not None else None
        report = await self.protocol.consolidate(horizon)
        return report.to_dict()

    async def _handle_create_session(self, params: dict[str, Any]) -> dict:
        session_id = await self.protocol.create_session(params.get("user_id"), params.get("agent_id"))
        return {"session_id": session_id}

    async def _handle_close_session(self, params: dict[str, Any]) -> dict:
        (session_id,) = _require(params, "session_id")
        await self.protocol.close_session(session_id)
        return {"success": True}
