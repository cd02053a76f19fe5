"""Session manager - owns session contexts that scope every memory call."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from memproto.core.errors import SessionNotFound
from memproto.core.events import EventBus
from memproto.core.logging import get_logger
from memproto.core.types import MemoryEventType, SessionContext

if TYPE_CHECKING:
    from memproto.memory.dispatcher import BackendDispatcher

logger = get_logger("core.session")


class SessionManager:
    """Creates, tracks and closes session contexts."""

    def __init__(
        self,
        events: EventBus | None = None,
        dispatcher: "BackendDispatcher | None" = None,
    ):
        self._sessions: dict[str, SessionContext] = {}
        self.events = events or EventBus()
        self.dispatcher = dispatcher

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    async def create_session(self, user_id: str | None = None, agent_id: str | None = None) -> str:
        """Allocate a fresh session context and return its id."""
        session_id = str(uuid4())
        context = SessionContext(
            session_id=session_id,
            user_id=user_id,
            agent_id=agent_id,
            timestamp=datetime.now(),
            memory_id=str(uuid4()),
        )
        self._sessions[session_id] = context
        logger.info(f"Session created: {session_id} (user={user_id}, agent={agent_id})")

        await self.events.emit(MemoryEventType.SESSION_CREATED, session_id=session_id, context=context)
        return session_id

    async def close_session(self, session_id: str) -> None:
        """Close a session. Records created under it are kept."""
        context = self._sessions.pop(session_id, None)
        if context is None:
            raise SessionNotFound(session_id)
        logger.info(f"Session closed: {session_id}")

        await self.events.emit(MemoryEventType.SESSION_CLOSED, session_id=session_id, context=context)

    def get(self, session_id: str) -> SessionContext:
        """Get session context or raise SessionNotFound."""
        context = self._sessions.get(session_id)
        if context is None:
            raise SessionNotFound(session_id)
        return context

    def update_state(self, session_id: str, state: dict[str, str]) -> SessionContext:
        """Merge caller correlation state into the session context."""
        context = self.get(session_id)
        context.state.update({str(k): str(v) for k, v in state.items()})
        return context

    async def close_all(self) -> int:
        """Close every open session, returning how many were closed."""
        closed = 0
        for session_id in list(self._sessions):
            await self.close_session(session_id)
            closed += 1
        return closed

    async def shutdown(self) -> None:
        """Close every session, then every backend behind the dispatcher."""
        closed = await self.close_all()
        if self.dispatcher is not None:
            await self.dispatcher.close_all()
        logger.info(f"Session manager shut down ({closed} sessions closed)")
