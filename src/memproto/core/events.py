"""Event bus - explicit observer channel for memory and session notifications."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from memproto.core.logging import get_logger
from memproto.core.types import MemoryEventType

logger = get_logger("core.events")


@dataclass
class MemoryEvent:
    """Notification delivered to subscribers."""

    type: MemoryEventType
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)


Listener = Callable[[MemoryEvent], Any]


class EventBus:
    """Subscription registry decoupled from the operation call path.

    Listener failures are logged and never change the outcome of the
    operation that emitted the event.
    """

    def __init__(self):
        self._listeners: dict[MemoryEventType | None, list[Listener]] = {}

    def subscribe(self, listener: Listener, event_type: MemoryEventType | None = None) -> None:
        """Subscribe to one event type, or to every event when type is None."""
        self._listeners.setdefault(event_type, []).append(listener)

    def unsubscribe(self, listener: Listener, event_type: MemoryEventType | None = None) -> bool:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)
            return True
        return False

    async def emit(self, event_type: MemoryEventType, **payload: Any) -> MemoryEvent:
        """Deliver an event to its type subscribers and wildcard subscribers."""
        event = MemoryEvent(type=event_type, payload=payload)
        targets = self._listeners.get(event_type, []) + self._listeners.get(None, [])

        for listener in list(targets):
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"Listener failed for {event_type.value}: {e}")

        return event
