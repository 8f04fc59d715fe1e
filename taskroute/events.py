"""Router event emitter.

Publishes structured events for every observable router operation:
decisions, completions, history updates, rule changes and cache
clears. Listeners decouple the engine from any particular transport
(audit store, logging, a websocket relay).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Events kept in memory for late listeners
_HISTORY_LIMIT = 1_000


class EventType(StrEnum):
    """Types of events emitted by the router."""

    ROUTE_DECIDED = "route_decided"
    ROUTE_COMPLETED = "route_completed"
    PERFORMANCE_UPDATED = "performance_updated"
    RULE_ADDED = "rule_added"
    RULE_REMOVED = "rule_removed"
    CACHE_CLEARED = "cache_cleared"


class RouterEvent(BaseModel):
    """A single router event."""

    type: EventType = Field(description="Event type")
    timestamp: float = Field(
        default_factory=time.time,
        description="Unix timestamp when the event occurred",
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event payload, varies by event type",
    )


# Type alias for event listener callbacks
EventListener = Callable[[RouterEvent], Any]


class RouterEventEmitter:
    """Broadcasts router events to registered listeners.

    Listeners can be sync or async callables. Sync listeners run inline.
    Async listeners are scheduled on the running event loop, or run to
    completion when no loop is running. Listener exceptions are logged
    but never propagate into the router.
    """

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []
        self._history: deque[RouterEvent] = deque(maxlen=_HISTORY_LIMIT)
        self._pending: set[asyncio.Task[Any]] = set()

    @property
    def history(self) -> list[RouterEvent]:
        """Most recent events emitted so far."""
        return list(self._history)

    def add_listener(self, listener: EventListener) -> None:
        """Register a listener to receive router events."""
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        """Remove a previously registered listener."""
        self._listeners = [ln for ln in self._listeners if ln != listener]

    def emit(self, event_type: EventType, **data: Any) -> RouterEvent:
        """Emit an event to all registered listeners and return it."""
        event = RouterEvent(type=event_type, data=data)
        self._history.append(event)

        for listener in self._listeners:
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    self._schedule(result, event_type)
            except Exception:
                logger.exception("Event listener error for %s", event_type)
        return event

    async def drain(self) -> None:
        """Wait for every scheduled async listener to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, coro: Any, event_type: EventType) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(coro)
            return

        task = loop.create_task(coro)
        self._pending.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._pending.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    "Event listener error for %s",
                    event_type,
                    exc_info=t.exception(),
                )

        task.add_done_callback(_done)
