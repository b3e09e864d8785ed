"""In-memory event bus satisfying the IEventBus protocol.

Carries registry, runtime, router and workflow events to observers inside
one process. Components receive the bus by injection; there is no shared
emitter base class. A bounded history of published events is kept for
inspection.
"""

import inspect
import itertools
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from agenthub.interfaces.event_bus import EventHandler, EventType

logger = logging.getLogger(__name__)


class InMemoryEventBus:
    """Async publish/subscribe channel for single-process use.

    Handlers may be plain functions or coroutine functions and run in
    subscription order. A failing handler is logged and delivery continues.
    """

    def __init__(self, history_size: int = 200) -> None:
        self._handlers: Dict[EventType, Dict[str, EventHandler]] = {}
        self._history: Deque[Dict[str, Any]] = deque(maxlen=history_size)
        self._ids = itertools.count(1)

    async def publish(
        self,
        event_type: EventType,
        data: Dict[str, Any],
        source: Optional[str] = None,
    ) -> None:
        event = dict(data)
        if source:
            event["_source"] = source
        self._history.append({"event_type": event_type.value, "data": event})

        for sub_id, handler in list(self._handlers.get(event_type, {}).items()):
            try:
                outcome = handler(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception(f"Subscriber {sub_id} failed on {event_type.value}")

    async def subscribe(self, event_type: EventType, handler: EventHandler) -> str:
        sub_id = f"sub_{next(self._ids)}"
        self._handlers.setdefault(event_type, {})[sub_id] = handler
        logger.debug(f"{sub_id} subscribed to {event_type.value}")
        return sub_id

    async def unsubscribe(self, subscription_id: str) -> None:
        for handlers in self._handlers.values():
            if handlers.pop(subscription_id, None) is not None:
                return

    def recent_events(self, event_type: Optional[EventType] = None) -> List[Dict[str, Any]]:
        """Published events, oldest first, optionally filtered by type."""
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e["event_type"] == event_type.value]

    def subscriber_count(self, event_type: EventType) -> int:
        return len(self._handlers.get(event_type, {}))
