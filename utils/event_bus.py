"""
Simple asynchronous event bus for rental domain events.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from models.events import RentalEvent

logger_event_bus = logging.getLogger(__name__)

EventHandler = Callable[[RentalEvent], Coroutine[Any, Any, None]]


class EventBus:
    """In-process pub/sub. Handler failures are logged, never raised to the publisher."""

    def __init__(self):
        self.subscribers: dict[str, list[EventHandler]] = {}

    def subscribe(self, event_type: str, callback: EventHandler) -> None:
        """Subscribe to an event type. ``"*"`` receives every event."""
        if not callable(callback):
            raise TypeError("Callback must be a callable async function.")
        handlers = self.subscribers.setdefault(event_type, [])
        if callback not in handlers:
            handlers.append(callback)
            logger_event_bus.debug(f"Callback {_name(callback)} subscribed to {event_type}")
        else:
            logger_event_bus.warning(f"Callback {_name(callback)} already subscribed to {event_type}")

    def unsubscribe(self, event_type: str, callback: EventHandler) -> None:
        """Unsubscribe a specific callback from an event type."""
        if event_type in self.subscribers:
            try:
                self.subscribers[event_type].remove(callback)
                logger_event_bus.debug(f"Callback {_name(callback)} unsubscribed from {event_type}")
                if not self.subscribers[event_type]:
                    del self.subscribers[event_type]
            except ValueError:
                logger_event_bus.warning(f"Callback {_name(callback)} not found for event type {event_type}")

    async def publish(self, event: RentalEvent) -> None:
        """Publish an event to its subscribers and to wildcard subscribers."""
        if not isinstance(event, RentalEvent):
            logger_event_bus.error(f"Attempted to publish invalid event type: {type(event)}")
            return

        logger_event_bus.info(f"Event published: {event.event_type} from {event.source.value}")
        handlers = list(self.subscribers.get(event.event_type, [])) + [
            handler for handler in self.subscribers.get("*", []) if handler not in self.subscribers.get(event.event_type, [])
        ]
        if not handlers:
            return
        results = await asyncio.gather(*(handler(event) for handler in handlers), return_exceptions=True)
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger_event_bus.error(
                    f"Error in subscriber callback '{_name(handler)}' for event {event.event_type}: {result}"
                )


def _name(callback: Any) -> str:
    return getattr(callback, "__name__", repr(callback))
