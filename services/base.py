"""
Base class for rental core services.
"""

import logging
from typing import Any

from models.enums import ServiceType
from models.events import RentalEvent
from utils.event_bus import EventBus

logger_base = logging.getLogger(__name__)


class BaseService:
    """Base class for services that publish domain events."""

    def __init__(self, service_type: ServiceType, event_bus: EventBus | None = None):
        self.service_type = service_type
        self.event_bus = event_bus

    async def publish_event(self, event_type: str, payload: dict[str, Any]) -> None:
        """Publish an event to the event bus, if one is attached."""
        if self.event_bus is None:
            logger_base.debug(f"{self.service_type.value} service has no event bus, dropping {event_type}")
            return
        event = RentalEvent(event_type=event_type, payload=payload, source=self.service_type)
        await self.event_bus.publish(event)
