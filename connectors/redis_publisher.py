"""
Module: connectors.redis_publisher

Forwards rental events from the in-process EventBus to Redis streams, so that
other processes (web frontends, read caches) learn when availability changes.
"""

import json
import logging

import redis.asyncio as redis

from models.events import RentalEvent
from utils.event_bus import EventBus

logger = logging.getLogger(__name__)

ALL_EVENTS_STREAM = "rental-events:all"


class RedisEventPublisher:
    """Publishes every bus event to ``rental-events:all`` and, when the payload
    names a listing, to ``rental-events:{listing_id}``."""

    def __init__(self, client: redis.Redis, stream_maxlen: int = 10_000):
        self.client = client
        self.stream_maxlen = stream_maxlen

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisEventPublisher":
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    async def ping(self) -> bool:
        """Verify the connection. Returns False instead of raising so callers can degrade."""
        try:
            await self.client.ping()
            return True
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}. Event publishing disabled.")
            return False

    def attach(self, event_bus: EventBus) -> None:
        event_bus.subscribe("*", self.publish)

    def detach(self, event_bus: EventBus) -> None:
        event_bus.unsubscribe("*", self.publish)

    async def publish(self, event: RentalEvent) -> None:
        """Publish an event to its Redis streams."""
        data = {"data": json.dumps(event.model_dump(mode="json"))}
        streams = [ALL_EVENTS_STREAM]
        listing_id = event.payload.get("listing_id")
        if listing_id:
            streams.append(f"rental-events:{listing_id}")
        for stream in streams:
            await self.client.xadd(stream, data, maxlen=self.stream_maxlen, approximate=True)
        logger.debug(f"Published {event.event_type} event {event.event_id} to {streams}")

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis connection closed.")
