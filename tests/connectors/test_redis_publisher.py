import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.asyncio as redis

from connectors.redis_publisher import ALL_EVENTS_STREAM, RedisEventPublisher
from models.enums import ServiceType
from models.events import RentalEvent
from utils.event_bus import EventBus


def _client() -> MagicMock:
    client = MagicMock()
    client.xadd = AsyncMock()
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


@pytest.mark.asyncio
async def test_publish_to_listing_and_all_streams():
    client = _client()
    publisher = RedisEventPublisher(client, stream_maxlen=500)
    event = RentalEvent(
        event_type="availability.invalidated",
        payload={"listing_id": "tent", "order_id": "o-1"},
        source=ServiceType.ORDERS,
    )

    await publisher.publish(event)

    assert client.xadd.await_count == 2
    streams = [call.args[0] for call in client.xadd.await_args_list]
    assert streams == [ALL_EVENTS_STREAM, "rental-events:tent"]
    fields = client.xadd.await_args_list[0].args[1]
    assert json.loads(fields["data"])["event_type"] == "availability.invalidated"
    assert client.xadd.await_args_list[0].kwargs == {"maxlen": 500, "approximate": True}


@pytest.mark.asyncio
async def test_publish_without_listing_goes_to_all_stream_only():
    client = _client()
    publisher = RedisEventPublisher(client)
    await publisher.publish(RentalEvent(event_type="order.created", payload={"order_id": "o-1"}, source=ServiceType.ORDERS))
    client.xadd.assert_awaited_once()
    assert client.xadd.await_args.args[0] == ALL_EVENTS_STREAM


@pytest.mark.asyncio
async def test_ping_failure_is_reported_not_raised(caplog):
    client = _client()
    client.ping.side_effect = redis.ConnectionError("refused")
    publisher = RedisEventPublisher(client)

    with caplog.at_level(logging.ERROR):
        assert await publisher.ping() is False
    assert "Failed to connect to Redis" in caplog.text


@pytest.mark.asyncio
async def test_attach_forwards_bus_events_until_detached():
    client = _client()
    publisher = RedisEventPublisher(client)
    bus = EventBus()

    publisher.attach(bus)
    await bus.publish(RentalEvent(event_type="order.cancelled", payload={}, source=ServiceType.ORDERS))
    publisher.detach(bus)
    await bus.publish(RentalEvent(event_type="order.cancelled", payload={}, source=ServiceType.ORDERS))

    client.xadd.assert_awaited_once()


@pytest.mark.asyncio
async def test_close():
    client = _client()
    await RedisEventPublisher(client).close()
    client.aclose.assert_awaited_once()
