"""Unit tests for EventJournal."""

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from wpp_console.services import EventJournal


def _stored(event_id: str, device_id: str, event_type: str) -> str:
    return json.dumps(
        {
            "id": event_id,
            "device_id": device_id,
            "event_type": event_type,
            "payload": {"type": event_type},
            "timestamp": "2024-01-25T00:00:00+00:00",
        }
    )


@pytest.fixture
def redis():
    redis = AsyncMock()
    redis.lrange = AsyncMock(
        return_value=[
            _stored("e3", "device-1", "message_update"),
            _stored("e2", "device-2", "messages.upsert"),
            _stored("e1", "device-1", "messages.upsert"),
        ]
    )
    return redis


class TestEventJournal:
    """Tests for the Redis-backed frame journal."""

    @pytest.mark.asyncio
    async def test_record_pushes_and_trims(self, redis):
        journal = EventJournal(redis)

        event_id = await journal.record("device-1", {"type": "messages.upsert", "data": {"messages": []}})

        assert event_id is not None
        key, raw = redis.lpush.call_args.args
        assert key == EventJournal.EVENTS_KEY
        stored = json.loads(raw)
        assert stored["id"] == event_id
        assert stored["event_type"] == "messages.upsert"
        redis.ltrim.assert_called_once_with(EventJournal.EVENTS_KEY, 0, EventJournal.MAX_EVENTS - 1)
        redis.expire.assert_called_once_with(EventJournal.EVENTS_KEY, EventJournal.EVENT_TTL)

    @pytest.mark.asyncio
    async def test_record_failure_is_not_raised(self, redis):
        """Test an unavailable Redis does not interrupt the stream."""
        redis.lpush.side_effect = RedisConnectionError("down")
        journal = EventJournal(redis)

        assert await journal.record("device-1", {"type": "qr"}) is None

    @pytest.mark.asyncio
    async def test_get_events_filters_and_paginates(self, redis):
        journal = EventJournal(redis)

        by_device = await journal.get_events(device_id="device-1")
        by_type = await journal.get_events(event_type="messages.upsert", limit=1, offset=1)

        assert [e["id"] for e in by_device] == ["e3", "e1"]
        assert [e["id"] for e in by_type] == ["e1"]

    @pytest.mark.asyncio
    async def test_get_event_and_count(self, redis):
        journal = EventJournal(redis)

        assert (await journal.get_event("e2"))["device_id"] == "device-2"
        assert await journal.get_event("missing") is None
        assert await journal.get_total_count(event_type="messages.upsert") == 2

    @pytest.mark.asyncio
    async def test_clear(self, redis):
        journal = EventJournal(redis)

        await journal.clear()

        redis.delete.assert_called_once_with(EventJournal.EVENTS_KEY)
