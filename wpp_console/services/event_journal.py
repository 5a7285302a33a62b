"""Event stream journal for debugging - keeps recent frames in Redis."""

import json
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class EventJournal:
    """Record raw event stream frames in a capped Redis list."""

    EVENTS_KEY = "console_stream_events"
    MAX_EVENTS = 500  # Keep last 500 frames
    EVENT_TTL = 86400  # 24 hours

    def __init__(self, redis: Redis):
        self.redis = redis

    async def record(self, device_id: str, frame: dict[str, Any]) -> str | None:
        """Record a received frame, return its journal ID.

        Journal failures are logged and never interrupt the stream.
        """
        event_id = str(uuid4())
        event = {
            "id": event_id,
            "device_id": device_id,
            "event_type": frame.get("type") or frame.get("event") or "unknown",
            "payload": frame,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        try:
            await self.redis.lpush(self.EVENTS_KEY, json.dumps(event, default=str))
            await self.redis.ltrim(self.EVENTS_KEY, 0, self.MAX_EVENTS - 1)
            await self.redis.expire(self.EVENTS_KEY, self.EVENT_TTL)
        except RedisError as e:
            logger.warning(f"Failed to journal {event['event_type']} frame: {e}")
            return None

        return event_id

    async def _load(
        self, device_id: str | None = None, event_type: str | None = None
    ) -> list[dict[str, Any]]:
        raw_events = await self.redis.lrange(self.EVENTS_KEY, 0, -1)
        events = [json.loads(e) for e in raw_events]

        if device_id:
            events = [e for e in events if e["device_id"] == device_id]
        if event_type:
            events = [e for e in events if e["event_type"] == event_type]
        return events

    async def get_events(
        self,
        limit: int = 50,
        offset: int = 0,
        device_id: str | None = None,
        event_type: str | None = None,
    ) -> list[dict[str, Any]]:
        """Get recent frames, newest first, with optional filtering."""
        events = await self._load(device_id, event_type)
        return events[offset : offset + limit]

    async def get_event(self, event_id: str) -> dict[str, Any] | None:
        """Get single frame by journal ID."""
        for event in await self._load():
            if event["id"] == event_id:
                return event
        return None

    async def get_total_count(
        self, device_id: str | None = None, event_type: str | None = None
    ) -> int:
        """Get total count of journaled frames with optional filtering."""
        return len(await self._load(device_id, event_type))

    async def clear(self) -> None:
        """Clear all journaled frames."""
        await self.redis.delete(self.EVENTS_KEY)
