"""Common API dependencies."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from redis.asyncio import Redis

from wpp_console.config import settings
from wpp_console.services import ConsoleRegistry, ConsoleSession, EventJournal


async def get_redis() -> AsyncGenerator[Redis, None]:
    """Dependency for getting async Redis client."""
    redis = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        yield redis
    finally:
        await redis.aclose()


def get_journal(redis: Annotated[Redis, Depends(get_redis)]) -> EventJournal:
    """Dependency for the event stream journal."""
    return EventJournal(redis)


def get_registry(request: Request) -> ConsoleRegistry:
    """Dependency for the application's console registry."""
    return request.app.state.registry


def get_console(
    device_id: str,
    registry: Annotated[ConsoleRegistry, Depends(get_registry)],
) -> ConsoleSession:
    """Dependency for the console session mounted on ``device_id``."""
    return registry.get(device_id)


# Type aliases for cleaner route signatures
Registry = Annotated[ConsoleRegistry, Depends(get_registry)]
Console = Annotated[ConsoleSession, Depends(get_console)]
Journal = Annotated[EventJournal, Depends(get_journal)]
