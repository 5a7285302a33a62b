"""Debug endpoints for inspecting journaled event stream frames."""

from typing import Any

from fastapi import APIRouter, Query

from wpp_console.api.deps import Journal
from wpp_console.core.exceptions import NotFoundError
from wpp_console.schemas import PaginatedResponse

router = APIRouter(prefix="/debug", tags=["debug"])


@router.get("/events", response_model=PaginatedResponse[dict[str, Any]])
async def list_stream_events(
    journal: Journal,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    device_id: str | None = None,
    event_type: str | None = Query(None, description="Frame type, e.g. messages.upsert"),
):
    """List recent event stream frames, newest first."""
    items = await journal.get_events(limit=limit, offset=skip, device_id=device_id, event_type=event_type)
    total = await journal.get_total_count(device_id=device_id, event_type=event_type)
    return PaginatedResponse(items=items, total=total, skip=skip, limit=limit)


@router.get("/events/{event_id}")
async def get_stream_event(event_id: str, journal: Journal):
    """Get a single journaled frame."""
    event = await journal.get_event(event_id)
    if event is None:
        raise NotFoundError("Event", event_id)
    return event


@router.delete("/events")
async def clear_stream_events(journal: Journal):
    """Drop every journaled frame."""
    await journal.clear()
    return {"status": "cleared"}
