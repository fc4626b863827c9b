"""
Captured event endpoints.

- GET /events: page through events, newest first
- GET /events/search: free-text search across every stored field
- GET /events/{event_id}: one event
- DELETE /events: remove every event
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from hookcatch.api.deps import get_event_service
from hookcatch.models.event import Event, EventPage
from hookcatch.services.events import EventService, page_to_skip, total_pages

router = APIRouter()


@router.get("", response_model=EventPage)
async def list_events(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    events: EventService = Depends(get_event_service),
):
    """List stored events (supports ?page=1&limit=25)."""
    return await events.page(page, limit)


@router.get("/search")
async def search_events(
    q: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    events: EventService = Depends(get_event_service),
):
    """Case-insensitive substring search over headers, body, method, url and id."""
    page_size = events.page_size_for(limit)
    page_number = events.page_number_for(page, page_size)
    result = await events.search(q, page_to_skip(page_number, page_size), page_size)
    return {
        "query": result.query,
        "events": [e.model_dump(mode="json") for e in result.events],
        "total": result.total,
        "page": page_number,
        "limit": result.limit,
        "totalPages": total_pages(result.total, result.limit),
    }


@router.get("/{event_id}", response_model=Event)
async def get_event(event_id: str, events: EventService = Depends(get_event_service)):
    event = await events.get(event_id)
    if event is None:
        return JSONResponse(status_code=404, content={"error": "Event not found"})
    return event


@router.delete("")
async def clear_events(events: EventService = Depends(get_event_service)):
    removed = await events.clear_all()
    return {"message": "All events cleared", "eventsRemoved": removed}
