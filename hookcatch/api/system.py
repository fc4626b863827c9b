"""
Maintenance and service endpoints.

- GET /: service index with event count
- GET /health: liveness
- GET /metrics: Prometheus text
- GET /api/stats: store statistics
- DELETE /api/events/old: prune events older than ?days (default 7)
- GET /api/events/export: full dump as a JSON attachment
- POST /api/compact: reclaim space from deleted rows
- GET /api/webhook-url: public webhook URL from a local ngrok agent
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, PlainTextResponse

from hookcatch import __version__
from hookcatch.api.deps import get_container, get_event_service
from hookcatch.container import Container
from hookcatch.models.event import StoreStats
from hookcatch.services.events import EventService
from hookcatch.services.tunnel import public_webhook_url

router = APIRouter()

ENDPOINTS = {
    "POST /webhook": "Receive webhook events",
    "GET /events": "View all stored events (supports ?page=1&limit=25)",
    "GET /events/search": "Search events (supports ?q=text&page=1&limit=25)",
    "GET /events/:id": "View specific event",
    "DELETE /events": "Clear all events",
    "GET /stream": "Live event feed (Server-Sent Events)",
    "GET /api/webhook-url": "Get current webhook URL",
    "GET /api/stats": "Database statistics",
    "DELETE /api/events/old": "Clear events older than ?days (default 7)",
    "GET /api/events/export": "Export all events as JSON",
    "POST /api/compact": "Compact the database file",
}


@router.get("/")
async def index(events: EventService = Depends(get_event_service)):
    return {
        "message": "hookcatch webhook capture server",
        "version": __version__,
        "endpoints": ENDPOINTS,
        "stats": {
            "totalEvents": await events.count(),
            "database": "SQLite (local file storage)",
        },
    }


@router.get("/health")
async def health_check():
    """Health check endpoint for liveness probes."""
    return {"status": "ok"}


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics(container: Container = Depends(get_container)):
    return container.metrics.to_prometheus()


@router.get("/api/stats", response_model=StoreStats)
async def stats(events: EventService = Depends(get_event_service)):
    return await events.stats()


@router.delete("/api/events/old")
async def clear_old_events(
    days: Optional[str] = None,
    events: EventService = Depends(get_event_service),
):
    retention = events.retention_days(days)
    removed = await events.prune_older_than(retention)
    return {
        "message": f"Cleared events older than {retention} days",
        "eventsRemoved": removed,
        "days": retention,
    }


@router.get("/api/events/export")
async def export_events(events: EventService = Depends(get_event_service)):
    bundle = await events.export_all()
    filename = f"webhook-export-{bundle.export_date.date().isoformat()}.json"
    return JSONResponse(
        content=bundle.model_dump(mode="json", by_alias=True),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/api/compact")
async def compact(events: EventService = Depends(get_event_service)):
    await events.compact()
    return {"message": "Database compacted"}


@router.get("/api/webhook-url")
async def webhook_url(container: Container = Depends(get_container)):
    return {"webhookUrl": await public_webhook_url(container.settings.ngrok_api_url)}
