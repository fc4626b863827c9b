"""
Live event feed.

- GET /stream: Server-Sent Events; every newly stored event is pushed as
  `data: <event json>` with `id: <event id>`. No replay of earlier events.
"""

from __future__ import annotations

import asyncio
from typing import AsyncGenerator

import structlog
from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from hookcatch.api.deps import get_container
from hookcatch.container import Container
from hookcatch.core.hub import BroadcastHub, Listener

router = APIRouter()
log = structlog.get_logger()

DISCONNECT_POLL_SECONDS = 1.0


async def event_stream(
    request: Request,
    hub: BroadcastHub,
    listener: Listener,
    poll_interval: float = DISCONNECT_POLL_SECONDS,
) -> AsyncGenerator[dict, None]:
    """
    Drain one listener's queue into SSE messages.

    Ends when the client disconnects or the hub drops the listener; the
    listener is always unsubscribed on the way out.
    """
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(listener.get(), timeout=poll_interval)
            except asyncio.TimeoutError:
                continue
            if event is None:
                break
            yield {"id": str(event.id), "data": event.model_dump_json()}
    except asyncio.CancelledError:
        log.info("stream.cancelled", listener_id=listener.id)
        raise
    finally:
        hub.unsubscribe(listener)


@router.get("/stream")
async def stream_events(request: Request, container: Container = Depends(get_container)):
    """Stream newly captured events. Sends keepalive pings between events."""
    listener = container.hub.subscribe()
    return EventSourceResponse(
        event_stream(request, container.hub, listener),
        ping=container.settings.heartbeat_interval,
        headers={"Access-Control-Allow-Origin": "*"},
    )
