"""
Webhook receiver.

POST/PUT/PATCH /webhook: capture the request as an event and broadcast it.
"""

from __future__ import annotations

import json
from typing import Any, Iterable
from urllib.parse import parse_qs

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from hookcatch.api.deps import get_container
from hookcatch.container import Container
from hookcatch.core.errors import PersistenceError

router = APIRouter()
log = structlog.get_logger()


def collect_items(items: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """Fold (name, value) pairs into a dict; repeated names become lists."""
    collected: dict[str, Any] = {}
    for name, value in items:
        if name not in collected:
            collected[name] = value
        elif isinstance(collected[name], list):
            collected[name].append(value)
        else:
            collected[name] = [collected[name], value]
    return collected


def parse_body(raw: bytes, content_type: str | None) -> Any:
    """
    Decode a request body the way the capture UI expects it.

    JSON media types are parsed, urlencoded forms become a dict, anything else
    is kept as text. An empty body is stored as {}.
    """
    if not raw:
        return {}
    media_type = (content_type or "").split(";")[0].strip().lower()
    text = raw.decode("utf-8", errors="replace")
    if media_type == "application/json" or media_type.endswith("+json"):
        try:
            return json.loads(text)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Malformed JSON body: {exc}",
            ) from exc
    if media_type == "application/x-www-form-urlencoded":
        pairs = parse_qs(text, keep_blank_values=True)
        return {name: values[0] if len(values) == 1 else values for name, values in pairs.items()}
    return text


async def _read_body(request: Request, max_bytes: int) -> bytes:
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Body too large")
    raw = await request.body()
    if len(raw) > max_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Body too large")
    return raw


@router.api_route("/webhook", methods=["POST", "PUT", "PATCH"])
async def receive_webhook(request: Request, container: Container = Depends(get_container)):
    """Store the inbound request and push it to live listeners."""
    raw = await _read_body(request, container.settings.max_body_bytes)
    body = parse_body(raw, request.headers.get("content-type"))

    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"

    try:
        event = await container.ingest.submit(
            headers=collect_items(request.headers.items()),
            body=body,
            method=request.method,
            url=url,
            query=collect_items(request.query_params.multi_items()),
        )
    except PersistenceError as exc:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Error storing webhook event", "error": str(exc)},
        )

    log.info("webhook.received", event_id=event.id, timestamp=event.timestamp.isoformat())
    return {"message": "Webhook received successfully", "eventId": event.id}
