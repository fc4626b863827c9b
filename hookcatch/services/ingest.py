"""
Ingest path: store an inbound webhook, then mirror it to live listeners.

The store write and the broadcast are not atomic with each other. A crash
between them leaves a stored event that was never broadcast
(at-least-persisted, at-most-once-broadcast).
"""

from __future__ import annotations

from typing import Any, Optional

import structlog

from hookcatch.core.errors import PersistenceError
from hookcatch.core.hub import BroadcastHub
from hookcatch.core.metrics import MetricsCollector
from hookcatch.core.store import EventStore
from hookcatch.models.event import Event, EventCreate

log = structlog.get_logger()


class IngestService:
    def __init__(
        self,
        store: EventStore,
        hub: BroadcastHub,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._hub = hub
        self._metrics = metrics or MetricsCollector()

    async def submit(
        self,
        headers: Optional[dict[str, Any]] = None,
        body: Any = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
        query: Optional[dict[str, Any]] = None,
    ) -> Event:
        """
        Persist one captured request and broadcast it.

        Raises PersistenceError if the store write fails; nothing is
        broadcast in that case.
        """
        fields = EventCreate(
            headers=headers or {},
            body=body,
            method=method,
            url=url,
            query=query or {},
        )
        try:
            event = await self._store.insert(fields)
        except PersistenceError as exc:
            self._metrics.inc("events_ingest_failed_total")
            log.error("ingest.store_failed", method=method, url=url, error=str(exc))
            raise

        self._metrics.inc("events_ingested_total")
        try:
            listeners = self._hub.publish(event)
        except Exception:
            listeners = 0
            log.exception("ingest.broadcast_failed", event_id=event.id)
        log.info(
            "ingest.stored",
            event_id=event.id,
            timestamp=event.timestamp.isoformat(),
            method=method,
            url=url,
            listeners=listeners,
        )
        return event
