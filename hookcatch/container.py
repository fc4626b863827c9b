"""Process-wide wiring: one store, one hub, and the services built on them."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

import structlog

from hookcatch.core.config import Settings
from hookcatch.core.hub import BroadcastHub
from hookcatch.core.metrics import MetricsCollector
from hookcatch.core.store import EventStore, utcnow
from hookcatch.services.events import EventService
from hookcatch.services.ingest import IngestService

log = structlog.get_logger()


class Container:
    def __init__(self, settings: Settings, clock: Optional[Callable[[], datetime]] = None):
        self.settings = settings
        self.metrics = MetricsCollector()
        self.store = EventStore(settings.db_path, clock=clock or utcnow)
        self.hub = BroadcastHub(settings.listener_queue_size, self.metrics)
        self.ingest = IngestService(self.store, self.hub, self.metrics)
        self.events = EventService(
            self.store,
            default_page_size=settings.default_page_size,
            max_page_size=settings.max_page_size,
            default_retention_days=settings.default_retention_days,
        )

    async def start(self) -> None:
        await self.store.open()

    async def stop(self) -> None:
        self.hub.close()
        await self.store.close()
