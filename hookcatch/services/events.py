"""
Query and maintenance operations exposed to the HTTP layer and the CLI.

Handles:
- page-based listing (1-based page -> skip/limit)
- free-text search with its match count
- single event lookup
- full clear, age-based pruning, compaction
- stats and full export

Arguments arriving from the boundary are coerced rather than rejected:
non-numeric or out-of-range values fall back to their defaults.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

from hookcatch.core.store import DEFAULT_RETENTION_DAYS, SQLITE_MAX_INTEGER, EventStore
from hookcatch.models.event import (
    Event,
    EventPage,
    ExportBundle,
    SearchResult,
    StoreStats,
)

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 1000


def coerce_int(
    value: Any,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    """
    Parse an integer argument, falling back to `default` when unusable.

    Values below `minimum` fall back to `default`; values above `maximum`
    are clamped to it.
    """
    if isinstance(value, bool):
        return default
    try:
        result = int(value)
    except (TypeError, ValueError):
        try:
            result = int(float(value))
        except (TypeError, ValueError, OverflowError):
            return default
    if minimum is not None and result < minimum:
        return default
    if maximum is not None and result > maximum:
        return maximum
    return result


def page_to_skip(page: int, page_size: int) -> int:
    return (page - 1) * page_size


def total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if page_size else 0


class EventService:
    def __init__(
        self,
        store: EventStore,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
        default_retention_days: int = DEFAULT_RETENTION_DAYS,
    ):
        self._store = store
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size
        self._default_retention_days = default_retention_days

    def page_size_for(self, value: Any) -> int:
        """Usable page size for a raw `limit`/`pageSize` argument."""
        return min(coerce_int(value, self._default_page_size, minimum=1), self._max_page_size)

    def page_number_for(self, value: Any, page_size: int) -> int:
        """Usable 1-based page number; capped so the row offset fits SQLite's integer range."""
        return coerce_int(value, 1, minimum=1, maximum=SQLITE_MAX_INTEGER // page_size)

    async def page(self, page: Any = 1, page_size: Any = None) -> EventPage:
        limit = self.page_size_for(page_size)
        page = self.page_number_for(page, limit)
        events = await self._store.list_events(page_to_skip(page, limit), limit)
        total = await self._store.count()
        return EventPage(
            events=events,
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages(total, limit),
        )

    async def get(self, event_id: Any) -> Event | None:
        event_id = coerce_int(event_id, 0)
        if not 1 <= event_id <= SQLITE_MAX_INTEGER:
            return None
        return await self._store.get_by_id(event_id)

    async def search(self, text: str | None, skip: Any = 0, limit: Any = None) -> SearchResult:
        skip = coerce_int(skip, 0, minimum=0, maximum=SQLITE_MAX_INTEGER)
        limit = self.page_size_for(limit)
        events = await self._store.search(text, skip, limit)
        total = await self._store.search_count(text)
        return SearchResult(query=text or "", events=events, total=total, skip=skip, limit=limit)

    async def count(self) -> int:
        return await self._store.count()

    async def clear_all(self) -> int:
        return await self._store.clear_all()

    def retention_days(self, days: Any = None) -> int:
        return coerce_int(days, self._default_retention_days, minimum=0)

    async def prune_older_than(self, days: Any = None) -> int:
        return await self._store.clear_older_than(self.retention_days(days))

    async def stats(self) -> StoreStats:
        return await self._store.stats()

    async def export_all(self) -> ExportBundle:
        stats = await self._store.stats()
        events = await self._store.export_all()
        return ExportBundle(
            export_date=datetime.now(timezone.utc),
            stats=stats,
            events=events,
        )

    async def compact(self) -> None:
        await self._store.compact()
