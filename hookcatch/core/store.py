"""
Single-file SQLite event store.

Stores:
- events: one row per captured request. `id`, `timestamp`, `method` and `url`
  are columns for ordering and lookup; `document` holds the compact JSON text
  of the whole event; `search_text` is the lowercased JSON of each field value
  (top-level field names left out) and is what free-text search scans.

Invariants:
    - `id` is MAX(id) + 1 at insert time, read and written under the write lock
    - timestamps are fixed-width ISO-8601 UTC strings, so text order is time order
    - every mutation (insert, clear, prune, compact, backup) holds the write lock;
      reads take no lock
    - search is a linear scan, O(n) per query; there is no inverted index
"""

from __future__ import annotations

import asyncio
import json
import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Union

import aiosqlite
import structlog

from hookcatch.core.errors import PersistenceError
from hookcatch.models.event import Event, EventCreate, StoreStats

log = structlog.get_logger()

_SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    id        INTEGER PRIMARY KEY,
    timestamp TEXT NOT NULL,
    method    TEXT,
    url       TEXT,
    document  TEXT NOT NULL,
    search_text TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_timestamp
    ON events(timestamp, id);
"""

MEMORY_PATH = ":memory:"
SORT_FIELDS = ("timestamp", "id", "method", "url")
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
DEFAULT_RETENTION_DAYS = 7
SQLITE_MAX_INTEGER = 2**63 - 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Render a datetime in the store's sortable UTC text form."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def format_size(size: Optional[int]) -> str:
    if size is None:
        return "Unknown"
    return f"{size / (1024 * 1024):.2f} MB"


def _serialize(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def search_projection(record: dict[str, Any]) -> str:
    """Lowercased text searched by free-text queries: every field value, one per line."""
    return "\n".join(_serialize(value) for value in record.values() if value is not None).lower()


def _event_matches(
    search_text: str,
    event_id: int,
    method: Optional[str],
    url: Optional[str],
    needle: str,
) -> int:
    """SQLite predicate for free-text search. `needle` is already lowercased."""
    return int(
        needle in search_text
        or needle in str(event_id)
        or (bool(method) and needle in method.lower())
        or (bool(url) and needle in url.lower())
    )


def _needle(query: Optional[str]) -> Optional[str]:
    """Lowercased search text, or None for a blank query."""
    if not query or not query.strip():
        return None
    return query.lower()


def _direction(value: Union[str, int, None]) -> str:
    if isinstance(value, str):
        return "ASC" if value.strip().lower() in ("asc", "ascending", "1") else "DESC"
    return "ASC" if value == 1 else "DESC"


@contextmanager
def _translate(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        log.error("store.error", action=action, error=str(exc))
        raise PersistenceError(f"{action} failed: {exc}") from exc


class EventStore:
    """Async SQLite event store. One instance per process, opened at startup."""

    def __init__(self, db_path: str, clock: Callable[[], datetime] = utcnow):
        self._db_path = db_path
        self._clock = clock
        self._db: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._db is not None

    @property
    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise PersistenceError("Event store is not open")
        return self._db

    async def open(self) -> None:
        if self._db is not None:
            return
        try:
            if self._db_path != MEMORY_PATH:
                os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)
            db = await aiosqlite.connect(self._db_path)
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"Could not open event store at {self._db_path}: {exc}") from exc

        try:
            db.row_factory = aiosqlite.Row
            await db.create_function("event_matches", 5, _event_matches, deterministic=True)
            await db.executescript(_SCHEMA)
            await db.commit()
            total = await db.execute_fetchall("SELECT COUNT(*) FROM events")
        except (sqlite3.Error, OSError) as exc:
            await db.close()
            raise PersistenceError(f"Could not open event store at {self._db_path}: {exc}") from exc
        except BaseException:
            await db.close()
            raise

        self._db = db
        log.info("store.opened", path=self._db_path, events=total[0][0])

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None
            log.info("store.closed", path=self._db_path)

    # --- Writes ---

    async def insert(self, fields: EventCreate) -> Event:
        """Assign the next id and the current timestamp, then persist."""
        db = self._conn
        async with self._write_lock:
            try:
                cursor = await db.execute("SELECT COALESCE(MAX(id), 0) + 1 FROM events")
                row = await cursor.fetchone()
                await cursor.close()
                record = {
                    "id": row[0],
                    "timestamp": format_timestamp(self._clock()),
                    **fields.model_dump(),
                }
                document = _serialize(record)
                await db.execute(
                    "INSERT INTO events (id, timestamp, method, url, document, search_text) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        record["id"],
                        record["timestamp"],
                        record["method"],
                        record["url"],
                        document,
                        search_projection(record),
                    ),
                )
                await db.commit()
            except sqlite3.Error as exc:
                await self._rollback()
                log.error("store.insert_failed", error=str(exc))
                raise PersistenceError(f"insert failed: {exc}") from exc

        log.info("store.inserted", event_id=record["id"])
        return Event.model_validate_json(document)

    async def clear_all(self) -> int:
        """Delete every event. Returns the number removed."""
        async with self._write_lock:
            removed = await self._delete("DELETE FROM events", (), "clear_all")
        log.info("store.cleared", removed=removed)
        return removed

    async def clear_older_than(self, days: float = DEFAULT_RETENTION_DAYS) -> int:
        """
        Delete events whose timestamp is strictly before now - days.

        A retention reaching past the earliest representable date removes nothing.
        """
        try:
            cutoff = format_timestamp(self._clock() - timedelta(days=days))
        except OverflowError:
            log.info("store.pruned", removed=0, days=days, cutoff=None)
            return 0
        async with self._write_lock:
            removed = await self._delete(
                "DELETE FROM events WHERE timestamp < ?", (cutoff,), "clear_older_than"
            )
        log.info("store.pruned", removed=removed, days=days, cutoff=cutoff)
        return removed

    async def compact(self) -> None:
        """Rebuild the file to reclaim space left by deleted rows."""
        db = self._conn
        before = self._file_size()
        async with self._write_lock:
            with _translate("compact"):
                await db.execute("VACUUM")
        log.info("store.compacted", size_before=before, size_after=self._file_size())

    async def backup(self, target: Union[str, Path]) -> Path:
        """Write a consistent copy of the store to `target` (which must not exist)."""
        db = self._conn
        target = Path(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        async with self._write_lock:
            with _translate("backup"):
                await db.execute("VACUUM INTO ?", (str(target),))
        log.info("store.backed_up", target=str(target))
        return target

    async def _delete(self, sql: str, params: tuple, action: str) -> int:
        db = self._conn
        try:
            cursor = await db.execute(sql, params)
            removed = cursor.rowcount
            await cursor.close()
            await db.commit()
        except sqlite3.Error as exc:
            await self._rollback()
            log.error("store.error", action=action, error=str(exc))
            raise PersistenceError(f"{action} failed: {exc}") from exc
        return max(removed, 0)

    async def _rollback(self) -> None:
        try:
            await self._conn.rollback()
        except sqlite3.Error as exc:
            log.warning("store.rollback_failed", error=str(exc))

    # --- Reads ---

    async def get_by_id(self, event_id: int) -> Event | None:
        if not 0 <= int(event_id) <= SQLITE_MAX_INTEGER:
            return None
        events = await self._fetch_events(
            "SELECT document FROM events WHERE id = ?", (int(event_id),)
        )
        return events[0] if events else None

    async def list_events(
        self,
        skip: int = 0,
        limit: int | None = 25,
        sort_field: str = "timestamp",
        sort_direction: Union[str, int] = "desc",
    ) -> list[Event]:
        """Page through events. `limit=None` returns everything after `skip`."""
        column = sort_field if sort_field in SORT_FIELDS else "timestamp"
        direction = _direction(sort_direction)
        return await self._fetch_events(
            f"SELECT document FROM events ORDER BY {column} {direction}, id {direction} "
            "LIMIT ? OFFSET ?",
            (_limit(limit), _offset(skip)),
        )

    async def count(self) -> int:
        return await self._scalar("SELECT COUNT(*) FROM events")

    async def search(self, query: str | None, skip: int = 0, limit: int | None = 25) -> list[Event]:
        """
        Case-insensitive substring search, newest first.

        Matches against every stored field value (nested keys included), the id,
        the method and the url.
        A blank query lists events instead.
        """
        needle = _needle(query)
        if needle is None:
            return await self.list_events(skip, limit)
        return await self._fetch_events(
            "SELECT document FROM events "
            "WHERE event_matches(search_text, id, method, url, ?) "
            "ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?",
            (needle, _limit(limit), _offset(skip)),
        )

    async def search_count(self, query: str | None) -> int:
        needle = _needle(query)
        if needle is None:
            return await self.count()
        return await self._scalar(
            "SELECT COUNT(*) FROM events WHERE event_matches(search_text, id, method, url, ?)",
            (needle,),
        )

    async def export_all(self) -> list[Event]:
        """Every event, newest first, unpaginated."""
        return await self.list_events(0, None)

    async def stats(self) -> StoreStats:
        total = await self.count()
        oldest = await self.list_events(0, 1, "timestamp", "asc")
        newest = await self.list_events(0, 1, "timestamp", "desc")
        size = self._file_size()
        return StoreStats(
            total_events=total,
            oldest_event=oldest[0] if oldest else None,
            newest_event=newest[0] if newest else None,
            database_size=format_size(size),
            database_bytes=size,
        )

    async def _fetch_events(self, sql: str, params: tuple = ()) -> list[Event]:
        with _translate("query"):
            rows = await self._conn.execute_fetchall(sql, params)
        return [Event.model_validate_json(row["document"]) for row in rows]

    async def _scalar(self, sql: str, params: tuple = ()) -> int:
        with _translate("query"):
            rows = await self._conn.execute_fetchall(sql, params)
        return int(rows[0][0]) if rows else 0

    def _file_size(self) -> int | None:
        if self._db_path == MEMORY_PATH:
            return None
        try:
            return os.path.getsize(self._db_path)
        except OSError:
            return None


def _limit(limit: int | None) -> int:
    # SQLite treats a negative LIMIT as unbounded.
    return -1 if limit is None else min(max(limit, 0), SQLITE_MAX_INTEGER)


def _offset(skip: int) -> int:
    return min(max(skip, 0), SQLITE_MAX_INTEGER)
