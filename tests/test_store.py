"""
Tests for the SQLite event store.

Tests cover:
- id assignment (sequential, concurrent, across reopen)
- lookup, pagination and sort order
- free-text search and its count
- clear, prune, stats, export, compact and backup
- failures surfacing as PersistenceError
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from hookcatch.core import store as store_module
from hookcatch.core.errors import PersistenceError
from hookcatch.core.store import EventStore, format_timestamp, search_projection
from hookcatch.models.event import EventCreate


def _fields(body=None, **kwargs) -> EventCreate:
    return EventCreate(body=body if body is not None else {}, **kwargs)


# ---------------------------------------------------------------------------
# ID assignment
# ---------------------------------------------------------------------------


class TestIdAssignment:
    @pytest.mark.asyncio
    async def test_first_id_is_one_and_increments(self, store: EventStore):
        first = await store.insert(_fields())
        second = await store.insert(_fields())
        assert first.id == 1
        assert second.id == 2

    @pytest.mark.asyncio
    async def test_concurrent_inserts_get_distinct_ids(self, store: EventStore):
        events = await asyncio.gather(*(store.insert(_fields({"n": i})) for i in range(50)))
        ids = [e.id for e in events]
        assert len(set(ids)) == 50
        assert set(ids) == set(range(1, 51))
        assert await store.count() == 50

    @pytest.mark.asyncio
    async def test_ids_continue_after_reopen(self, tmp_path, clock):
        path = str(tmp_path / "reopen.db")
        first = EventStore(path, clock=clock)
        await first.open()
        for _ in range(3):
            await first.insert(_fields())
        await first.close()

        second = EventStore(path, clock=clock)
        await second.open()
        try:
            event = await second.insert(_fields())
            assert event.id == 4
            assert await second.count() == 4
        finally:
            await second.close()

    @pytest.mark.asyncio
    async def test_ids_follow_highest_remaining_after_prune(self, store: EventStore, clock):
        await store.insert(_fields())
        clock.advance(days=10)
        await store.insert(_fields())
        assert await store.clear_older_than(7) == 1
        event = await store.insert(_fields())
        assert event.id == 3


# ---------------------------------------------------------------------------
# Lookup and pagination
# ---------------------------------------------------------------------------


class TestReads:
    @pytest.mark.asyncio
    async def test_insert_then_get_round_trip(self, store: EventStore, clock):
        fields = EventCreate(
            headers={"content-type": "application/json", "x-multi": ["a", "b"]},
            body={"order": {"id": 7, "items": [1, 2]}, "note": "héllo"},
            method="POST",
            url="/webhook?source=test",
            query={"source": "test"},
        )
        stored = await store.insert(fields)
        fetched = await store.get_by_id(stored.id)

        assert fetched == stored
        assert fetched.headers == fields.headers
        assert fetched.body == fields.body
        assert fetched.method == "POST"
        assert fetched.url == "/webhook?source=test"
        assert fetched.query == {"source": "test"}
        assert format_timestamp(fetched.timestamp) == format_timestamp(clock.now)

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store: EventStore):
        assert await store.get_by_id(404) is None

    @pytest.mark.asyncio
    async def test_pages_partition_all_events(self, store: EventStore, clock):
        for i in range(7):
            await store.insert(_fields({"n": i}))
            clock.advance(seconds=1)

        seen = []
        for skip in (0, 3, 6):
            seen.extend(await store.list_events(skip=skip, limit=3))

        ids = [e.id for e in seen]
        assert ids == [7, 6, 5, 4, 3, 2, 1]

    @pytest.mark.asyncio
    async def test_timestamp_ties_fall_back_to_insertion_order(self, store: EventStore):
        for _ in range(3):
            await store.insert(_fields())
        newest_first = await store.list_events()
        oldest_first = await store.list_events(sort_direction="asc")
        assert [e.id for e in newest_first] == [3, 2, 1]
        assert [e.id for e in oldest_first] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_sort_by_other_field_and_unknown_field(self, store: EventStore):
        await store.insert(_fields(url="/b"))
        await store.insert(_fields(url="/a"))
        await store.insert(_fields(url="/c"))

        by_url = await store.list_events(sort_field="url", sort_direction=1)
        assert [e.url for e in by_url] == ["/a", "/b", "/c"]

        fallback = await store.list_events(sort_field="body; DROP TABLE events")
        assert [e.id for e in fallback] == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_unbounded_limit_and_negative_skip(self, store: EventStore):
        for _ in range(30):
            await store.insert(_fields())
        assert len(await store.list_events(skip=-5, limit=None)) == 30

    @pytest.mark.asyncio
    async def test_out_of_range_ids_and_offsets_are_empty(self, store: EventStore):
        await store.insert(_fields())
        assert await store.get_by_id(10**25) is None
        assert await store.get_by_id(-1) is None
        assert await store.list_events(skip=10**30, limit=10**30) == []
        assert await store.search("1", skip=10**30) == []


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_scenario(self, store: EventStore, clock):
        await store.insert(_fields({"a": 1}))
        clock.advance(seconds=1)
        await store.insert(_fields({"a": 2}))
        clock.advance(seconds=1)
        third = await store.insert(_fields({"b": 3}))

        results = await store.search("b")
        assert [e.id for e in results] == [third.id]
        assert await store.search_count("b") == 1

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive_across_fields(self, store: EventStore):
        await store.insert(_fields({"customer": "Ada Lovelace"}, method="POST", url="/hooks/stripe"))
        await store.insert(
            _fields({}, method="PUT", url="/other", headers={"X-GitHub-Event": "push"})
        )

        assert [e.id for e in await store.search("LOVELACE")] == [1]
        assert [e.id for e in await store.search("stripe")] == [1]
        assert [e.id for e in await store.search("put")] == [2]
        assert [e.id for e in await store.search("x-github-event")] == [2]
        assert await store.search("no-such-text") == []

    @pytest.mark.asyncio
    async def test_search_matches_json_fragments(self, store: EventStore):
        await store.insert(_fields({"status": "paid"}))
        await store.insert(_fields({"status": "failed"}))
        assert [e.id for e in await store.search('"status":"paid"')] == [1]

    @pytest.mark.asyncio
    async def test_search_skips_absent_method_and_url(self, store: EventStore):
        await store.insert(_fields({"k": "v"}))
        assert await store.search("post") == []

    @pytest.mark.asyncio
    async def test_blank_search_equals_list(self, store: EventStore, clock):
        for i in range(5):
            await store.insert(_fields({"n": i}))
            clock.advance(seconds=1)

        listed = await store.list_events(0, None)
        for blank in ("", "   ", None):
            assert {e.id for e in await store.search(blank, 0, None)} == {e.id for e in listed}
            assert await store.search_count(blank) == await store.count()

    @pytest.mark.asyncio
    async def test_search_paginates_newest_first(self, store: EventStore, clock):
        for i in range(5):
            await store.insert(_fields({"tag": "match", "n": i}))
            clock.advance(seconds=1)
        page_one = await store.search("match", skip=0, limit=2)
        page_two = await store.search("match", skip=2, limit=2)
        assert [e.id for e in page_one] == [5, 4]
        assert [e.id for e in page_two] == [3, 2]
        assert await store.search_count("match") == 5

    def test_projection_leaves_out_field_names(self):
        text = search_projection({"id": 1, "body": {"A": 1}, "method": None})
        assert "body" not in text
        assert '{"a":1}' in text


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_clear_all_empties_store(self, store: EventStore):
        for _ in range(4):
            await store.insert(_fields())
        assert await store.clear_all() == 4
        assert await store.count() == 0

        stats = await store.stats()
        assert stats.total_events == 0
        assert stats.oldest_event is None
        assert stats.newest_event is None

    @pytest.mark.asyncio
    async def test_clear_all_on_empty_store_is_zero(self, store: EventStore):
        assert await store.clear_all() == 0

    @pytest.mark.asyncio
    async def test_prune_removes_only_events_past_cutoff(self, store: EventStore, clock):
        now = clock.now
        clock.now = now - timedelta(days=10)
        old = await store.insert(_fields({"age": "10d"}))
        clock.now = now - timedelta(days=3)
        recent = await store.insert(_fields({"age": "3d"}))
        clock.now = now

        assert await store.clear_older_than(7) == 1
        assert await store.get_by_id(old.id) is None
        assert await store.get_by_id(recent.id) is not None

    @pytest.mark.asyncio
    async def test_prune_zero_days_removes_everything_before_now(self, store: EventStore, clock):
        for _ in range(3):
            await store.insert(_fields())
        clock.advance(seconds=1)
        assert await store.clear_older_than(0) == 3
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_prune_with_cutoff_before_oldest_removes_nothing(self, store: EventStore, clock):
        await store.insert(_fields())
        clock.advance(days=2)
        await store.insert(_fields())
        assert await store.clear_older_than(30) == 0
        assert await store.count() == 2

    @pytest.mark.asyncio
    async def test_prune_beyond_representable_dates_removes_nothing(self, store: EventStore):
        await store.insert(_fields())
        assert await store.clear_older_than(1_000_000) == 0
        assert await store.clear_older_than(10**12) == 0
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_stats_reports_oldest_newest_and_size(self, store: EventStore, clock):
        await store.insert(_fields({"n": 1}))
        clock.advance(hours=1)
        await store.insert(_fields({"n": 2}))

        stats = await store.stats()
        assert stats.total_events == 2
        assert stats.oldest_event.id == 1
        assert stats.newest_event.id == 2
        assert stats.database_bytes > 0
        assert stats.database_size.endswith(" MB")

    @pytest.mark.asyncio
    async def test_export_all_is_newest_first_and_unpaginated(self, store: EventStore, clock):
        for _ in range(40):
            await store.insert(_fields())
            clock.advance(seconds=1)
        exported = await store.export_all()
        assert len(exported) == 40
        assert exported[0].id == 40
        assert exported[-1].id == 1

    @pytest.mark.asyncio
    async def test_compact_keeps_live_events(self, store: EventStore, clock):
        for i in range(20):
            await store.insert(_fields({"payload": "x" * 500, "n": i}))
            clock.advance(seconds=1)
        await store.clear_older_than(0.0001)
        remaining = await store.list_events(0, None)

        await store.compact()

        assert await store.list_events(0, None) == remaining

    @pytest.mark.asyncio
    async def test_backup_writes_readable_copy(self, store: EventStore, tmp_path, clock):
        await store.insert(_fields({"keep": True}))
        target = await store.backup(tmp_path / "backups" / "copy.db")
        assert target.exists()

        copy = EventStore(str(target), clock=clock)
        await copy.open()
        try:
            assert await copy.count() == 1
            assert (await copy.get_by_id(1)).body == {"keep": True}
        finally:
            await copy.close()


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_operations_on_closed_store_raise(self, tmp_path):
        s = EventStore(str(tmp_path / "closed.db"))
        with pytest.raises(PersistenceError):
            await s.insert(_fields())
        with pytest.raises(PersistenceError):
            await s.count()

    @pytest.mark.asyncio
    async def test_write_failure_raises_persistence_error(self, store: EventStore):
        await store._conn.execute("DROP TABLE events")
        await store._conn.commit()
        with pytest.raises(PersistenceError):
            await store.insert(_fields())

    @pytest.mark.asyncio
    async def test_unopenable_path_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        s = EventStore(str(blocker / "nested" / "events.db"))
        with pytest.raises(PersistenceError):
            await s.open()

    @pytest.mark.asyncio
    async def test_failed_schema_setup_releases_connection(self, tmp_path, monkeypatch):
        monkeypatch.setattr(store_module, "_SCHEMA", "CREATE TABLE events (")
        s = EventStore(str(tmp_path / "broken.db"))
        with pytest.raises(PersistenceError):
            await s.open()
        assert not s.is_open

        monkeypatch.undo()
        await s.open()
        try:
            assert s.is_open
            assert await s.count() == 0
        finally:
            await s.close()
