"""
Command line entry point.

    hookcatch serve                 run the capture server
    hookcatch stats                 print store statistics and recent events
    hookcatch clear [--older-than DAYS] [--yes]
    hookcatch export [-o FILE]      write every event to a dated JSON file
    hookcatch backup [--dir DIR] [--keep N]
    hookcatch compact
"""

from __future__ import annotations

import argparse
import asyncio
import math
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable

import structlog
import uvicorn

from hookcatch.container import Container
from hookcatch.core.config import Settings, get_settings
from hookcatch.core.errors import PersistenceError
from hookcatch.core.logging import configure_logging
from hookcatch.core.store import format_size
from hookcatch.main import create_app

log = structlog.get_logger()

BACKUP_PREFIX = "webhooks-backup-"
DEFAULT_BACKUP_KEEP = 5
RECENT_EVENTS = 10


def _settings(args: argparse.Namespace) -> Settings:
    if args.db:
        return Settings(db_path=args.db)
    return get_settings()


async def _with_container(settings: Settings, action: Callable[[Container], Awaitable[int]]) -> int:
    container = Container(settings)
    await container.start()
    try:
        return await action(container)
    finally:
        await container.stop()


# --- Commands ---


async def _stats(container: Container, args: argparse.Namespace) -> int:
    stats = await container.events.stats()
    print("Database Statistics")
    print("===================")
    print(f"Total Events:  {stats.total_events}")
    print(f"Database Size: {stats.database_size}")

    oldest, newest = stats.oldest_event, stats.newest_event
    if oldest:
        print(f"Oldest Event:  {oldest.timestamp.isoformat()} (ID: {oldest.id})")
    if newest:
        print(f"Newest Event:  {newest.timestamp.isoformat()} (ID: {newest.id})")
    if oldest and newest and stats.total_events > 1:
        span_days = (newest.timestamp - oldest.timestamp).total_seconds() / 86400
        per_day = stats.total_events / max(1, math.ceil(span_days))
        print(f"Events per day: {per_day:.1f}")

    recent = await container.store.list_events(0, RECENT_EVENTS)
    if recent:
        print()
        print("Recent Events:")
        print("--------------")
        for event in recent:
            print(
                f"  {event.id}: {event.method or 'Unknown'} {event.url or '/'}"
                f" - {event.timestamp.isoformat()}"
            )
    return 0


def _confirm(prompt: str) -> bool:
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


async def _clear(container: Container, args: argparse.Namespace) -> int:
    events = container.events
    if args.older_than is not None:
        days = events.retention_days(args.older_than)
        removed = await events.prune_older_than(days)
        if removed:
            print(f"Cleared {removed} events older than {days} days")
            await events.compact()
        else:
            print("No old events found to clear")
        return 0

    total = await events.count()
    if total == 0:
        print("Database is already empty")
        return 0
    if not args.yes and not _confirm(
        f"Clear ALL {total} events? This cannot be undone! (yes/no): "
    ):
        print("Operation cancelled")
        return 1
    removed = await events.clear_all()
    await events.compact()
    print(f"Cleared {removed} events; database compacted")
    return 0


async def _export(container: Container, args: argparse.Namespace) -> int:
    bundle = await container.events.export_all()
    output = Path(
        args.output or f"webhook-export-{bundle.export_date.date().isoformat()}.json"
    )
    output.write_text(bundle.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    print(f"Exported {len(bundle.events)} events to {output.resolve()}")
    print(f"Database size: {bundle.stats.database_size}")
    return 0


def prune_backups(directory: Path, keep: int) -> list[Path]:
    """Delete all but the `keep` most recent backups. Returns the removed files."""
    backups = sorted(
        directory.glob(f"{BACKUP_PREFIX}*.db"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    removed = backups[keep:]
    for path in removed:
        path.unlink()
        log.info("backup.removed_old", path=str(path))
    return removed


async def _backup(container: Container, args: argparse.Namespace) -> int:
    directory = Path(args.dir)
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    target = await container.store.backup(directory / f"{BACKUP_PREFIX}{stamp}.db")
    print(f"Backup created: {target.resolve()} ({format_size(target.stat().st_size)})")
    removed = prune_backups(directory, args.keep)
    if removed:
        print(f"Cleaned up {len(removed)} old backup(s)")
    return 0


async def _compact(container: Container, args: argparse.Namespace) -> int:
    await container.events.compact()
    print("Database compacted")
    return 0


def _serve(settings: Settings) -> int:
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


COMMANDS = {
    "stats": _stats,
    "clear": _clear,
    "export": _export,
    "backup": _backup,
    "compact": _compact,
}


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer") from None
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hookcatch", description="Local webhook capture server")
    parser.add_argument("--db", help="Path to the event database (default: $HOOKCATCH_DB_PATH or ./webhooks.db)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Run the capture server")
    sub.add_parser("stats", help="Print store statistics and recent events")

    clear = sub.add_parser("clear", help="Delete all events, or only old ones")
    clear.add_argument("--older-than", metavar="DAYS", help="Only delete events older than DAYS")
    clear.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")

    export = sub.add_parser("export", help="Write all events to a JSON file")
    export.add_argument("-o", "--output", help="Output file (default: webhook-export-<date>.json)")

    backup = sub.add_parser("backup", help="Copy the database into a backups directory")
    backup.add_argument("--dir", default="backups", help="Backup directory (default: backups)")
    backup.add_argument(
        "--keep", type=_positive_int, default=DEFAULT_BACKUP_KEEP, help="Backups to keep (at least 1)"
    )

    sub.add_parser("compact", help="Reclaim space left by deleted events")
    return parser


def run(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    settings = _settings(args)
    configure_logging(settings.log_level, settings.log_format)

    if args.command == "serve":
        return _serve(settings)

    command = COMMANDS[args.command]
    try:
        return asyncio.run(_with_container(settings, lambda c: command(c, args)))
    except PersistenceError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
