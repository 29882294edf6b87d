"""CLI entry point for tasksync."""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from .config import load_config
from .engine import Engine, open_engine
from .errors import TaskNotFoundError, TaskSyncError, UnauthorizedError
from .models import Task
from .sync import SyncResult, SyncStatus


# Entry fields the sync layer attaches with ``extra=``
QUEUE_FIELDS = ("sequence", "kind", "outcome", "task_id")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, carrying queue entry fields when present."""

    def format(self, record: logging.LogRecord) -> str:
        line = {
            "time": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
            "level": record.levelname.lower(),
            "component": record.name.removeprefix("tasksync."),
            "message": record.getMessage(),
        }
        for name in QUEUE_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                line[name] = value
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, default=str)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Send tasksync logs to stderr.

    Only the ``tasksync`` logger is configured so library chatter (httpx
    request lines) stays at its own defaults.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.WARNING

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))

    root = logging.getLogger("tasksync")
    root.handlers[:] = [handler]
    root.setLevel(level)
    root.propagate = False


def _format_task(task: Task) -> str:
    check = "x" if task.completed else " "
    star = "*" if task.important else " "
    due = f"  due {task.due_date.isoformat()}" if task.due_date else ""
    pending = "  (not synced)" if task.provisional else ""
    return f"[{check}] {star} {task.id}  {task.title}{due}{pending}"


def _print_result(result: SyncResult) -> None:
    print(f"Sync: {result.status.value}")
    if result.drain:
        print(
            f"  applied={len(result.drain.applied)} "
            f"deferred={len(result.drain.deferred)} "
            f"discarded={len(result.drain.discarded)} "
            f"remaining={result.drain.remaining}"
        )
        for outcome in result.drain.deferred:
            print(f"  #{outcome.sequence} {outcome.kind.value}: {outcome.reason}")
    if result.entries_pulled:
        print(f"  pulled={result.entries_pulled}")
    if result.error:
        print(f"  error: {result.error}")


async def _open(args: argparse.Namespace) -> Engine:
    config = load_config(args.config)
    return await open_engine(config)


async def cmd_status(args: argparse.Namespace) -> int:
    """Show connectivity and queue status."""
    engine = await _open(args)
    try:
        status = engine.orchestrator.get_sync_status()
    finally:
        await engine.close()

    if args.json:
        print(json.dumps(status, indent=2))
        return 0

    print(f"Remote: {'online' if status['online'] else 'offline'}")
    print(f"Local tasks: {status['local_tasks']}")
    print(f"Pending operations: {status['pending_entries']}")
    for kind, count in sorted(status["entries_by_kind"].items()):
        print(f"  {kind}: {count}")
    return 0


async def cmd_list(args: argparse.Namespace) -> int:
    """List local tasks."""
    engine = await _open(args)
    try:
        tasks = engine.service.list_tasks(args.filter, args.search or "")
        counts = engine.service.filter_counts()
    finally:
        await engine.close()

    if not tasks:
        print("No tasks.")
    for task in tasks:
        print(_format_task(task))
    print(", ".join(f"{name}: {count}" for name, count in counts.items()))
    return 0


async def cmd_add(args: argparse.Namespace) -> int:
    """Add a task."""
    engine = await _open(args)
    try:
        task = engine.service.add_task(
            args.title,
            due_date=args.due,
            important=args.important,
            description=args.description or "",
        )
    finally:
        await engine.close()

    print(f"Added {task.id}: {task.title}")
    return 0


async def cmd_edit(args: argparse.Namespace) -> int:
    """Edit a task."""
    changes = {}
    if args.title is not None:
        changes["title"] = args.title
    if args.description is not None:
        changes["description"] = args.description
    if args.due is not None:
        changes["due_date"] = args.due or None

    if not changes:
        print("Nothing to change.", file=sys.stderr)
        return 1

    engine = await _open(args)
    try:
        task = engine.service.update_task(args.id, **changes)
    finally:
        await engine.close()

    print(_format_task(task))
    return 0


async def cmd_complete(args: argparse.Namespace) -> int:
    """Toggle a task's completed flag."""
    engine = await _open(args)
    try:
        task = engine.service.toggle_complete(args.id)
    finally:
        await engine.close()

    print(_format_task(task))
    return 0


async def cmd_star(args: argparse.Namespace) -> int:
    """Toggle a task's important flag."""
    engine = await _open(args)
    try:
        task = engine.service.toggle_important(args.id)
    finally:
        await engine.close()

    print(_format_task(task))
    return 0


async def cmd_delete(args: argparse.Namespace) -> int:
    """Delete a task."""
    engine = await _open(args)
    try:
        engine.service.delete_task(args.id)
    finally:
        await engine.close()

    print(f"Deleted {args.id}")
    return 0


async def cmd_queue(args: argparse.Namespace) -> int:
    """Show pending operations."""
    engine = await _open(args)
    try:
        entries = engine.log.list_pending()
    finally:
        await engine.close()

    if args.json:
        print(json.dumps([e.to_dict() for e in entries], indent=2))
        return 0

    if not entries:
        print("Queue is empty.")
    for entry in entries:
        target = entry.target_id or "-"
        print(
            f"#{entry.sequence} {entry.kind.value:<6} {target}  "
            f"queued {entry.enqueued_at:%Y-%m-%d %H:%M:%S}"
        )
    return 0


async def cmd_discard(args: argparse.Namespace) -> int:
    """Drop a pending operation."""
    engine = await _open(args)
    try:
        removed = engine.orchestrator.discard(args.sequence)
    finally:
        await engine.close()

    if not removed:
        print(f"No queued operation #{args.sequence}", file=sys.stderr)
        return 1
    print(f"Discarded #{args.sequence}")
    return 0


async def cmd_sync(args: argparse.Namespace) -> int:
    """Push pending operations and pull the remote listing."""
    engine = await _open(args)
    try:
        await engine.orchestrator.wait_idle()
        result = await engine.service.refresh()
    finally:
        await engine.close()

    _print_result(result)
    return 0 if result.status in (SyncStatus.SUCCESS, SyncStatus.PARTIAL) else 1


async def cmd_watch(args: argparse.Namespace) -> int:
    """Watch connectivity and drain the queue whenever it comes back."""
    engine = await _open(args)
    interval = args.interval or load_config(args.config).sync.probe_interval_seconds
    engine.orchestrator.add_listener(lambda event: print(f"Status: {event}"))

    print(f"Watching remote every {interval}s (Ctrl+C to stop)")
    try:
        if engine.monitor.online:
            engine.orchestrator.request_drain()
        await engine.monitor.watch(interval_seconds=interval)
    except asyncio.CancelledError:
        # asyncio.run cancels the main task on Ctrl+C
        print("\nShutting down...")
        raise
    finally:
        await engine.close()
    return 0


async def cmd_reset(args: argparse.Namespace) -> int:
    """Delete all local tasks and pending operations."""
    if not args.yes:
        print("Refusing to reset without --yes", file=sys.stderr)
        return 1

    engine = await _open(args)
    try:
        engine.service.clear_all_data()
    finally:
        await engine.close()

    print("Local data cleared.")
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="tasksync",
        description="Offline-first task list synchronized with a remote service",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: none)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    status_parser = subparsers.add_parser("status", help="Show sync status")
    status_parser.add_argument("--json", action="store_true", help="Output status as JSON")
    status_parser.set_defaults(func=cmd_status)

    list_parser = subparsers.add_parser("list", help="List tasks")
    list_parser.add_argument(
        "-f", "--filter",
        choices=["all", "active", "completed", "important"],
        default="all",
        help="Filter tasks (default: all)",
    )
    list_parser.add_argument("-s", "--search", help="Search title and description")
    list_parser.set_defaults(func=cmd_list)

    add_parser = subparsers.add_parser("add", help="Add a task")
    add_parser.add_argument("title", help="Task title")
    add_parser.add_argument("--due", help="Due date (YYYY-MM-DD)")
    add_parser.add_argument("--important", action="store_true", help="Mark as important")
    add_parser.add_argument("--description", help="Task description")
    add_parser.set_defaults(func=cmd_add)

    edit_parser = subparsers.add_parser("edit", help="Edit a task")
    edit_parser.add_argument("id", help="Task id")
    edit_parser.add_argument("--title", help="New title")
    edit_parser.add_argument("--due", help="New due date (YYYY-MM-DD, empty to clear)")
    edit_parser.add_argument("--description", help="New description")
    edit_parser.set_defaults(func=cmd_edit)

    complete_parser = subparsers.add_parser("complete", help="Toggle completed")
    complete_parser.add_argument("id", help="Task id")
    complete_parser.set_defaults(func=cmd_complete)

    star_parser = subparsers.add_parser("star", help="Toggle important")
    star_parser.add_argument("id", help="Task id")
    star_parser.set_defaults(func=cmd_star)

    delete_parser = subparsers.add_parser("delete", help="Delete a task")
    delete_parser.add_argument("id", help="Task id")
    delete_parser.set_defaults(func=cmd_delete)

    queue_parser = subparsers.add_parser("queue", help="Show pending operations")
    queue_parser.add_argument("--json", action="store_true", help="Output entries as JSON")
    queue_parser.set_defaults(func=cmd_queue)

    discard_parser = subparsers.add_parser("discard", help="Drop a pending operation")
    discard_parser.add_argument("sequence", type=int, help="Queue sequence number")
    discard_parser.set_defaults(func=cmd_discard)

    sync_parser = subparsers.add_parser("sync", help="Push pending changes and pull tasks")
    sync_parser.set_defaults(func=cmd_sync)

    watch_parser = subparsers.add_parser("watch", help="Sync whenever connectivity returns")
    watch_parser.add_argument(
        "-i", "--interval",
        type=float,
        default=None,
        help="Seconds between connectivity probes",
    )
    watch_parser.set_defaults(func=cmd_watch)

    reset_parser = subparsers.add_parser("reset", help="Delete all local data")
    reset_parser.add_argument("--yes", action="store_true", help="Confirm the reset")
    reset_parser.set_defaults(func=cmd_reset)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except TaskNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except UnauthorizedError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except TaskSyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
