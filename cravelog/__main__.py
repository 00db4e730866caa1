"""CLI entry point for cravelog."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .app import CravelogApp
from .config import Config, load_config
from .records import LogRecord, summarize
from .sync import Authority, SyncError
from .timer import ResistanceTimer, TimerState

FIRST_SNAPSHOT_TIMEOUT = 5.0


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            # Fallback for non-serializable objects
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (error, warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "error": logging.ERROR,
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def _record_to_json(record: LogRecord) -> dict:
    return {
        "id": record.id,
        "duration_ms": record.duration_ms,
        "occurred_at": record.occurred_at.isoformat(),
    }


async def _open_app(
    config: Config,
    identity: str | None,
    on_timer_change=None,
) -> tuple[CravelogApp, list]:
    """Start the app and wait for its first authoritative record list.

    Returns:
        Tuple of (app, notices collected while loading).
    """
    app = CravelogApp(config)
    loaded = asyncio.Event()
    notices: list[SyncError] = []
    started = False

    def on_records(records: list[LogRecord]) -> None:
        if started:
            loaded.set()

    app.subscribe(on_records, notices.append)
    started = True
    app.start(identity, on_timer_change=on_timer_change)

    try:
        await asyncio.wait_for(loaded.wait(), timeout=FIRST_SNAPSHOT_TIMEOUT)
    except asyncio.TimeoutError:
        print("Timed out waiting for remote data", file=sys.stderr)

    return app, notices


def _print_notices(notices: list[SyncError]) -> None:
    for notice in notices:
        print(f"Warning: {notice.message} ({notice.detail})", file=sys.stderr)


async def cmd_run(args: argparse.Namespace) -> int:
    """Run the interactive timer."""
    config = load_config(args.config)

    def on_timer_change(timer: ResistanceTimer) -> None:
        if timer.state is TimerState.RUNNING and timer.elapsed_ms == 0:
            print("Timer running. Press Enter to stop and log.")

    app, notices = await _open_app(config, args.identity, on_timer_change)
    _print_notices(notices)

    def on_records(records: list[LogRecord]) -> None:
        if records:
            print(f"Logged sessions: {len(records)} (latest {records[0].duration_ms}ms)")

    app.subscribe(on_records, lambda notice: print(f"Warning: {notice.message}", file=sys.stderr))

    print(f"Using {app.coordinator.authority.value} data.")
    print("Press Enter once to start, twice quickly to reset. Type q to quit.")

    try:
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line or line.strip().lower() == "q":
                break
            app.timer.click()
    except KeyboardInterrupt:
        print("\nShutting down...")
    finally:
        await app.stop()

    return 0


async def cmd_log(args: argparse.Namespace) -> int:
    """Log a duration without running the timer."""
    if args.duration <= 0:
        print("Duration must be positive, nothing logged", file=sys.stderr)
        return 1

    config = load_config(args.config)
    app, notices = await _open_app(config, args.identity)

    try:
        await app.append(args.duration)
    finally:
        await app.stop()

    _print_notices(notices)
    if app.coordinator.error is not None and not notices:
        print(f"Warning: {app.coordinator.error.message}", file=sys.stderr)

    print(f"Logged {args.duration}ms ({app.coordinator.authority.value})")
    return 0


async def cmd_history(args: argparse.Namespace) -> int:
    """List logged records, newest first."""
    config = load_config(args.config)
    app, notices = await _open_app(config, args.identity)
    records = app.coordinator.records
    await app.stop()

    _print_notices(notices)
    if args.limit:
        records = records[: args.limit]

    if args.json:
        print(json.dumps([_record_to_json(r) for r in records], indent=2))
        return 0

    if not records:
        print("No logged sessions yet.")
        return 0

    for record in records:
        print(f"{record.occurred_at.isoformat(timespec='seconds')}  {record.duration_ms}ms")
    return 0


async def cmd_stats(args: argparse.Namespace) -> int:
    """Show totals, average, longest hold and per-day totals."""
    config = load_config(args.config)
    app, notices = await _open_app(config, args.identity)
    stats = summarize(app.coordinator.records)
    await app.stop()

    _print_notices(notices)
    if args.json:
        print(json.dumps(stats.to_dict(), indent=2))
        return 0

    if not stats.count:
        print("No data yet. Start logging your cravings to see trends!")
        return 0

    print(f"Total cravings: {stats.count}")
    print(f"Total time resisted: {stats.total_ms}ms")
    print(f"Average duration: {stats.average_ms:.0f}ms")
    print(f"Longest hold: {stats.longest_ms}ms")
    if args.days:
        print("By day:")
        for day in stats.by_day[: args.days]:
            print(f"  {day.day.isoformat()}  {day.count} sessions, {day.total_ms}ms")
    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Show which store is authoritative."""
    config = load_config(args.config)
    app, notices = await _open_app(config, args.identity)
    coordinator = app.coordinator

    status_data = {
        "timestamp": datetime.now().isoformat(),
        "identity": coordinator.identity,
        "authority": coordinator.authority.value,
        "remote": {
            "configured": config.remote.configured,
            "url": config.remote.url or None,
            "app_id": config.identity.app_id,
        },
        "local": {
            "db_path": config.local.db_path,
            "key": config.local.key,
        },
        "records": len(coordinator.records),
        "error": coordinator.error.message if coordinator.error else None,
    }
    await app.stop()

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    print("cravelog status")
    print("===============")
    print(f"Identity: {status_data['identity'] or 'none (local only)'}")
    print(f"Authority: {status_data['authority']}")
    if coordinator.authority is Authority.LOCAL and config.remote.configured and coordinator.identity:
        print(f"  Remote unavailable: {status_data['error']}")
    print(f"Remote: {status_data['remote']['url'] or 'not configured'}")
    print(f"Local: {status_data['local']['db_path']} [{status_data['local']['key']}]")
    print(f"Records: {status_data['records']}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the remote collection service."""
    config = load_config(args.config)

    try:
        import uvicorn

        from .server import create_app
    except ImportError as e:
        print(f"Server dependencies not installed: {e}", file=sys.stderr)
        print("Install with: pip install cravelog[server]", file=sys.stderr)
        return 1

    host = args.host or config.server.host
    port = args.port or config.server.port
    print(f"Serving collections on http://{host}:{port}")
    uvicorn.run(create_app(config), host=host, port=port)
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="cravelog",
        description="Track how long you resist cravings",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["error", "warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )
    parser.add_argument(
        "--identity",
        type=str,
        default=None,
        help="Identity token for the remote store (default: from config)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Run the interactive timer")
    run_parser.set_defaults(func=cmd_run)

    log_parser = subparsers.add_parser("log", help="Log a duration in milliseconds")
    log_parser.add_argument("duration", type=int, help="Resisted duration in ms")
    log_parser.set_defaults(func=cmd_log)

    history_parser = subparsers.add_parser("history", help="List logged sessions")
    history_parser.add_argument(
        "-n", "--limit",
        type=int,
        default=None,
        help="Show at most this many sessions",
    )
    history_parser.add_argument(
        "--json",
        action="store_true",
        help="Output records as JSON",
    )
    history_parser.set_defaults(func=cmd_history)

    stats_parser = subparsers.add_parser("stats", help="Show totals and per-day figures")
    stats_parser.add_argument(
        "--days",
        type=int,
        default=7,
        help="Number of most recent days to list (default: 7, 0 to hide)",
    )
    stats_parser.add_argument(
        "--json",
        action="store_true",
        help="Output stats as JSON",
    )
    stats_parser.set_defaults(func=cmd_stats)

    status_parser = subparsers.add_parser("status", help="Show sync status")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    serve_parser = subparsers.add_parser("serve", help="Start the remote collection service")
    serve_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to listen on (default: from config)",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: from config)",
    )
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.log_json)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    if asyncio.iscoroutinefunction(func):
        return asyncio.run(func(args))
    return func(args)


if __name__ == "__main__":
    sys.exit(main())
