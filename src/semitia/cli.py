#!/usr/bin/env python3
"""
CLI for running a command on filesystem changes.

Usage:
    semitia watch ./src -s make build -c -m
    semitia watch ./docs --on move --on remove -s ./notify.sh
    semitia replay trace.jsonl --debounce 50
"""

import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import WatcherConfig
from .dispatcher import ActionDispatcher
from .exceptions import WatcherError
from .fs_watcher import FSEventSource
from .models import EventType, RawKind, RawRecord
from .watcher import Watcher, replay

logger = logging.getLogger("semitia")


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self):
        self.should_exit = False
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.should_exit = True


def selected_events(args) -> List[EventType]:
    """Collect the event types selected by flags."""
    events = set(EventType(e) for e in args.on or [])
    if args.create:
        events.update((EventType.TOUCH, EventType.NEW))
    if args.modify:
        events.add(EventType.MODIFY)
    if args.move:
        events.add(EventType.MOVE)
    if args.remove:
        events.add(EventType.REMOVE)
    return sorted(events, key=lambda e: e.value)


def cmd_watch(args) -> int:
    """Watch targets and run the command for selected events."""
    config = WatcherConfig.from_env(
        targets=[Path(p) for p in args.paths] if args.paths else None,
        recursive=False if args.no_recursive else None,
        debounce_ms=args.debounce,
        include_hidden=True if args.all else None,
    )

    try:
        source = FSEventSource(config.targets, config.recursive)
    except WatcherError as e:
        logger.error(str(e))
        return 1

    dispatcher = ActionDispatcher(args.shell, selected_events(args), config)
    watcher = Watcher(config, source=source)
    dispatcher.attach(watcher)

    errors: List[BaseException] = []

    def run():
        try:
            watcher.watch()
        except WatcherError as e:
            errors.append(e)

    shutdown = GracefulShutdown()
    thread = threading.Thread(target=run, name="Watcher", daemon=True)
    thread.start()

    for target in config.targets:
        logger.info(f"  - {target}")
    logger.info(f"Events: {', '.join(e.value for e in dispatcher.events)}")
    logger.info("Press Ctrl+C to stop")

    while not shutdown.should_exit and thread.is_alive():
        thread.join(timeout=0.5)

    watcher.abort()
    thread.join(timeout=5.0)

    if errors:
        logger.error(f"Watcher stopped: {errors[0]}")
        return 1

    logger.info("Watcher stopped")
    return 0


def load_trace(path: Path) -> List[RawRecord]:
    """
    Read a JSON-lines trace of raw records.

    Each line holds ``{"kind": ..., "path": ..., "time": seconds}``;
    blank lines are skipped.

    Raises:
        OSError: If the file cannot be read
        ValueError: If a line is not a well-formed record
    """
    records = []
    with open(path, "r", encoding="utf-8") as f:
        for number, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue

            data = json.loads(line)
            if not isinstance(data, dict):
                raise ValueError(f"line {number}: expected an object, got {type(data).__name__}")

            try:
                records.append(RawRecord(RawKind(data["kind"]), Path(data["path"]), float(data["time"])))
            except (KeyError, TypeError) as e:
                raise ValueError(f"line {number}: malformed record: {e!r}") from e
    return records


def cmd_replay(args) -> int:
    """Replay a trace and print the resulting events as JSON lines."""
    config = WatcherConfig.from_env(debounce_ms=args.debounce)

    try:
        records = load_trace(Path(args.trace))
    except (OSError, ValueError) as e:
        logger.error(f"Cannot read trace {args.trace}: {e}")
        return 1

    for event in replay(records, config):
        print(json.dumps(event.to_dict()))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="semitia",
        description="Run a command when files are touched, created, modified, moved or removed",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Rebuild when a source file is created or written
  semitia watch ./src -c -m -s make build

  # Replay a recorded trace with a 50ms window
  semitia replay trace.jsonl --debounce 50
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    watch_parser = subparsers.add_parser("watch", help="Watch paths and run a command")
    watch_parser.add_argument("paths", nargs="*", help="Paths to watch (default: SEMITIA_TARGETS or .)")
    watch_parser.add_argument("-s", "--shell", nargs="+", required=True, metavar="CMD",
                              help="Command to run; affected paths are appended")
    watch_parser.add_argument("-a", "--all", action="store_true", help="Do not skip dot-files and `~` backups")
    watch_parser.add_argument("--debounce", type=int, default=None, help="Debounce window in ms")
    watch_parser.add_argument("--no-recursive", action="store_true", help="Do not watch subdirectories")

    group = watch_parser.add_argument_group("accepting events")
    group.add_argument("-c", "--create", action="store_true", help="On created (touch and new)")
    group.add_argument("-m", "--modify", action="store_true", help="On written")
    group.add_argument("-r", "--remove", action="store_true", help="On removed")
    group.add_argument("--move", action="store_true", help="On moved")
    group.add_argument("--on", action="append", choices=[e.value for e in EventType],
                       help="On the given event type (repeatable)")
    watch_parser.set_defaults(func=cmd_watch)

    replay_parser = subparsers.add_parser("replay", help="Replay a JSON-lines trace of raw records")
    replay_parser.add_argument("trace", help="Trace file")
    replay_parser.add_argument("--debounce", type=int, default=None, help="Debounce window in ms")
    replay_parser.set_defaults(func=cmd_replay)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "watch" and not selected_events(args):
        parser.error("no events selected: use -c, -m, -r, --move or --on")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        return args.func(args)
    except (WatcherError, ValueError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
