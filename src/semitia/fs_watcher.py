"""Raw event source using the watchdog library."""

import logging
import os
import queue
import threading
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional

from watchdog.observers import Observer
from watchdog.events import (
    DirModifiedEvent,
    FileSystemEventHandler,
)

from .exceptions import TargetNotFoundError, TargetOverlapError
from .models import RawKind, RawNotification

logger = logging.getLogger(__name__)

_CLOSED = object()


def accept_notification(notification: RawNotification) -> bool:
    """
    Decide whether a notification may enter the interpreter.

    Multi-path notifications and notifications carrying a platform flag
    are not interpretable and are dropped here.

    Args:
        notification: Notification from a raw event source

    Returns:
        True if the notification names exactly one path and has no flag
    """
    if notification.flag is not None:
        logger.debug(f"Dropping flagged notification: {notification.flag!r} {notification.paths}")
        return False
    if len(notification.paths) != 1:
        logger.debug(f"Dropping {len(notification.paths)}-path notification: {notification}")
        return False
    return True


def resolve_targets(targets: Iterable[Path]) -> List[Path]:
    """
    Resolve and validate target paths.

    Args:
        targets: Paths to watch

    Returns:
        Resolved target paths, in the given order

    Raises:
        TargetNotFoundError: If a target does not exist
        TargetOverlapError: If a target lies inside another, or repeats one
    """
    resolved: List[Path] = []

    for target in targets:
        path = Path(target).resolve()
        if not path.exists():
            raise TargetNotFoundError(f"Target does not exist: {path}")

        for existing in resolved:
            if path == existing:
                raise TargetOverlapError(f"Target given twice: {path}")
            if existing in path.parents:
                raise TargetOverlapError(f"'{path}' is already inside target '{existing}'")
            if path in existing.parents:
                raise TargetOverlapError(f"'{path}' contains target '{existing}'")

        resolved.append(path)

    return resolved


class FSEventHandler(FileSystemEventHandler):
    """Handler that converts watchdog events to RawNotification."""

    def __init__(self, callback: Callable[[RawNotification], None]):
        super().__init__()
        self.callback = callback

    def _emit(self, kind: RawKind, *paths) -> None:
        self.callback(RawNotification(kind, tuple(Path(os.fsdecode(p)) for p in paths)))

    def on_created(self, event):
        self._emit(RawKind.CREATE, event.src_path)

    def on_deleted(self, event):
        self._emit(RawKind.REMOVE, event.src_path)

    def on_modified(self, event):
        # Synthesized by watchdog for the parent of a changed entry.
        if isinstance(event, DirModifiedEvent):
            self._emit(RawKind.OTHER, event.src_path)
            return
        self._emit(RawKind.MODIFY, event.src_path)

    def on_moved(self, event):
        # A rename reaches the interpreter as adjacent modifies, old path first.
        self._emit(RawKind.MODIFY, event.src_path)
        self._emit(RawKind.MODIFY, event.dest_path)

    def on_opened(self, event):
        self._emit(RawKind.ACCESS, event.src_path)

    def on_closed(self, event):
        self._emit(RawKind.ACCESS, event.src_path)


class FSEventSource:
    """
    Iterable source of raw notifications for one or more targets.

    A single watchdog observer schedules one handler per target and feeds
    an internal queue. Iteration blocks on that queue and ends once
    close() is called.
    """

    def __init__(self, targets: Iterable[Path], recursive: bool = True):
        """
        Initialize the source.

        Args:
            targets: Paths to watch
            recursive: Whether to watch directories recursively

        Raises:
            TargetNotFoundError: If a target does not exist
            TargetOverlapError: If targets overlap
        """
        self.targets = resolve_targets(targets)
        self.recursive = recursive
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._handler = FSEventHandler(self._queue.put)
        self._observer: Optional[Observer] = None
        self._lock = threading.Lock()
        self._closed = False

    def start(self) -> bool:
        """
        Start the observer.

        Returns:
            True if the observer started, False if already started or closed
        """
        with self._lock:
            if self._observer is not None or self._closed:
                return False

            observer = Observer()
            for target in self.targets:
                observer.schedule(self._handler, str(target), recursive=self.recursive)
            observer.start()

            self._observer = observer
            logger.info(f"Watching {len(self.targets)} target(s), recursive={self.recursive}")
            return True

    def close(self) -> None:
        """Stop the observer and end iteration. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            observer, self._observer = self._observer, None

        if observer is not None:
            observer.stop()
            observer.join(timeout=5.0)

        self._queue.put(_CLOSED)

    @property
    def is_running(self) -> bool:
        """Check if the observer is running."""
        with self._lock:
            return self._observer is not None

    def __iter__(self) -> Iterator[RawNotification]:
        self.start()
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                self._queue.put(_CLOSED)
                return
            yield item
