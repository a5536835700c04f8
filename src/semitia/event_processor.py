"""Two-layer reclassification of raw change records into watch events."""

import logging
from dataclasses import replace
from functools import partial
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from .exceptions import InvariantViolation
from .models import (
    ClassifiedEvent,
    Created,
    IgnoreReason,
    Ignored,
    Modified,
    ModifyEvent,
    Momentary,
    MomentaryMarker,
    MomentaryPhase,
    MoveEvent,
    Moved,
    NewEvent,
    RawKind,
    RawRecord,
    RemoveEvent,
    Removed,
    TouchEvent,
    WatchEvent,
    WatchStatus,
)
from .timers import TimerTable

logger = logging.getLogger(__name__)

CREATE_SLOT = "create"
MODIFY_SLOT = "modify"
TOUCH_SLOT = "touch"


class EventInterpreter:
    """
    Turns raw records into classified events.

    Bursts of notifications are disambiguated with short timing windows
    and per-path state:

    - create arms a create-confirm timer; modifies trailing it are noise
    - two modifies on one path within the window confirm an edit
    - two modifies on different paths within the window are a move
    - a lone modify arms a modify-confirm timer
    - create followed by remove within the window is momentary

    Records must be processed one at a time, in arrival order, by the
    holder of the timer table's lock.
    """

    def __init__(
        self,
        emit: Callable[[ClassifiedEvent], None],
        timers: TimerTable,
        threshold: float,
    ):
        """
        Initialize the interpreter.

        Args:
            emit: Receives every classified event, immediate or timer driven
            timers: Table holding create and modify confirm timers
            threshold: Debounce window in seconds
        """
        self._emit = emit
        self._timers = timers
        self.threshold = threshold

        self.current: Optional[WatchStatus] = None
        self.previous: Optional[WatchStatus] = None
        self.momentary: Optional[MomentaryMarker] = None

        # path -> time of a create whose trailing modifies are suppressed
        self._suppressed: Dict[Path, float] = {}
        # unconfirmed creates that absorbed a write
        self._written: Set[Path] = set()
        self._batch: Optional[List[ClassifiedEvent]] = None

    def process(self, record: RawRecord) -> List[ClassifiedEvent]:
        """
        Process one raw record.

        Args:
            record: The record to interpret

        Returns:
            Classified events emitted while processing this record; events
            produced later by timers are only passed to ``emit``

        Raises:
            InvariantViolation: If the record kind is not recognized
        """
        if record.kind in (RawKind.ACCESS, RawKind.OTHER):
            return []

        self.current = WatchStatus(record.kind, record.path, record.observed_at)
        self._prune()

        logger.debug(
            f"{record.kind} {record.path} @ {record.observed_at:.4f} "
            f"(previous: {self.previous}, momentary: {self.momentary})"
        )

        self._batch = []
        try:
            if record.kind == RawKind.CREATE:
                self._on_create(record.path)
            elif record.kind == RawKind.MODIFY:
                self._on_modify(record.path)
            elif record.kind == RawKind.REMOVE:
                self._on_remove(record.path)
            else:
                raise InvariantViolation(f"unexpected record kind: {record.kind!r}")
            return self._batch
        finally:
            self._batch = None
            self.previous = self.current

    def cancel_all(self) -> int:
        """
        Cancel all pending timers and forget transient state.

        Returns:
            Number of timers cancelled
        """
        count = self._timers.cancel_all()
        self._suppressed.clear()
        self._written.clear()
        self.momentary = None
        return count

    # --- record handlers ---

    def _on_create(self, path: Path) -> None:
        now = self.current.time

        self.momentary = MomentaryMarker(MomentaryPhase.CREATE, path, now)
        self._timers.cancel(path, MODIFY_SLOT)

        self._suppressed[path] = now
        self._written.discard(path)
        self._timers.arm(path, CREATE_SLOT, partial(self._confirm_create, path))

        self._dispatch(Ignored(IgnoreReason.INITIAL_CREATE, path))

    def _on_modify(self, path: Path) -> None:
        # Not exclusive: the remaining checks still run on this record.
        if self._in_momentary(MomentaryPhase.CREATE, path):
            self.momentary = replace(self.momentary, phase=MomentaryPhase.MODIFY)
            self._dispatch(Ignored(IgnoreReason.MOMENTARY_PROGRESS, path))

        if self._in_modify_suppression(path):
            self._absorb_write(path)
            self._dispatch(Ignored(IgnoreReason.WITH_CREATE, path))
            return

        previous = self.previous
        if (
            previous is not None
            and previous.kind == RawKind.MODIFY
            and self._within(previous.time)
        ):
            if previous.path == path and self._timers.pending(path, MODIFY_SLOT):
                self._timers.cancel(path, MODIFY_SLOT)
                self._dispatch(Modified(path))
                return

            if previous.path != path and self._timers.pending(previous.path, MODIFY_SLOT):
                self._timers.cancel(previous.path, MODIFY_SLOT)
                self._dispatch(Moved(previous.path, path))
                return

        if self._timers.pending(path, CREATE_SLOT):
            self._absorb_write(path)
            self._dispatch(Ignored(IgnoreReason.WITH_CREATE, path))
            return

        self._timers.arm(path, MODIFY_SLOT, partial(self._confirm_modify, path))
        self._dispatch(Ignored(IgnoreReason.INITIAL_MODIFY, path))

    def _on_remove(self, path: Path) -> None:
        marker = self.momentary
        if marker is not None and marker.path == path and self._within(marker.since):
            self._timers.cancel(path, CREATE_SLOT)
            self._suppressed.pop(path, None)
            self._written.discard(path)
            self.momentary = None

            self._dispatch(Momentary(path))
            return

        self._dispatch(Removed(path))

    # --- timer callbacks ---

    def _confirm_create(self, path: Path) -> None:
        written = path in self._written
        self._written.discard(path)
        self._suppressed.pop(path, None)

        if self.momentary is not None and self.momentary.path == path:
            self.momentary = None

        self._dispatch(Created(path))
        if written:
            self._dispatch(Modified(path))

    def _confirm_modify(self, path: Path) -> None:
        self._dispatch(Modified(path))

    # --- helpers ---

    def _dispatch(self, event: ClassifiedEvent) -> None:
        if self._batch is not None:
            self._batch.append(event)
        logger.debug(f"classified: {event}")
        self._emit(event)

    def _absorb_write(self, path: Path) -> None:
        if self._timers.pending(path, CREATE_SLOT):
            self._written.add(path)

    def _within(self, stored: float) -> bool:
        return abs(self.current.time - stored) <= self.threshold

    def _in_momentary(self, phase: MomentaryPhase, path: Path) -> bool:
        marker = self.momentary
        return (
            marker is not None
            and marker.phase == phase
            and marker.path == path
            and self._within(marker.since)
        )

    def _in_modify_suppression(self, path: Path) -> bool:
        since = self._suppressed.get(path)
        return since is not None and self._within(since)

    def _prune(self) -> None:
        """Drop transient state that fell out of the window."""
        for path, since in list(self._suppressed.items()):
            if not self._within(since):
                del self._suppressed[path]

        if self.momentary is not None and not self._within(self.momentary.since):
            self.momentary = None


class EventCoalescer:
    """
    Merges classified events into public watch events.

    A create waits one window for a paired modify: with one it becomes
    ``new``, without one ``touch``. Moves and removes pass through;
    momentary and ignored events are swallowed.
    """

    def __init__(
        self,
        emit: Callable[[WatchEvent], None],
        timers: TimerTable,
    ):
        """
        Initialize the coalescer.

        Args:
            emit: Receives every public event, immediate or timer driven
            timers: Table holding confirm-as-touch timers
        """
        self._emit = emit
        self._timers = timers

    def process(self, event: ClassifiedEvent) -> Optional[WatchEvent]:
        """
        Process one classified event.

        Args:
            event: Event produced by the interpreter

        Returns:
            The public event emitted immediately, if any

        Raises:
            InvariantViolation: If the event is not a classified event
        """
        if isinstance(event, Created):
            self._timers.arm(event.at, TOUCH_SLOT, partial(self._confirm_touch, event.at))
            return None

        if isinstance(event, Modified):
            if self._timers.cancel(event.at, TOUCH_SLOT):
                return self._dispatch(NewEvent(event.at))
            return self._dispatch(ModifyEvent(event.at))

        if isinstance(event, Moved):
            return self._dispatch(MoveEvent(event.from_path, event.to_path))

        if isinstance(event, Removed):
            return self._dispatch(RemoveEvent(event.at))

        if isinstance(event, (Momentary, Ignored)):
            return None

        raise InvariantViolation(f"unexpected classified event: {event!r}")

    def cancel_all(self) -> int:
        """Cancel all pending touch timers."""
        return self._timers.cancel_all()

    def _confirm_touch(self, path: Path) -> None:
        self._dispatch(TouchEvent(path))

    def _dispatch(self, event: WatchEvent) -> WatchEvent:
        self._emit(event)
        return event
