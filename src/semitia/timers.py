"""Debounce timers: schedulers and per-path timer tables."""

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Scheduler(ABC):
    """Runs callbacks after a delay and exposes the clock it measures with."""

    @abstractmethod
    def now(self) -> float:
        """Current clock reading in seconds."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]):
        """
        Schedule a callback.

        Args:
            delay: Seconds to wait
            callback: Function to invoke

        Returns:
            A handle whose cancel() prevents the call if it has not started
        """


class ThreadingScheduler(Scheduler):
    """Scheduler backed by daemon threading.Timer threads."""

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class _ManualCall:
    __slots__ = ("when", "callback", "cancelled")

    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """
    Scheduler driven by an explicit virtual clock.

    Nothing fires until advance() or advance_to() moves the clock past a
    callback's due time. Due callbacks fire in due-time order, ties in the
    order they were scheduled, on the thread that advances the clock.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, _ManualCall]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualCall:
        call = _ManualCall(self._now + delay, callback)
        heapq.heappush(self._queue, (call.when, next(self._seq), call))
        return call

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every callback that falls due."""
        self.advance_to(self._now + seconds)

    def advance_to(self, when: float) -> None:
        """Move the clock to an absolute reading, firing due callbacks."""
        while self._queue and self._queue[0][0] <= when:
            _, _, call = heapq.heappop(self._queue)
            if call.cancelled:
                continue
            self._now = max(self._now, call.when)
            call.callback()
        self._now = max(self._now, when)

    def pending(self) -> int:
        """Number of scheduled, uncancelled callbacks."""
        return sum(1 for _, _, call in self._queue if not call.cancelled)


class TimerHandle:
    """A pending emission owned by a TimerTable."""

    __slots__ = ("path", "slot", "callback", "cancelled", "fired", "_scheduled")

    def __init__(self, path: Path, slot: str, callback: Callable[[], None]):
        self.path = path
        self.slot = slot
        self.callback = callback
        self.cancelled = False
        self.fired = False
        self._scheduled = None

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "fired" if self.fired else "pending"
        return f"<TimerHandle {self.slot} {self.path} {state}>"


class TimerTable:
    """
    Per-path table of debounce timers.

    Each path holds at most one timer per named slot. Arming an occupied
    slot cancels the previous timer. A path's entry disappears once no slot
    is pending.

    Callbacks run while holding ``lock`` and re-check their cancelled flag
    under it, so cancel() called by the lock holder always wins against a
    timer that has not started its callback yet.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        delay: float,
        lock: Optional[threading.RLock] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        """
        Initialize the timer table.

        Args:
            scheduler: Scheduler that runs the timers
            delay: Seconds between arming and firing
            lock: Lock serializing callbacks with the table's owner
            on_error: Receives exceptions raised by fired callbacks;
                if None they propagate to the scheduler
        """
        self.scheduler = scheduler
        self.delay = delay
        self._lock = lock or threading.RLock()
        self._on_error = on_error
        self._timers: Dict[Path, Dict[str, TimerHandle]] = {}
        self._closed = False

    def arm(self, path: Path, slot: str, callback: Callable[[], None]) -> TimerHandle:
        """
        Schedule ``callback`` for ``path`` in ``slot`` after the table's delay.

        Args:
            path: Path the timer belongs to
            slot: Slot name within the path's entry
            callback: Invoked once when the timer fires

        Returns:
            The new timer handle
        """
        with self._lock:
            self.cancel(path, slot)
            handle = TimerHandle(path, slot, callback)
            if self._closed:
                handle.cancelled = True
                return handle
            self._timers.setdefault(path, {})[slot] = handle
            handle._scheduled = self.scheduler.call_later(self.delay, lambda: self._fire(handle))
            return handle

    def cancel(self, path: Path, slot: str) -> bool:
        """
        Cancel the timer in ``slot`` for ``path``.

        Returns:
            True if a pending timer was cancelled
        """
        with self._lock:
            slots = self._timers.get(path)
            if not slots or slot not in slots:
                return False
            handle = slots.pop(slot)
            if not slots:
                del self._timers[path]
            handle.cancelled = True
            if handle._scheduled is not None:
                handle._scheduled.cancel()
            return True

    def pending(self, path: Path, slot: str) -> bool:
        """Check whether ``path`` has a pending timer in ``slot``."""
        with self._lock:
            return slot in self._timers.get(path, {})

    def cancel_all(self) -> int:
        """
        Cancel every pending timer.

        Returns:
            Number of timers cancelled
        """
        with self._lock:
            count = 0
            for path in list(self._timers):
                for slot in list(self._timers.get(path, {})):
                    if self.cancel(path, slot):
                        count += 1
            return count

    def close(self) -> int:
        """Cancel every pending timer and refuse to arm new ones."""
        with self._lock:
            self._closed = True
            return self.cancel_all()

    def paths(self) -> List[Path]:
        """Paths that currently hold at least one pending timer."""
        with self._lock:
            return list(self._timers)

    def _fire(self, handle: TimerHandle) -> None:
        with self._lock:
            if handle.cancelled or self._closed:
                return

            handle.fired = True
            slots = self._timers.get(handle.path)
            if slots is not None and slots.get(handle.slot) is handle:
                del slots[handle.slot]
                if not slots:
                    del self._timers[handle.path]

            try:
                handle.callback()
            except Exception as e:
                if self._on_error is None:
                    raise
                logger.debug(f"Timer {handle!r} failed: {e}")
                self._on_error(e)

    def __len__(self) -> int:
        """Return the number of paths with pending timers."""
        with self._lock:
            return len(self._timers)
