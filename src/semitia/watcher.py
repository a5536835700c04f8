"""Watcher orchestrator: feeds raw notifications through both layers."""

import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Type, Union

from .config import WatcherConfig
from .event_processor import EventCoalescer, EventInterpreter
from .exceptions import (
    InvariantViolation,
    SourceExhaustedError,
    WatcherAbortedError,
    WatcherAlreadyRunningError,
)
from .fs_watcher import FSEventSource, accept_notification
from .models import (
    EVENT_CLASSES,
    ClassifiedEvent,
    EventType,
    RawNotification,
    RawRecord,
    WatchEvent,
)
from .timers import ManualScheduler, Scheduler, ThreadingScheduler, TimerTable

logger = logging.getLogger(__name__)

Handler = Callable[[WatchEvent], None]


class Subscription:
    """A handler registered for one public event class."""

    def __init__(self, watcher: "Watcher", event_class: Type[WatchEvent], handler: Handler):
        self._watcher = watcher
        self.event_class = event_class
        self.handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> bool:
        """
        Detach the handler.

        Returns:
            True if the handler was attached until now
        """
        if not self._active:
            return False
        self._active = False
        self._watcher._unsubscribe(self)
        return True


class Watcher:
    """
    Watches a filesystem subtree and publishes touch/new/modify/move/remove.

    Raw notifications pass through an EventInterpreter and an
    EventCoalescer. Both layers own their timer tables; record processing,
    timer callbacks and abort() are serialized on one re-entrant lock.
    Handlers run synchronously, in emission order, while that lock is held.
    """

    def __init__(
        self,
        config: Optional[WatcherConfig] = None,
        source: Optional[Iterable[RawNotification]] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        """
        Initialize the watcher.

        Args:
            config: Watcher configuration
            source: Iterable of raw notifications; defaults to an
                FSEventSource over config.targets, created on first use
            scheduler: Scheduler for debounce timers and record timestamps
        """
        self.config = config or WatcherConfig()
        self.scheduler = scheduler or ThreadingScheduler()
        self._source = source

        self._lock = threading.RLock()
        threshold = self.config.threshold

        self._interpreter_timers = TimerTable(self.scheduler, threshold, self._lock, self._fail)
        self._coalescer_timers = TimerTable(self.scheduler, threshold, self._lock, self._fail)
        self._interpreter = EventInterpreter(self._on_classified, self._interpreter_timers, threshold)
        self._coalescer = EventCoalescer(self._publish, self._coalescer_timers)

        self._handlers: Dict[Type[WatchEvent], List[Subscription]] = {
            cls: [] for cls in EVENT_CLASSES.values()
        }
        self._captured: Optional[List[WatchEvent]] = None
        self._running = False
        self._aborted = False
        self._error: Optional[Exception] = None

    @property
    def source(self) -> Iterable[RawNotification]:
        """The raw notification source."""
        if self._source is None:
            self._source = FSEventSource(self.config.targets, self.config.recursive)
        return self._source

    # --- subscriptions ---

    def subscribe(
        self,
        event_type: Union[EventType, Type[WatchEvent]],
        handler: Handler,
    ) -> Subscription:
        """
        Register a handler for one public event type.

        Args:
            event_type: An EventType or one of the public event classes
            handler: Called with each matching event

        Returns:
            A subscription that can be cancelled

        Raises:
            TypeError: If event_type is not a public event type
        """
        if isinstance(event_type, EventType):
            event_class = EVENT_CLASSES[event_type]
        else:
            event_class = event_type

        if event_class not in self._handlers:
            raise TypeError(f"not a public event type: {event_type!r}")

        subscription = Subscription(self, event_class, handler)
        with self._lock:
            self._handlers[event_class].append(subscription)
        return subscription

    def subscribe_all(self, handler: Handler) -> List[Subscription]:
        """Register one handler for every public event type."""
        return [self.subscribe(cls, handler) for cls in EVENT_CLASSES.values()]

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscriptions = self._handlers[subscription.event_class]
            if subscription in subscriptions:
                subscriptions.remove(subscription)

    # --- processing ---

    def feed(self, item: Union[RawNotification, RawRecord]) -> List[WatchEvent]:
        """
        Push one notification or record through both layers.

        Notifications are stamped with the scheduler clock; records keep
        their own timestamp. Feeding an aborted watcher does nothing, unless
        a failure aborted it; that failure is raised again.

        Args:
            item: A raw notification or an already single-path record

        Returns:
            Public events emitted while processing this item

        Raises:
            InvariantViolation: If the pipeline reaches an invalid state,
                now or earlier in a timer callback; the watcher is aborted
        """
        with self._lock:
            if self._aborted:
                self._raise_error()
                return []

            if isinstance(item, RawNotification):
                if not accept_notification(item):
                    return []
                record = RawRecord(item.kind, item.paths[0], self.scheduler.now())
            else:
                record = item

            published: List[WatchEvent] = []
            self._captured = published
            try:
                self._interpreter.process(record)
            except InvariantViolation as e:
                self._fail(e)
                raise
            finally:
                self._captured = None

            self._raise_error()
            return published

    def watch(self) -> None:
        """
        Consume the source until abort() is called.

        Raises:
            WatcherAbortedError: If the watcher was already aborted
            WatcherAlreadyRunningError: If watch() is already running
            InvariantViolation: If the pipeline failed
            SourceExhaustedError: If the source ended without abort()
        """
        with self._lock:
            if self._aborted:
                raise WatcherAbortedError("Watcher has been aborted")
            if self._running:
                raise WatcherAlreadyRunningError("Watcher is already running")
            # Created under the lock so a concurrent abort() can close it.
            source = self.source
            self._running = True

        try:
            for notification in source:
                if self._aborted:
                    break
                self.feed(notification)
        finally:
            self._running = False

        self._raise_error()

        if not self._aborted:
            self.abort()
            raise SourceExhaustedError("Raw event source ended without abort")

    def abort(self) -> None:
        """
        Stop consuming, cancel every pending timer and release the source.

        Safe to call more than once, from any thread; only the first call
        has an effect. No event is published after it returns.
        """
        with self._lock:
            if self._aborted:
                return
            self._aborted = True

            cancelled = self._interpreter.cancel_all() + self._coalescer.cancel_all()
            self._interpreter_timers.close()
            self._coalescer_timers.close()
            logger.debug(f"Aborted watcher, cancelled {cancelled} pending timer(s)")

        close = getattr(self._source, "close", None)
        if close is not None:
            close()

    @property
    def is_running(self) -> bool:
        """Check if watch() is consuming the source."""
        return self._running

    @property
    def is_aborted(self) -> bool:
        return self._aborted

    @property
    def error(self) -> Optional[Exception]:
        """The error that aborted the watcher, if any."""
        return self._error

    def pending_timers(self) -> int:
        """Number of paths with a pending timer, across both layers."""
        with self._lock:
            return len(self._interpreter_timers) + len(self._coalescer_timers)

    def _on_classified(self, event: ClassifiedEvent) -> None:
        self._coalescer.process(event)

    def _publish(self, event: WatchEvent) -> None:
        if self._aborted:
            return

        logger.debug(f"publish: {event}")
        if self._captured is not None:
            self._captured.append(event)

        for subscription in list(self._handlers[type(event)]):
            try:
                subscription.handler(event)
            except Exception as e:
                logger.error(f"Handler for {event.event_type.value} failed: {e}", exc_info=True)

    def _raise_error(self) -> None:
        if self._error is not None:
            raise self._error

    def _fail(self, error: Exception) -> None:
        with self._lock:
            if self._error is None:
                self._error = error
                logger.error(f"Watcher failed: {error}")
        self.abort()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.abort()
        return False


def replay(records: Iterable[RawRecord], config: Optional[WatcherConfig] = None) -> List[WatchEvent]:
    """
    Replay timestamped records through a fresh watcher on a virtual clock.

    The clock starts at the first record's timestamp, advances to each
    record's timestamp before it is fed, and finally runs until every
    pending timer has fired.

    Args:
        records: Records in arrival order, timestamps non-decreasing
        config: Watcher configuration (debounce threshold)

    Returns:
        The public events in emission order

    Raises:
        InvariantViolation: If the pipeline failed, including inside a
            timer callback
    """
    records = list(records)
    start = records[0].observed_at if records else 0.0
    scheduler = ManualScheduler(start)
    watcher = Watcher(config=config, source=[], scheduler=scheduler)

    events: List[WatchEvent] = []
    watcher.subscribe_all(events.append)

    for record in records:
        scheduler.advance_to(record.observed_at)
        watcher.feed(record)

    scheduler.advance(3 * watcher.config.threshold)
    watcher.abort()

    if watcher.error is not None:
        raise watcher.error
    return events
