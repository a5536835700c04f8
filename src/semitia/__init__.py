"""
semitia

Watches a filesystem subtree and turns the raw, noisy stream of change
notifications into a small set of semantic events.

Features:
- Public events: touch, new, modify, move, remove
- Burst disambiguation with short timing windows and per-path state
- Create + write within one window reported once, as new
- Momentary files (created and removed within one window) suppressed
- Subscribe-by-type interface with cancellable subscriptions
- Deterministic replay on a virtual clock
"""

from .models import (
    RawKind,
    EventType,
    IgnoreReason,
    MomentaryPhase,
    RawNotification,
    RawRecord,
    WatchStatus,
    MomentaryMarker,
    ClassifiedEvent,
    Ignored,
    Momentary,
    Created,
    Modified,
    Moved,
    Removed,
    WatchEvent,
    TouchEvent,
    NewEvent,
    ModifyEvent,
    MoveEvent,
    RemoveEvent,
)

from .config import WatcherConfig

from .exceptions import (
    WatcherError,
    InvariantViolation,
    SourceExhaustedError,
    WatcherAlreadyRunningError,
    WatcherAbortedError,
    TargetError,
    TargetNotFoundError,
    TargetOverlapError,
)

from .timers import Scheduler, ThreadingScheduler, ManualScheduler, TimerTable
from .event_processor import EventInterpreter, EventCoalescer
from .fs_watcher import FSEventSource, FSEventHandler, accept_notification
from .watcher import Watcher, Subscription, replay
from .dispatcher import ActionDispatcher


__all__ = [
    # Models
    "RawKind",
    "EventType",
    "IgnoreReason",
    "MomentaryPhase",
    "RawNotification",
    "RawRecord",
    "WatchStatus",
    "MomentaryMarker",
    "ClassifiedEvent",
    "Ignored",
    "Momentary",
    "Created",
    "Modified",
    "Moved",
    "Removed",
    "WatchEvent",
    "TouchEvent",
    "NewEvent",
    "ModifyEvent",
    "MoveEvent",
    "RemoveEvent",
    # Config
    "WatcherConfig",
    # Exceptions
    "WatcherError",
    "InvariantViolation",
    "SourceExhaustedError",
    "WatcherAlreadyRunningError",
    "WatcherAbortedError",
    "TargetError",
    "TargetNotFoundError",
    "TargetOverlapError",
    # Components
    "Scheduler",
    "ThreadingScheduler",
    "ManualScheduler",
    "TimerTable",
    "EventInterpreter",
    "EventCoalescer",
    "FSEventSource",
    "FSEventHandler",
    "accept_notification",
    "ActionDispatcher",
    # Main
    "Watcher",
    "Subscription",
    "replay",
]

__version__ = "0.1.0"
