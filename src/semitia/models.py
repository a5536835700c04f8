"""Data models for the semitia package."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import ClassVar, Optional, Tuple


class RawKind(Enum):
    """Kinds of raw change notifications produced by an event source."""
    CREATE = "create"
    MODIFY = "modify"
    REMOVE = "remove"
    ACCESS = "access"
    OTHER = "other"


class EventType(Enum):
    """Types of public watch events."""
    TOUCH = "touch"
    NEW = "new"
    MODIFY = "modify"
    MOVE = "move"
    REMOVE = "remove"


class IgnoreReason(Enum):
    """Why a raw record did not produce a classified event of its own."""
    INITIAL_CREATE = "initial-create"
    WITH_CREATE = "with-create"
    MOMENTARY_PROGRESS = "momentary-progress"
    INITIAL_MODIFY = "initial-modify"


class MomentaryPhase(Enum):
    """Progress of a path through a not-yet-confirmed lifecycle."""
    CREATE = "create"
    MODIFY = "modify"


@dataclass(frozen=True)
class RawNotification:
    """
    A notification as delivered by a raw event source.

    Attributes:
        kind: Kind of change
        paths: Affected paths; only single-path notifications are interpretable
        flag: Platform specific flag, if the source reported one
    """
    kind: RawKind
    paths: Tuple[Path, ...]
    flag: Optional[str] = None


@dataclass(frozen=True)
class RawRecord:
    """
    A single-path change record entering the interpreter.

    Attributes:
        kind: Kind of change
        path: Affected path
        observed_at: Scheduler clock reading (seconds) when the record was taken in
    """
    kind: RawKind
    path: Path
    observed_at: float


@dataclass(frozen=True)
class WatchStatus:
    """The interpreter's view of one processed record."""
    kind: RawKind
    path: Path
    time: float


@dataclass(frozen=True)
class MomentaryMarker:
    """
    Marks the single path currently in a transient lifecycle.

    Attributes:
        phase: How far the lifecycle has progressed
        path: The path in flight
        since: Timestamp of the create that opened the lifecycle
    """
    phase: MomentaryPhase
    path: Path
    since: float


# --- classified events (interpreter output) ---


class ClassifiedEvent:
    """Base class of the interpreter's output vocabulary."""

    __slots__ = ()


@dataclass(frozen=True)
class Ignored(ClassifiedEvent):
    """Diagnostic: the record was absorbed without a classification."""
    reason: IgnoreReason
    at: Optional[Path] = None


@dataclass(frozen=True)
class Momentary(ClassifiedEvent):
    """A path appeared and vanished before any classification settled."""
    at: Path


@dataclass(frozen=True)
class Created(ClassifiedEvent):
    at: Path


@dataclass(frozen=True)
class Modified(ClassifiedEvent):
    at: Path


@dataclass(frozen=True)
class Moved(ClassifiedEvent):
    from_path: Path
    to_path: Path


@dataclass(frozen=True)
class Removed(ClassifiedEvent):
    at: Path


# --- public events ---


class WatchEvent(ABC):
    """Base class of the public events delivered to subscribers."""

    __slots__ = ()

    event_type: ClassVar[EventType]

    @property
    @abstractmethod
    def paths(self) -> Tuple[Path, ...]:
        """The affected path(s), in the order an action receives them."""

    @abstractmethod
    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""

    @staticmethod
    def from_dict(data: dict) -> "WatchEvent":
        """Create the matching event subclass from a dictionary."""
        event_type = EventType(data["type"])
        if event_type is EventType.MOVE:
            return MoveEvent(Path(data["from"]), Path(data["to"]))
        return _SINGLE_PATH_EVENTS[event_type](Path(data["at"]))


@dataclass(frozen=True)
class _SinglePathEvent(WatchEvent):
    at: Path

    @property
    def paths(self) -> Tuple[Path, ...]:
        return (self.at,)

    def to_dict(self) -> dict:
        return {"type": self.event_type.value, "at": str(self.at)}


@dataclass(frozen=True)
class TouchEvent(_SinglePathEvent):
    """Created, and nothing else happened within the window."""
    event_type: ClassVar[EventType] = EventType.TOUCH


@dataclass(frozen=True)
class NewEvent(_SinglePathEvent):
    """Created and written within the window."""
    event_type: ClassVar[EventType] = EventType.NEW


@dataclass(frozen=True)
class ModifyEvent(_SinglePathEvent):
    """An existing file was written."""
    event_type: ClassVar[EventType] = EventType.MODIFY


@dataclass(frozen=True)
class RemoveEvent(_SinglePathEvent):
    """A file was removed."""
    event_type: ClassVar[EventType] = EventType.REMOVE


@dataclass(frozen=True)
class MoveEvent(WatchEvent):
    """A file was renamed or moved."""
    event_type: ClassVar[EventType] = EventType.MOVE

    from_path: Path
    to_path: Path

    @property
    def paths(self) -> Tuple[Path, ...]:
        return (self.from_path, self.to_path)

    def to_dict(self) -> dict:
        return {
            "type": self.event_type.value,
            "from": str(self.from_path),
            "to": str(self.to_path),
        }


_SINGLE_PATH_EVENTS = {
    EventType.TOUCH: TouchEvent,
    EventType.NEW: NewEvent,
    EventType.MODIFY: ModifyEvent,
    EventType.REMOVE: RemoveEvent,
}

EVENT_CLASSES = {
    EventType.TOUCH: TouchEvent,
    EventType.NEW: NewEvent,
    EventType.MODIFY: ModifyEvent,
    EventType.MOVE: MoveEvent,
    EventType.REMOVE: RemoveEvent,
}
