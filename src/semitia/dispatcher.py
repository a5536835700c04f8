"""Runs a configured command for selected watch events."""

import logging
import subprocess
from typing import Iterable, List, Optional, Sequence

from .config import WatcherConfig
from .models import EVENT_CLASSES, EventType, WatchEvent
from .watcher import Subscription, Watcher

logger = logging.getLogger(__name__)


class ActionDispatcher:
    """
    Invokes a command once per accepted event.

    The command receives the affected path(s) as trailing arguments:
    one path for touch/new/modify/remove, source and destination for move.
    """

    def __init__(
        self,
        command: Sequence[str],
        events: Iterable[EventType],
        config: Optional[WatcherConfig] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            command: Program and leading arguments
            events: Event types that trigger the command
            config: Supplies the hidden/backup file filter

        Raises:
            ValueError: If command or events is empty
        """
        self.command = list(command)
        self.events = frozenset(events)
        self.config = config or WatcherConfig()

        if not self.command:
            raise ValueError("command must not be empty")
        if not self.events:
            raise ValueError("at least one event type must be selected")

        self._subscriptions: List[Subscription] = []
        self.processes: List[subprocess.Popen] = []

    def attach(self, watcher: Watcher) -> List[Subscription]:
        """
        Subscribe to the selected event types on a watcher.

        Returns:
            The new subscriptions
        """
        subscriptions = [
            watcher.subscribe(EVENT_CLASSES[event_type], self.handle)
            for event_type in sorted(self.events, key=lambda e: e.value)
        ]
        self._subscriptions.extend(subscriptions)
        return subscriptions

    def detach(self) -> int:
        """
        Cancel all subscriptions made by attach().

        Returns:
            Number of subscriptions cancelled
        """
        count = sum(1 for s in self._subscriptions if s.cancel())
        self._subscriptions.clear()
        return count

    def accepts(self, event: WatchEvent) -> bool:
        """Check whether an event should trigger the command."""
        if event.event_type not in self.events:
            return False
        return not any(self.config.should_ignore(path) for path in event.paths)

    def handle(self, event: WatchEvent) -> Optional[subprocess.Popen]:
        """
        Run the command for an event if it is accepted.

        Returns:
            The started process, or None if the event was skipped or the
            command could not be started
        """
        if not self.accepts(event):
            logger.debug(f"Skipping {event.event_type.value}: {event.paths}")
            return None

        args = self.command + [str(path) for path in event.paths]
        logger.info(f"{event.event_type.value}: {' '.join(args)}")

        try:
            process = subprocess.Popen(args)
        except OSError as e:
            logger.error(f"Failed to run {self.command[0]!r}: {e}")
            return None

        self.processes = [p for p in self.processes if p.poll() is None]
        self.processes.append(process)
        return process

    def wait(self, timeout: Optional[float] = None) -> List[int]:
        """
        Wait for started processes to finish.

        Returns:
            Return codes in start order
        """
        codes = [process.wait(timeout=timeout) for process in self.processes]
        self.processes.clear()
        return codes
