"""Custom exceptions for the semitia package."""


class WatcherError(Exception):
    """Base exception for all watcher errors."""
    pass


class InvariantViolation(WatcherError):
    """Internal state reached a condition the event pipeline cannot handle."""
    pass


class SourceExhaustedError(WatcherError):
    """The raw event source ended without the watcher being aborted."""
    pass


class WatcherAlreadyRunningError(WatcherError):
    """Watcher loop is already running."""
    pass


class WatcherAbortedError(WatcherError):
    """Watcher has been aborted and cannot be restarted."""
    pass


class TargetError(WatcherError):
    """Error related to watched target paths."""
    pass


class TargetNotFoundError(TargetError):
    """Specified target path does not exist."""
    pass


class TargetOverlapError(TargetError):
    """Target path is inside, or contains, another watched target."""
    pass
