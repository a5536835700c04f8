"""Configuration for the semitia package."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

ENV_PREFIX = "SEMITIA_"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class WatcherConfig:
    """
    Configuration options for the watcher.

    Attributes:
        targets: Paths to watch
        recursive: Whether to watch directories recursively
        debounce_ms: Milliseconds within which related raw records are treated
            as one logical change
        include_hidden: Whether actions also fire for dot-files and `~` backups
    """
    targets: List[Path] = field(default_factory=lambda: [Path(".")])
    recursive: bool = True
    debounce_ms: int = 50
    include_hidden: bool = False

    def __post_init__(self):
        self.targets = [Path(t) for t in self.targets]
        if self.debounce_ms <= 0:
            raise ValueError(f"debounce_ms must be positive: {self.debounce_ms}")

    @property
    def threshold(self) -> float:
        """The debounce threshold in seconds."""
        return self.debounce_ms / 1000.0

    @classmethod
    def from_env(cls, **overrides) -> "WatcherConfig":
        """
        Build a configuration from SEMITIA_* environment variables.

        Keyword overrides that are not None take precedence over the
        environment.

        Returns:
            A new WatcherConfig
        """
        values = {}

        targets = os.environ.get(ENV_PREFIX + "TARGETS")
        if targets:
            values["targets"] = [Path(t) for t in targets.split(os.pathsep) if t]

        recursive = os.environ.get(ENV_PREFIX + "RECURSIVE")
        if recursive is not None:
            values["recursive"] = recursive.strip().lower() in _TRUE_VALUES

        debounce = os.environ.get(ENV_PREFIX + "DEBOUNCE_MS")
        if debounce:
            values["debounce_ms"] = int(debounce)

        hidden = os.environ.get(ENV_PREFIX + "INCLUDE_HIDDEN")
        if hidden is not None:
            values["include_hidden"] = hidden.strip().lower() in _TRUE_VALUES

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def should_ignore(self, path: Path) -> bool:
        """
        Check if actions should skip a path.

        Backup files ending in `~` and anything under a dot-prefixed
        component are skipped unless include_hidden is set.

        Args:
            path: Path to check

        Returns:
            True if the path should be ignored
        """
        if self.include_hidden:
            return False

        if path.name.endswith("~"):
            return True

        return any(part.startswith(".") and part not in (".", "..") for part in path.parts)
