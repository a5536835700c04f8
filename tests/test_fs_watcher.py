"""Tests for filesystem watcher module."""

import pytest
import time
import threading
from pathlib import Path

from watchdog.events import (
    DirModifiedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from semitia.exceptions import TargetNotFoundError, TargetOverlapError
from semitia.fs_watcher import (
    FSEventHandler,
    FSEventSource,
    accept_notification,
    resolve_targets,
)
from semitia.models import RawKind, RawNotification


class TestAcceptNotification:
    """Tests for accept_notification function."""

    def test_single_path(self):
        assert accept_notification(RawNotification(RawKind.CREATE, (Path("/a"),)))

    def test_multi_path(self):
        notification = RawNotification(RawKind.MODIFY, (Path("/a"), Path("/b")))
        assert not accept_notification(notification)

    def test_no_path(self):
        assert not accept_notification(RawNotification(RawKind.MODIFY, ()))

    def test_flagged(self):
        notification = RawNotification(RawKind.CREATE, (Path("/a"),), flag="rescan")
        assert not accept_notification(notification)


class TestResolveTargets:
    """Tests for resolve_targets function."""

    def test_resolves_existing(self, tmp_path):
        one = tmp_path / "one"
        two = tmp_path / "two"
        one.mkdir()
        two.mkdir()

        assert resolve_targets([one, two]) == [one.resolve(), two.resolve()]

    def test_missing_target(self, tmp_path):
        with pytest.raises(TargetNotFoundError):
            resolve_targets([tmp_path / "missing"])

    def test_duplicate_target(self, tmp_path):
        with pytest.raises(TargetOverlapError):
            resolve_targets([tmp_path, tmp_path])

    def test_nested_target(self, tmp_path):
        child = tmp_path / "child"
        child.mkdir()

        with pytest.raises(TargetOverlapError):
            resolve_targets([tmp_path, child])

    def test_containing_target(self, tmp_path):
        child = tmp_path / "child"
        child.mkdir()

        with pytest.raises(TargetOverlapError):
            resolve_targets([child, tmp_path])

    def test_file_target(self, tmp_path):
        file_path = tmp_path / "file.txt"
        file_path.write_text("x")

        assert resolve_targets([file_path]) == [file_path.resolve()]


class TestFSEventHandler:
    """Tests for FSEventHandler class."""

    @pytest.fixture
    def handled(self):
        notifications = []
        return FSEventHandler(notifications.append), notifications

    def test_created(self, handled):
        handler, notifications = handled
        handler.dispatch(FileCreatedEvent("/w/a.txt"))

        assert notifications == [RawNotification(RawKind.CREATE, (Path("/w/a.txt"),))]

    def test_deleted(self, handled):
        handler, notifications = handled
        handler.dispatch(FileDeletedEvent("/w/a.txt"))

        assert notifications == [RawNotification(RawKind.REMOVE, (Path("/w/a.txt"),))]

    def test_file_modified(self, handled):
        handler, notifications = handled
        handler.dispatch(FileModifiedEvent("/w/a.txt"))

        assert notifications == [RawNotification(RawKind.MODIFY, (Path("/w/a.txt"),))]

    def test_dir_modified_is_other(self, handled):
        handler, notifications = handled
        handler.dispatch(DirModifiedEvent("/w"))

        assert notifications == [RawNotification(RawKind.OTHER, (Path("/w"),))]

    def test_moved_becomes_two_modifies(self, handled):
        handler, notifications = handled
        handler.dispatch(FileMovedEvent("/w/a.txt", "/w/b.txt"))

        assert notifications == [
            RawNotification(RawKind.MODIFY, (Path("/w/a.txt"),)),
            RawNotification(RawKind.MODIFY, (Path("/w/b.txt"),)),
        ]

    def test_closed_is_access(self, handled):
        handler, notifications = handled
        handler.dispatch(FileClosedEvent("/w/a.txt"))

        assert notifications == [RawNotification(RawKind.ACCESS, (Path("/w/a.txt"),))]


class TestFSEventSource:
    """Tests for FSEventSource class."""

    def test_missing_target(self, tmp_path):
        with pytest.raises(TargetNotFoundError):
            FSEventSource([tmp_path / "missing"])

    def test_start_and_close(self, tmp_path):
        source = FSEventSource([tmp_path])

        assert source.start() is True
        assert source.start() is False
        assert source.is_running

        source.close()
        source.close()

        assert not source.is_running
        assert source.start() is False

    def test_close_ends_iteration(self, tmp_path):
        source = FSEventSource([tmp_path])
        source.close()

        assert list(source) == []
        assert list(source) == []

    def test_detects_file_creation(self, tmp_path):
        source = FSEventSource([tmp_path])
        seen = []

        def consume():
            for notification in source:
                seen.append(notification)

        thread = threading.Thread(target=consume, daemon=True)
        thread.start()
        time.sleep(0.2)

        target = tmp_path / "created.txt"
        target.write_text("hello")
        time.sleep(0.5)

        source.close()
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        assert any(
            n.kind == RawKind.CREATE and n.paths == (target.resolve(),)
            for n in seen
        )
