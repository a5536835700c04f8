"""Tests for timers module."""

import pytest
import threading
import time
from pathlib import Path

from semitia.timers import ManualScheduler, ThreadingScheduler, TimerTable

A = Path("/watched/a.txt")
B = Path("/watched/b.txt")


class TestManualScheduler:
    """Tests for ManualScheduler class."""

    def test_nothing_fires_without_advance(self):
        scheduler = ManualScheduler()
        calls = []
        scheduler.call_later(0.1, lambda: calls.append(1))

        assert calls == []
        assert scheduler.pending() == 1

    def test_fires_in_due_order(self):
        scheduler = ManualScheduler()
        calls = []
        scheduler.call_later(0.3, lambda: calls.append("late"))
        scheduler.call_later(0.1, lambda: calls.append("early"))
        scheduler.call_later(0.1, lambda: calls.append("early-2"))

        scheduler.advance(1.0)

        assert calls == ["early", "early-2", "late"]
        assert scheduler.now() == 1.0

    def test_clock_reads_due_time_inside_callback(self):
        scheduler = ManualScheduler(start=10.0)
        seen = []
        scheduler.call_later(0.5, lambda: seen.append(scheduler.now()))

        scheduler.advance_to(12.0)

        assert seen == [10.5]
        assert scheduler.now() == 12.0

    def test_cancelled_call_does_not_fire(self):
        scheduler = ManualScheduler()
        calls = []
        call = scheduler.call_later(0.1, lambda: calls.append(1))
        call.cancel()

        scheduler.advance(1.0)

        assert calls == []
        assert scheduler.pending() == 0

    def test_callback_may_schedule_more(self):
        scheduler = ManualScheduler()
        calls = []
        scheduler.call_later(0.1, lambda: scheduler.call_later(0.1, lambda: calls.append(scheduler.now())))

        scheduler.advance(0.5)

        assert calls == [pytest.approx(0.2)]

    def test_clock_never_moves_back(self):
        scheduler = ManualScheduler(start=5.0)
        scheduler.advance_to(1.0)
        assert scheduler.now() == 5.0


class TestThreadingScheduler:
    """Tests for ThreadingScheduler class."""

    def test_call_later_fires(self):
        scheduler = ThreadingScheduler()
        fired = threading.Event()
        scheduler.call_later(0.01, fired.set)

        assert fired.wait(timeout=2.0)

    def test_cancel_prevents_call(self):
        scheduler = ThreadingScheduler()
        fired = threading.Event()
        timer = scheduler.call_later(0.1, fired.set)
        timer.cancel()

        assert not fired.wait(timeout=0.3)

    def test_now_is_monotonic(self):
        scheduler = ThreadingScheduler()
        first = scheduler.now()
        time.sleep(0.01)
        assert scheduler.now() > first


class TestTimerTable:
    """Tests for TimerTable class."""

    def test_arm_and_fire(self):
        scheduler = ManualScheduler()
        table = TimerTable(scheduler, 0.05)
        calls = []

        handle = table.arm(A, "create", lambda: calls.append(A))

        assert table.pending(A, "create")
        assert len(table) == 1

        scheduler.advance(0.05)

        assert calls == [A]
        assert handle.fired is True
        assert not table.pending(A, "create")
        assert len(table) == 0

    def test_cancel(self):
        scheduler = ManualScheduler()
        table = TimerTable(scheduler, 0.05)
        calls = []

        handle = table.arm(A, "create", lambda: calls.append(A))

        assert table.cancel(A, "create") is True
        assert table.cancel(A, "create") is False
        assert handle.cancelled is True

        scheduler.advance(1.0)
        assert calls == []

    def test_cancel_unknown(self):
        table = TimerTable(ManualScheduler(), 0.05)
        assert table.cancel(A, "modify") is False

    def test_rearm_cancels_previous(self):
        scheduler = ManualScheduler()
        table = TimerTable(scheduler, 0.05)
        calls = []

        first = table.arm(A, "create", lambda: calls.append("first"))
        scheduler.advance(0.03)
        table.arm(A, "create", lambda: calls.append("second"))

        scheduler.advance(0.03)
        assert calls == []
        assert first.cancelled is True

        scheduler.advance(0.03)
        assert calls == ["second"]

    def test_slots_are_independent(self):
        scheduler = ManualScheduler()
        table = TimerTable(scheduler, 0.05)
        calls = []

        table.arm(A, "create", lambda: calls.append("create"))
        table.arm(A, "modify", lambda: calls.append("modify"))
        table.cancel(A, "create")

        assert table.pending(A, "modify")
        assert len(table) == 1

        scheduler.advance(0.1)
        assert calls == ["modify"]
        assert len(table) == 0

    def test_cancel_all(self):
        scheduler = ManualScheduler()
        table = TimerTable(scheduler, 0.05)
        calls = []

        table.arm(A, "create", lambda: calls.append(1))
        table.arm(A, "modify", lambda: calls.append(2))
        table.arm(B, "touch", lambda: calls.append(3))

        assert table.cancel_all() == 3
        assert table.paths() == []

        scheduler.advance(1.0)
        assert calls == []

    def test_close_refuses_new_timers(self):
        scheduler = ManualScheduler()
        table = TimerTable(scheduler, 0.05)
        calls = []

        table.arm(A, "create", lambda: calls.append(1))
        assert table.close() == 1

        handle = table.arm(B, "create", lambda: calls.append(2))
        assert handle.cancelled is True
        assert not table.pending(B, "create")

        scheduler.advance(1.0)
        assert calls == []

    def test_error_goes_to_handler(self):
        scheduler = ManualScheduler()
        errors = []
        table = TimerTable(scheduler, 0.05, on_error=errors.append)

        def boom():
            raise RuntimeError("boom")

        table.arm(A, "create", boom)
        scheduler.advance(0.1)

        assert len(errors) == 1
        assert str(errors[0]) == "boom"

    def test_error_propagates_without_handler(self):
        scheduler = ManualScheduler()
        table = TimerTable(scheduler, 0.05)

        def boom():
            raise RuntimeError("boom")

        table.arm(A, "create", boom)

        with pytest.raises(RuntimeError, match="boom"):
            scheduler.advance(0.1)

    def test_cancel_wins_against_waiting_callback(self):
        scheduler = ThreadingScheduler()
        lock = threading.RLock()
        table = TimerTable(scheduler, 0.01, lock)
        calls = []

        with lock:
            table.arm(A, "create", lambda: calls.append(A))
            # the timer thread is now blocked on the lock
            time.sleep(0.1)
            table.cancel(A, "create")

        time.sleep(0.1)
        assert calls == []

    def test_threaded_fire(self):
        table = TimerTable(ThreadingScheduler(), 0.01)
        fired = threading.Event()

        table.arm(A, "touch", fired.set)

        assert fired.wait(timeout=2.0)
        time.sleep(0.05)
        assert len(table) == 0
