"""
Tests for the debounce schedulers.
"""
import threading
from unittest.mock import Mock

from core.services.scheduling import ManualScheduler, ThreadingScheduler


class TestManualScheduler:
    """Test the virtual-clock scheduler."""

    def test_fires_when_due(self):
        scheduler = ManualScheduler()
        callback = Mock()
        scheduler.call_later(800, callback)

        assert scheduler.advance(799) == 0
        callback.assert_not_called()

        assert scheduler.advance(1) == 1
        callback.assert_called_once()
        assert scheduler.now_ms == 800

    def test_cancelled_call_never_fires(self):
        scheduler = ManualScheduler()
        callback = Mock()
        call = scheduler.call_later(100, callback)

        call.cancel()

        assert call.active is False
        assert scheduler.advance(1000) == 0
        callback.assert_not_called()

    def test_fires_in_due_order(self):
        scheduler = ManualScheduler()
        fired = []
        scheduler.call_later(300, lambda: fired.append('late'))
        scheduler.call_later(100, lambda: fired.append('early'))

        scheduler.advance(500)

        assert fired == ['early', 'late']

    def test_calls_scheduled_by_callbacks(self):
        """A callback may schedule another call that falls due in the same advance."""
        scheduler = ManualScheduler()
        fired = []

        def first():
            fired.append(scheduler.now_ms)
            scheduler.call_later(100, lambda: fired.append(scheduler.now_ms))

        scheduler.call_later(100, first)
        scheduler.advance(250)

        assert fired == [100, 200]

    def test_run_all(self):
        scheduler = ManualScheduler()
        callback = Mock()
        scheduler.call_later(5000, callback)

        assert scheduler.pending_count == 1
        assert scheduler.run_all() == 1
        assert scheduler.pending_count == 0
        assert scheduler.now_ms == 5000


class TestThreadingScheduler:
    """Test the timer-thread scheduler."""

    def test_fires_callback(self):
        done = threading.Event()

        ThreadingScheduler().call_later(10, done.set)

        assert done.wait(timeout=2.0) is True

    def test_cancel_before_due(self):
        callback = Mock()
        call = ThreadingScheduler().call_later(10000, callback)

        call.cancel()

        assert call.active is False
        callback.assert_not_called()
