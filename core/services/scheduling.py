"""
Scheduler implementations.

ThreadingScheduler fires callbacks on timer threads. ManualScheduler keeps
a virtual clock that only moves when advance() is called.
"""
import heapq
import itertools
from threading import Lock, Timer
from typing import Callable, List, Tuple

from core.interfaces.scheduler import IScheduledCall, IScheduler


class _TimerCall(IScheduledCall):
    """Scheduled call backed by threading.Timer."""

    def __init__(self, delay_ms: int, callback: Callable[[], None]):
        self._callback = callback
        self._lock = Lock()
        self._active = True
        self._timer = Timer(max(delay_ms, 0) / 1000.0, self._run)
        self._timer.daemon = True

    def start(self) -> None:
        self._timer.start()

    def _run(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._callback()

    def cancel(self) -> None:
        with self._lock:
            self._active = False
        self._timer.cancel()

    @property
    def active(self) -> bool:
        return self._active


class ThreadingScheduler(IScheduler):
    """Real-time scheduler using threading.Timer."""

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> IScheduledCall:
        call = _TimerCall(delay_ms, callback)
        call.start()
        return call


class _ManualCall(IScheduledCall):

    def __init__(self, due_ms: int, callback: Callable[[], None]):
        self.due_ms = due_ms
        self.callback = callback
        self._active = True

    def cancel(self) -> None:
        self._active = False

    def fire(self) -> None:
        if self._active:
            self._active = False
            self.callback()

    @property
    def active(self) -> bool:
        return self._active


class ManualScheduler(IScheduler):
    """Scheduler driven by a virtual clock.

    Nothing runs until advance() moves the clock past a call's due time.
    Calls scheduled by a callback during advance() run in the same advance
    if they fall due within it.
    """

    def __init__(self):
        self._now_ms = 0
        self._seq = itertools.count()
        self._queue: List[Tuple[int, int, _ManualCall]] = []

    @property
    def now_ms(self) -> int:
        return self._now_ms

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, call in self._queue if call.active)

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> IScheduledCall:
        call = _ManualCall(self._now_ms + max(delay_ms, 0), callback)
        heapq.heappush(self._queue, (call.due_ms, next(self._seq), call))
        return call

    def advance(self, delta_ms: int) -> int:
        """Move the clock forward and fire every call that falls due.

        Returns:
            Number of callbacks fired
        """
        target = self._now_ms + delta_ms
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due_ms, _, call = heapq.heappop(self._queue)
            self._now_ms = max(self._now_ms, due_ms)
            if call.active:
                call.fire()
                fired += 1
        self._now_ms = target
        return fired

    def run_all(self) -> int:
        """Fire everything still scheduled, advancing the clock as needed."""
        fired = 0
        while self._queue:
            due_ms, _, call = heapq.heappop(self._queue)
            self._now_ms = max(self._now_ms, due_ms)
            if call.active:
                call.fire()
                fired += 1
        return fired
