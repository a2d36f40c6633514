"""
Scheduler interface used for debounced flushes.

Injected into the result edit buffer so timing can be driven by real
timers or by a virtual clock.
"""
from abc import ABC, abstractmethod
from typing import Callable


class IScheduledCall(ABC):
    """Handle to a callback scheduled for later."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running. No-op once it has run."""
        pass

    @property
    @abstractmethod
    def active(self) -> bool:
        """True until the callback has run or been cancelled."""
        pass


class IScheduler(ABC):
    """Interface for delayed callback execution."""

    @abstractmethod
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> IScheduledCall:
        """Run callback once after delay_ms milliseconds.

        Args:
            delay_ms: Delay in milliseconds
            callback: Zero-argument callable

        Returns:
            Handle that can cancel the call
        """
        pass
