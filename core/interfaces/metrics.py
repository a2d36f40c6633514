"""
Metrics interface for tracking result flushes and run transitions.

Provides structured metrics collection for monitoring the engine.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional


@dataclass
class FlushMetrics:
    """Metrics for a single result flush."""
    run_id: str
    batch_size: int
    skipped: int
    duration_ms: float
    success: bool = True
    triggered_by: str = "timer"  # 'timer', 'explicit'
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def duration_seconds(self) -> float:
        """Duration in seconds."""
        return self.duration_ms / 1000


@dataclass
class TransitionMetrics:
    """A lifecycle transition of a run (created, target_added, closed, ...)."""
    run_id: str
    transition: str
    success: bool = True
    timestamp: datetime = field(default_factory=datetime.now)


class IMetricsCollector(ABC):
    """Interface for metrics collection implementations."""

    @abstractmethod
    def record_flush(self, metrics: FlushMetrics) -> None:
        """Record a result flush.

        Args:
            metrics: Flush metrics to record
        """
        pass

    @abstractmethod
    def record_transition(self, run_id: str, transition: str, success: bool = True) -> None:
        """Record a run lifecycle transition.

        Args:
            run_id: Run identifier
            transition: Transition name
            success: Whether the backend accepted it
        """
        pass

    @abstractmethod
    def get_summary(self) -> Dict:
        """Get aggregated metrics summary.

        Returns:
            Dictionary with metrics summary
        """
        pass

    @abstractmethod
    def export(self, format: str = "json") -> str:
        """Export metrics in specified format.

        Args:
            format: Export format ('json', 'csv')

        Returns:
            Formatted metrics string
        """
        pass

    @abstractmethod
    def reset(self) -> None:
        """Reset all collected metrics."""
        pass
