"""
Metrics collector implementation.

Collects, aggregates, and exports metrics for result flushes and run
lifecycle transitions.
"""
import json
import logging
import threading
from collections import defaultdict
from typing import Dict, List, Optional

from core.interfaces.metrics import (
    IMetricsCollector,
    FlushMetrics,
    TransitionMetrics
)
from .logger import StructuredLogger


class MetricsCollector(IMetricsCollector):
    """Collects and aggregates metrics for monitoring and analysis."""

    def __init__(
        self,
        log_level: int = logging.INFO,
        enable_logging: bool = True
    ):
        """Initialize metrics collector.

        Args:
            log_level: Logging level for structured logger
            enable_logging: Enable structured logging
        """
        self._flushes: List[FlushMetrics] = []
        self._transitions: List[TransitionMetrics] = []
        # Flushes can be recorded from timer threads
        self._lock = threading.Lock()

        self._enable_logging = enable_logging
        if enable_logging:
            self._logger = StructuredLogger(
                name="qa_engine.metrics",
                level=log_level
            )
        else:
            self._logger = None

    def record_flush(self, metrics: FlushMetrics) -> None:
        """Record a result flush.

        Args:
            metrics: Flush metrics to record
        """
        with self._lock:
            self._flushes.append(metrics)

        if self._logger:
            self._logger.log_flush(
                run_id=metrics.run_id,
                batch_size=metrics.batch_size,
                skipped=metrics.skipped,
                duration_ms=metrics.duration_ms,
                success=metrics.success,
                triggered_by=metrics.triggered_by,
                error=metrics.error_message
            )

    def record_transition(self, run_id: str, transition: str, success: bool = True) -> None:
        """Record a run lifecycle transition.

        Args:
            run_id: Run identifier
            transition: Transition name (created, target_added, closed, ...)
            success: Whether the backend accepted it
        """
        with self._lock:
            self._transitions.append(
                TransitionMetrics(run_id=run_id, transition=transition, success=success)
            )

        if self._logger:
            self._logger.log_transition(run_id, transition, success)

    def get_summary(self) -> Dict:
        """Get aggregated metrics summary.

        Returns:
            Dictionary with metrics summary
        """
        with self._lock:
            flushes = list(self._flushes)
            transitions = list(self._transitions)

        if not flushes and not transitions:
            return {
                "message": "No metrics collected",
                "total_flushes": 0,
                "total_transitions": 0
            }

        successful = sum(1 for f in flushes if f.success)
        total_duration = sum(f.duration_ms for f in flushes)

        return {
            "total_flushes": len(flushes),
            "successful_flushes": successful,
            "failed_flushes": len(flushes) - successful,
            "results_submitted": sum(f.batch_size for f in flushes if f.success),
            "results_skipped": sum(f.skipped for f in flushes),
            "total_duration_ms": round(total_duration, 2),
            "avg_duration_ms": round(total_duration / len(flushes), 2) if flushes else 0.0,
            "total_transitions": len(transitions),
            "by_transition": self._group_transitions(transitions),
            "by_run": self._group_by_run(flushes)
        }

    def export(self, format: str = "json") -> str:
        """Export metrics in specified format.

        Args:
            format: Export format ('json' or 'csv')

        Returns:
            Formatted metrics string
        """
        if format == "json":
            return self._export_json()
        elif format == "csv":
            return self._export_csv()
        else:
            raise ValueError(f"Unsupported format: {format}")

    def reset(self) -> None:
        """Reset all collected metrics."""
        with self._lock:
            self._flushes.clear()
            self._transitions.clear()

    def _group_transitions(self, transitions: List[TransitionMetrics]) -> Dict[str, Dict]:
        """Count transitions by name."""
        result: Dict[str, Dict] = defaultdict(lambda: {"count": 0, "failed": 0})
        for t in transitions:
            result[t.transition]["count"] += 1
            if not t.success:
                result[t.transition]["failed"] += 1
        return dict(result)

    def _group_by_run(self, flushes: List[FlushMetrics]) -> Dict[str, Dict]:
        """Group flush metrics by run."""
        result: Dict[str, Dict] = defaultdict(
            lambda: {
                "flushes": 0,
                "results": 0,
                "failed": 0,
                "avg_duration_ms": 0.0
            }
        )

        for f in flushes:
            result[f.run_id]["flushes"] += 1
            result[f.run_id]["avg_duration_ms"] += f.duration_ms
            if f.success:
                result[f.run_id]["results"] += f.batch_size
            else:
                result[f.run_id]["failed"] += 1

        for data in result.values():
            if data["flushes"] > 0:
                data["avg_duration_ms"] = round(
                    data["avg_duration_ms"] / data["flushes"], 2
                )

        return dict(result)

    def _export_json(self) -> str:
        """Export metrics as JSON."""
        with self._lock:
            flushes = list(self._flushes)
            transitions = list(self._transitions)
        data = {
            "summary": self.get_summary(),
            "flushes": [
                {
                    "run_id": f.run_id,
                    "batch_size": f.batch_size,
                    "skipped": f.skipped,
                    "duration_ms": f.duration_ms,
                    "success": f.success,
                    "triggered_by": f.triggered_by,
                    "error": f.error_message,
                    "timestamp": f.timestamp.isoformat()
                }
                for f in flushes
            ],
            "transitions": [
                {
                    "run_id": t.run_id,
                    "transition": t.transition,
                    "success": t.success,
                    "timestamp": t.timestamp.isoformat()
                }
                for t in transitions
            ]
        }
        return json.dumps(data, indent=2)

    def _export_csv(self) -> str:
        """Export flushes as CSV."""
        lines = [
            "run_id,batch_size,skipped,duration_ms,success,triggered_by,timestamp"
        ]

        with self._lock:
            flushes = list(self._flushes)
        for f in flushes:
            lines.append(
                f"{f.run_id},{f.batch_size},{f.skipped},{f.duration_ms},"
                f"{f.success},{f.triggered_by},{f.timestamp.isoformat()}"
            )

        return "\n".join(lines)


# Global metrics collector instance
_global_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get or create global metrics collector.

    Returns:
        Global MetricsCollector instance
    """
    global _global_collector
    if _global_collector is None:
        _global_collector = MetricsCollector()
    return _global_collector


def reset_metrics() -> None:
    """Reset global metrics collector."""
    global _global_collector
    if _global_collector:
        _global_collector.reset()
