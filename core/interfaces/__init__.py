"""
Interfaces for dependency inversion.

Services depend on these abstractions, not on the QA API client or a
particular timer implementation.
"""
from .repository import ITestCaseRepository, ITestRunRepository, IDashboardRepository
from .scheduler import IScheduler, IScheduledCall
from .metrics import IMetricsCollector, FlushMetrics, TransitionMetrics

__all__ = [
    # Repository interfaces
    'ITestCaseRepository',
    'ITestRunRepository',
    'IDashboardRepository',
    # Scheduling
    'IScheduler',
    'IScheduledCall',
    # Metrics interfaces
    'IMetricsCollector',
    'FlushMetrics',
    'TransitionMetrics',
]
