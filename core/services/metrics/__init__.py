"""
Metrics services for tracking result flushes and run transitions.
"""
from .logger import StructuredLogger, StructuredFormatter, ReadableFormatter, configure_logging
from .metrics_collector import MetricsCollector, get_metrics_collector, reset_metrics

__all__ = [
    'StructuredLogger',
    'StructuredFormatter',
    'ReadableFormatter',
    'configure_logging',
    'MetricsCollector',
    'get_metrics_collector',
    'reset_metrics'
]
