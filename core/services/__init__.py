"""
Engine services: coverage, catalog, result buffering, run lifecycle and
dashboard rollups.
"""
from .coverage import (
    count_evaluations,
    compute_coverage,
    coverage_for_run,
    compute_pass_rate,
    coverage_ratio,
    ratio_to_percent,
    normalize_pass_rate,
    is_full_pass,
)
from .scheduling import ThreadingScheduler, ManualScheduler
from .test_case_catalog import TestCaseCatalog
from .result_edit_buffer import ResultEditBuffer, FlushResult
from .run_lifecycle import TestRunLifecycleManager, reconcile_targets
from .dashboard_aggregator import DashboardAggregator, classify, summarize_run

__all__ = [
    'count_evaluations',
    'compute_coverage',
    'coverage_for_run',
    'compute_pass_rate',
    'coverage_ratio',
    'ratio_to_percent',
    'normalize_pass_rate',
    'is_full_pass',
    'ThreadingScheduler',
    'ManualScheduler',
    'TestCaseCatalog',
    'ResultEditBuffer',
    'FlushResult',
    'TestRunLifecycleManager',
    'reconcile_targets',
    'DashboardAggregator',
    'classify',
    'summarize_run',
]
