"""
Domain entities and value objects.
"""
from .test_case import TestCase, TestCaseDraft, split_steps
from .test_run import (
    Evaluation,
    RunStatus,
    RunScope,
    Result,
    RunMetadata,
    RunCoverage,
    MissingTestCase,
    TestRun,
)
from .edits import EvaluateKnownCase, EvaluateAndAdmitCase, EditComment, ResultEdit, evaluation_edit
from .selection import FeatureSelection, ExplicitSelection, TargetSelection
from .dashboard import (
    EntityType,
    SortDirection,
    Page,
    LatestRun,
    HealthBadges,
    FeatureHealth,
    HealthTrendPoint,
    FeatureTestHealth,
    FeatureHealthReport,
    HealthSummary,
    FeatureCoverage,
    RunSummary,
    DocumentationGap,
    FeatureWithoutTestCases,
    DashboardMetrics,
)
