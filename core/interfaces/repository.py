"""
Repository interfaces for data access abstraction.

The engine never persists anything itself; these contracts describe the
external QA API it consumes.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from core.domain.dashboard import (
    DashboardMetrics,
    DocumentationGap,
    EntityType,
    FeatureCoverage,
    FeatureHealth,
    FeatureTestHealth,
    FeatureWithoutTestCases,
    Page,
    RunSummary,
    SortDirection,
)
from core.domain.test_case import TestCase, TestCaseDraft
from core.domain.test_run import RunMetadata, RunScope, TestRun


class ITestCaseRepository(ABC):
    """Interface for test case data access."""

    @abstractmethod
    def list_test_cases(self, feature_id: str, include_archived: bool = False) -> List[TestCase]:
        """List the test cases of a feature.

        Args:
            feature_id: Owning feature
            include_archived: Whether archived cases are returned as well

        Returns:
            Test cases in server order
        """
        pass

    @abstractmethod
    def create_test_cases(self, feature_id: str, drafts: List[TestCaseDraft]) -> List[TestCase]:
        """Create test cases under a feature.

        Returns:
            The created test cases
        """
        pass

    @abstractmethod
    def update_test_case(self, test_case_id: str, changes: Dict[str, Any]) -> TestCase:
        """Apply a partial update (camelCase keys) to a test case."""
        pass


class ITestRunRepository(ABC):
    """Interface for test run data access."""

    @abstractmethod
    def create_run(
        self,
        scope: RunScope,
        owner_id: str,
        metadata: RunMetadata,
        target_test_case_ids: List[str]
    ) -> TestRun:
        """Create a run.

        Args:
            scope: FEATURE or PROJECT
            owner_id: Feature id for FEATURE scope, project id for PROJECT scope
            metadata: Name, environment, notes, run_by, run_date
            target_test_case_ids: Initial target set

        Returns:
            The created run
        """
        pass

    @abstractmethod
    def get_run(self, run_id: str) -> TestRun:
        """Fetch a run with its results."""
        pass

    @abstractmethod
    def upsert_results(self, run_id: str, results: List[Dict[str, Any]]) -> TestRun:
        """Upsert results by test case id.

        Safe to resend with the same batch.

        Returns:
            The full authoritative run after the merge
        """
        pass

    @abstractmethod
    def update_run(self, run_id: str, changes: Dict[str, Any]) -> TestRun:
        """Update status, target ids or results of a run.

        Args:
            changes: Any of status, targetTestCaseIds, addTestCaseIds,
                     removeTestCaseIds, results

        Returns:
            The updated run
        """
        pass

    def list_feature_runs(self, feature_id: str, limit: Optional[int] = None) -> List[TestRun]:
        """List the runs of a feature, most recent first."""
        return []

    @abstractmethod
    def get_test_health(self, feature_id: str) -> FeatureTestHealth:
        """Fetch a feature's pass rate, last run, trend and flaky count."""
        pass


class IDashboardRepository(ABC):
    """Interface for the paginated dashboard queries of a project."""

    @abstractmethod
    def get_metrics(self, project_id: str) -> DashboardMetrics:
        pass

    @abstractmethod
    def feature_health(self, project_id: str, page: int, page_size: int) -> Page[FeatureHealth]:
        pass

    @abstractmethod
    def feature_coverage(
        self,
        project_id: str,
        page: int,
        page_size: int,
        direction: SortDirection
    ) -> Page[FeatureCoverage]:
        pass

    @abstractmethod
    def open_runs(self, project_id: str, page: int, page_size: int) -> Page[RunSummary]:
        pass

    @abstractmethod
    def full_pass_runs(self, project_id: str, page: int, page_size: int) -> Page[RunSummary]:
        pass

    @abstractmethod
    def features_without_test_cases(
        self,
        project_id: str,
        page: int,
        page_size: int
    ) -> Page[FeatureWithoutTestCases]:
        pass

    @abstractmethod
    def features_missing_description(
        self,
        project_id: str,
        page: int,
        page_size: int,
        entity_type: EntityType = EntityType.ALL
    ) -> Page[DocumentationGap]:
        pass

    @abstractmethod
    def mandatory_documentation_missing(
        self,
        project_id: str,
        page: int,
        page_size: int,
        entity_type: EntityType = EntityType.ALL
    ) -> Page[DocumentationGap]:
        pass
