"""
QA API repository implementations.

Implements repository interfaces for test cases, test runs and dashboard
queries on top of QaApiHttpClient.
"""
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
from core.interfaces.repository import (
    IDashboardRepository,
    ITestCaseRepository,
    ITestRunRepository,
)
from .http_client import QaApiHttpClient


def _client(
    base_url: str,
    token: Optional[str],
    timeout: int,
    client: Optional[QaApiHttpClient]
) -> QaApiHttpClient:
    if client is not None:
        return client
    return QaApiHttpClient(base_url=base_url, token=token, timeout=timeout)


class QaApiTestCaseRepository(ITestCaseRepository):
    """QA API implementation of test case repository."""

    def __init__(
        self,
        base_url: str = "",
        token: Optional[str] = None,
        timeout: int = 30,
        client: Optional[QaApiHttpClient] = None
    ):
        """Initialize repository with QA API configuration.

        Args:
            base_url: API root
            token: Bearer token
            timeout: Request timeout in seconds
            client: Existing client to share instead of building one
        """
        self._client = _client(base_url, token, timeout, client)

    def list_test_cases(self, feature_id: str, include_archived: bool = False) -> List[TestCase]:
        rows = self._client.list_test_cases(feature_id, include_archived=include_archived)
        cases = [TestCase.from_dict(row) for row in rows]
        for case in cases:
            if case.feature_id is None:
                case.feature_id = feature_id
        return cases

    def create_test_cases(self, feature_id: str, drafts: List[TestCaseDraft]) -> List[TestCase]:
        rows = self._client.create_test_cases(feature_id, [draft.to_dict() for draft in drafts])
        return [TestCase.from_dict(row) for row in rows]

    def update_test_case(self, test_case_id: str, changes: Dict[str, Any]) -> TestCase:
        return TestCase.from_dict(self._client.update_test_case(test_case_id, changes))


class QaApiTestRunRepository(ITestRunRepository):
    """QA API implementation of test run repository."""

    def __init__(
        self,
        base_url: str = "",
        token: Optional[str] = None,
        timeout: int = 30,
        client: Optional[QaApiHttpClient] = None
    ):
        self._client = _client(base_url, token, timeout, client)

    def create_run(
        self,
        scope: RunScope,
        owner_id: str,
        metadata: RunMetadata,
        target_test_case_ids: List[str]
    ) -> TestRun:
        data = metadata.to_dict()
        data['status'] = 'OPEN'
        data['targetTestCaseIds'] = list(target_test_case_ids)
        if scope is RunScope.FEATURE:
            payload = self._client.create_feature_run(owner_id, data)
        else:
            payload = self._client.create_project_run(owner_id, data)
        return TestRun.from_dict(payload)

    def get_run(self, run_id: str) -> TestRun:
        return TestRun.from_dict(self._client.get_run(run_id))

    def upsert_results(self, run_id: str, results: List[Dict[str, Any]]) -> TestRun:
        return TestRun.from_dict(self._client.upsert_results(run_id, results))

    def update_run(self, run_id: str, changes: Dict[str, Any]) -> TestRun:
        return TestRun.from_dict(self._client.update_run(run_id, changes))

    def list_feature_runs(self, feature_id: str, limit: Optional[int] = None) -> List[TestRun]:
        return [TestRun.from_dict(row) for row in self._client.list_feature_runs(feature_id, limit=limit)]

    def get_test_health(self, feature_id: str) -> FeatureTestHealth:
        return FeatureTestHealth.from_dict(self._client.get_test_health(feature_id), feature_id)


class QaApiDashboardRepository(IDashboardRepository):
    """QA API implementation of the dashboard queries."""

    def __init__(
        self,
        base_url: str = "",
        token: Optional[str] = None,
        timeout: int = 30,
        client: Optional[QaApiHttpClient] = None
    ):
        self._client = _client(base_url, token, timeout, client)

    def get_metrics(self, project_id: str) -> DashboardMetrics:
        return DashboardMetrics.from_dict(self._client.get_dashboard(project_id) or {})

    def _page(self, project_id: str, kind: str, parse_item, page: int, page_size: int, **filters):
        payload = self._client.get_dashboard_list(project_id, kind, page, page_size, **filters)
        return Page.from_dict(payload, parse_item, page, page_size)

    def feature_health(self, project_id: str, page: int, page_size: int) -> Page[FeatureHealth]:
        return self._page(project_id, "featureHealth", FeatureHealth.from_dict, page, page_size)

    def feature_coverage(
        self,
        project_id: str,
        page: int,
        page_size: int,
        direction: SortDirection
    ) -> Page[FeatureCoverage]:
        return self._page(
            project_id, "featureCoverage", FeatureCoverage.from_dict, page, page_size,
            sort=direction.coverage_param
        )

    def open_runs(self, project_id: str, page: int, page_size: int) -> Page[RunSummary]:
        return self._page(project_id, "openRuns", RunSummary.from_dict, page, page_size)

    def full_pass_runs(self, project_id: str, page: int, page_size: int) -> Page[RunSummary]:
        return self._page(project_id, "runsWithFullPass", RunSummary.from_dict, page, page_size)

    def features_without_test_cases(
        self,
        project_id: str,
        page: int,
        page_size: int
    ) -> Page[FeatureWithoutTestCases]:
        return self._page(
            project_id, "featuresWithoutTestCases", FeatureWithoutTestCases.from_dict, page, page_size
        )

    def features_missing_description(
        self,
        project_id: str,
        page: int,
        page_size: int,
        entity_type: EntityType = EntityType.ALL
    ) -> Page[DocumentationGap]:
        return self._page(
            project_id, "featuresMissingDescription", DocumentationGap.from_dict, page, page_size,
            type=entity_type.query_value
        )

    def mandatory_documentation_missing(
        self,
        project_id: str,
        page: int,
        page_size: int,
        entity_type: EntityType = EntityType.ALL
    ) -> Page[DocumentationGap]:
        return self._page(
            project_id, "mandatoryDocumentationMissing", DocumentationGap.from_dict, page, page_size,
            type=entity_type.query_value
        )
