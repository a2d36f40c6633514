"""
Dashboard aggregator.

Read-only rollups over a project's features and runs: feature health
badges, coverage ranking, open and full-pass run listings and
documentation gap reports. Nothing here mutates a run or a test case.
"""
import logging
from dataclasses import replace
from typing import Iterable, List, Optional

from core.domain.dashboard import (
    DashboardMetrics,
    DocumentationGap,
    EntityType,
    FeatureCoverage,
    FeatureHealth,
    FeatureHealthReport,
    FeatureWithoutTestCases,
    HealthBadges,
    HealthSummary,
    LatestRun,
    Page,
    RunSummary,
    SortDirection,
)
from core.domain.test_run import TestRun
from core.exceptions import ValidationError
from core.interfaces.repository import IDashboardRepository, ITestRunRepository
from core.services.coverage import (
    count_evaluations,
    coverage_for_run,
    coverage_ratio,
    normalize_pass_rate,
)
from core.services.test_case_catalog import TestCaseCatalog

logger = logging.getLogger(__name__)

DETAIL_PAGE_SIZE = 10
SUMMARY_PAGE_SIZE = 200
SUMMARY_MAX_PAGES = 5


def classify(feature: FeatureHealth) -> HealthBadges:
    """Assign health badges to a feature.

    Missing and failed can both apply; full pass only when neither does
    and at least one case was executed.
    """
    has_missing = bool(feature.has_missing_test_cases)
    has_failures = (feature.failed_test_cases or 0) > 0
    executed = feature.executed_test_cases
    has_full_pass = (
        not has_missing
        and executed is not None
        and executed > 0
        and not has_failures
    )
    return HealthBadges(
        has_missing=has_missing,
        has_failures=has_failures,
        has_full_pass=has_full_pass,
    )


def effective_ratio(feature: FeatureCoverage) -> Optional[float]:
    """Coverage ratio reported by the server, else executed over total."""
    if feature.coverage_ratio is not None:
        return min(max(feature.coverage_ratio, 0.0), 1.0)
    return coverage_ratio(feature.executed_test_cases, feature.total_test_cases)


def sort_by_coverage(items: Iterable[FeatureCoverage], direction: SortDirection) -> List[FeatureCoverage]:
    """Sort by ratio; features whose ratio is unknown go last either way."""
    items = list(items)
    known = [item for item in items if effective_ratio(item) is not None]
    unknown = [item for item in items if effective_ratio(item) is None]
    known.sort(key=effective_ratio, reverse=direction is SortDirection.DESC)
    return known + unknown


def summarize_run(run: TestRun, feature_name: Optional[str] = None) -> RunSummary:
    """Project a run onto the summary shape used by run listings."""
    coverage = coverage_for_run(run)
    return RunSummary(
        id=run.id,
        status=run.status,
        feature_id=run.feature_id,
        feature_name=feature_name,
        environment=run.environment,
        run_by=run.run_by,
        run_date=run.run_date,
        total_cases=coverage.total_cases,
        executed_cases=coverage.executed_cases,
        missing_cases=coverage.missing_cases,
        counts=count_evaluations(run.results),
    )


def _check_paging(page: int, page_size: int) -> None:
    details = {}
    if page < 1:
        details['page'] = 'must be >= 1'
    if page_size < 1:
        details['pageSize'] = 'must be >= 1'
    if details:
        raise ValidationError("Invalid pagination", details=details)


class DashboardAggregator:
    """Paginated, filterable dashboard queries for a project."""

    def __init__(
        self,
        repository: IDashboardRepository,
        run_repository: Optional[ITestRunRepository] = None,
        catalog: Optional[TestCaseCatalog] = None,
        page_size: int = DETAIL_PAGE_SIZE
    ):
        self._repository = repository
        self._run_repository = run_repository
        self._catalog = catalog
        self._page_size = page_size

    def _paging(self, page: int, page_size: Optional[int]) -> int:
        size = self._page_size if page_size is None else page_size
        _check_paging(page, size)
        return size

    def metrics(self, project_id: str) -> DashboardMetrics:
        return self._repository.get_metrics(project_id)

    # Feature health

    def feature_health(
        self,
        project_id: str,
        page: int = 1,
        page_size: Optional[int] = None
    ) -> Page[FeatureHealth]:
        size = self._paging(page, page_size)
        return self._repository.feature_health(project_id, page, size)

    def summarize_feature_health(self, project_id: str) -> HealthSummary:
        """Tally badges across the project's features.

        Walks at most SUMMARY_MAX_PAGES pages of SUMMARY_PAGE_SIZE, stopping
        once every item is loaded or a page comes back empty.
        """
        items: List[FeatureHealth] = []
        total = 0
        for page in range(1, SUMMARY_MAX_PAGES + 1):
            result = self._repository.feature_health(project_id, page, SUMMARY_PAGE_SIZE)
            items.extend(result.items)
            total = result.total if result.total is not None else len(items)
            if len(items) >= total or not result.items:
                break

        summary = HealthSummary(features=len(items), truncated=len(items) < total)
        for feature in items:
            badges = classify(feature)
            if badges.has_full_pass:
                summary.passed += 1
            if badges.has_failures:
                summary.failed += 1
            if badges.has_missing:
                summary.missing += 1
        if summary.truncated:
            logger.warning(
                "Feature health summary for project %s covers %d of %d features",
                project_id, len(items), total
            )
        return summary

    # Coverage ranking

    def feature_coverage(
        self,
        project_id: str,
        page: int = 1,
        page_size: Optional[int] = None,
        direction: SortDirection = SortDirection.DESC
    ) -> Page[FeatureCoverage]:
        size = self._paging(page, page_size)
        result = self._repository.feature_coverage(project_id, page, size, direction)
        return replace(result, items=sort_by_coverage(result.items, direction))

    def aggregate_feature_coverage(
        self,
        feature_id: str,
        feature_name: str,
        active_case_ids: Iterable[str],
        runs: Iterable[TestRun]
    ) -> FeatureCoverage:
        """Coverage of a feature across its runs.

        A case counts as executed when some run evaluated it; the most
        recent such run (by run date) is the one that counts.
        """
        case_ids = list(dict.fromkeys(active_case_ids))
        ordered = sorted(
            runs,
            key=lambda run: run.run_date.timestamp() if run.run_date else float('-inf'),
            reverse=True,
        )
        executed = 0
        for test_case_id in case_ids:
            for run in ordered:
                result = run.results.get(test_case_id)
                if result is not None and result.evaluation is not None:
                    executed += 1
                    break

        total = len(case_ids)
        latest = ordered[0] if ordered else None
        return FeatureCoverage(
            feature_id=feature_id,
            feature_name=feature_name,
            total_test_cases=total,
            executed_test_cases=executed,
            missing_test_cases=max(total - executed, 0),
            coverage_ratio=coverage_ratio(executed, total),
            latest_run=LatestRun(latest.id, latest.run_date, latest.status) if latest else None,
        )

    def feature_coverage_from_runs(
        self,
        feature_id: str,
        feature_name: str = "",
        limit: Optional[int] = None
    ) -> FeatureCoverage:
        """Compute a feature's coverage from its cases and recent runs."""
        if self._run_repository is None or self._catalog is None:
            raise ValidationError(
                "Run repository and catalog are required to aggregate runs",
                details={'runRepository': 'required', 'catalog': 'required'}
            )
        cases = self._catalog.list_cases(feature_id)
        runs = self._run_repository.list_feature_runs(feature_id, limit=limit)
        return self.aggregate_feature_coverage(
            feature_id,
            feature_name,
            [case.id for case in cases],
            runs,
        )

    # Feature test health

    def feature_test_health(self, feature_id: str) -> FeatureHealthReport:
        """Pass rate, last run, trend and flaky count of one feature.

        Rates arrive as ratios or percentages and leave as whole percents.
        """
        if self._run_repository is None:
            raise ValidationError(
                "Run repository is required for feature test health",
                details={'runRepository': 'required'}
            )
        health = self._run_repository.get_test_health(feature_id)
        if not health.has_data:
            logger.info("No test health recorded for feature %s", feature_id)
        return FeatureHealthReport(
            feature_id=health.feature_id,
            pass_rate_percent=normalize_pass_rate(health.pass_rate),
            last_run_date=health.last_run.run_date if health.last_run else None,
            trend=list(health.trend),
            trend_percent=[normalize_pass_rate(point.pass_rate) for point in health.trend],
            flaky_count=health.flaky_count,
        )

    # Run listings

    def open_runs(
        self,
        project_id: str,
        page: int = 1,
        page_size: Optional[int] = None
    ) -> Page[RunSummary]:
        size = self._paging(page, page_size)
        return self._repository.open_runs(project_id, page, size)

    def full_pass_runs(
        self,
        project_id: str,
        page: int = 1,
        page_size: Optional[int] = None
    ) -> Page[RunSummary]:
        size = self._paging(page, page_size)
        return self._repository.full_pass_runs(project_id, page, size)

    @staticmethod
    def refresh_summary(page: Page[RunSummary], run: TestRun) -> Page[RunSummary]:
        """Swap in a fresh summary for a run already listed on a page."""
        items = []
        for item in page.items:
            if item.id == run.id:
                items.append(summarize_run(run, feature_name=item.feature_name))
            else:
                items.append(item)
        return replace(page, items=items)

    # Documentation gaps

    def features_without_test_cases(
        self,
        project_id: str,
        page: int = 1,
        page_size: Optional[int] = None
    ) -> Page[FeatureWithoutTestCases]:
        size = self._paging(page, page_size)
        return self._repository.features_without_test_cases(project_id, page, size)

    def features_missing_description(
        self,
        project_id: str,
        entity_type: EntityType = EntityType.ALL,
        page: int = 1,
        page_size: Optional[int] = None
    ) -> Page[DocumentationGap]:
        size = self._paging(page, page_size)
        return self._repository.features_missing_description(project_id, page, size, entity_type)

    def mandatory_documentation_missing(
        self,
        project_id: str,
        entity_type: EntityType = EntityType.ALL,
        page: int = 1,
        page_size: Optional[int] = None
    ) -> Page[DocumentationGap]:
        size = self._paging(page, page_size)
        return self._repository.mandatory_documentation_missing(project_id, page, size, entity_type)
