"""
Dashboard projections.

Read-only views over many runs and features, hydrated from the QA API's
paginated dashboard endpoints.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from .test_run import Evaluation, RunStatus
from .timestamps import parse_timestamp

T = TypeVar('T')


class EntityType(str, Enum):
    """Filter for documentation gap reports. ALL sends no filter."""
    ALL = "ALL"
    FEATURE = "FEATURE"
    MODULE = "MODULE"
    PROJECT = "PROJECT"

    @property
    def query_value(self) -> Optional[str]:
        return None if self is EntityType.ALL else self.value


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @property
    def coverage_param(self) -> str:
        return "coverageDesc" if self is SortDirection.DESC else "coverageAsc"


@dataclass
class Page(Generic[T]):
    """One page of a paginated dashboard query."""
    items: List[T]
    total: int
    page: int
    page_size: int

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total

    @classmethod
    def from_dict(
        cls,
        data: Any,
        parse_item: Callable[[Dict[str, Any]], T],
        page: int,
        page_size: int
    ) -> 'Page[T]':
        """Build a page from either a bare list or an {items, total, ...} body."""
        if isinstance(data, list):
            raw_items, body = data, {}
        else:
            body = data or {}
            raw_items = body.get('items') or []
        items = [parse_item(item) for item in raw_items]
        total = body.get('total')
        return cls(
            items=items,
            total=int(total) if total is not None else len(items),
            page=int(body.get('page') or page),
            page_size=int(body.get('pageSize') or page_size),
        )


@dataclass
class LatestRun:
    id: Optional[str]
    run_date: Optional[datetime]
    status: Optional[RunStatus] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['LatestRun']:
        if not data:
            return None
        status = data.get('status')
        return cls(
            id=data.get('id'),
            run_date=parse_timestamp(data.get('runDate')),
            status=RunStatus(status) if status else None,
        )


@dataclass
class HealthBadges:
    """Badges assigned to one feature.

    has_full_pass is only ever set when the other two are false.
    """
    has_missing: bool = False
    has_failures: bool = False
    has_full_pass: bool = False

    @property
    def labels(self) -> List[str]:
        names = []
        if self.has_missing:
            names.append("missing")
        if self.has_failures:
            names.append("failed")
        if self.has_full_pass:
            names.append("passed")
        return names


@dataclass
class FeatureHealth:
    feature_id: str
    feature_name: str
    executed_test_cases: Optional[int] = None
    passed_test_cases: int = 0
    failed_test_cases: int = 0
    has_missing_test_cases: bool = False
    missing_test_cases_count: Optional[int] = None
    pass_rate: Optional[float] = None
    latest_run: Optional[LatestRun] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FeatureHealth':
        return cls(
            feature_id=str(data.get('featureId') or data.get('id')),
            feature_name=data.get('featureName') or data.get('name') or '',
            executed_test_cases=data.get('executedTestCases'),
            passed_test_cases=data.get('passedTestCases') or 0,
            failed_test_cases=data.get('failedTestCases') or 0,
            has_missing_test_cases=bool(data.get('hasMissingTestCases')),
            missing_test_cases_count=data.get('missingTestCasesCount'),
            pass_rate=data.get('passRate'),
            latest_run=LatestRun.from_dict(data.get('latestRun')),
        )


@dataclass
class HealthTrendPoint:
    run_id: str
    date: Optional[datetime] = None
    pass_rate: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HealthTrendPoint':
        return cls(
            run_id=str(data.get('runId') or data.get('id') or ''),
            date=parse_timestamp(data.get('date') or data.get('runDate')),
            pass_rate=data.get('passRate'),
        )


@dataclass
class FeatureTestHealth:
    """Pass-rate history of one feature's runs.

    The server may report pass rates as ratios or as percentages; they are
    kept as sent and normalized for display.
    """
    feature_id: str
    pass_rate: Optional[float] = None
    last_run: Optional[LatestRun] = None
    trend: List[HealthTrendPoint] = field(default_factory=list)
    flaky_count: int = 0

    @property
    def has_data(self) -> bool:
        return self.pass_rate is not None or self.last_run is not None or bool(self.trend)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], feature_id: str) -> 'FeatureTestHealth':
        data = data or {}
        last_run = LatestRun.from_dict(data.get('lastRun'))
        if last_run is None and data.get('lastRunAt'):
            last_run = LatestRun(id=None, run_date=parse_timestamp(data['lastRunAt']))
        return cls(
            feature_id=str(data.get('featureId') or feature_id),
            pass_rate=data.get('passRate'),
            last_run=last_run,
            trend=[HealthTrendPoint.from_dict(item) for item in data.get('trend') or []],
            flaky_count=data.get('flakyCount') or 0,
        )


@dataclass
class FeatureHealthReport:
    """A feature's test health ready for display, rates as whole percents."""
    feature_id: str
    pass_rate_percent: Optional[int] = None
    last_run_date: Optional[datetime] = None
    trend: List[HealthTrendPoint] = field(default_factory=list)
    trend_percent: List[Optional[int]] = field(default_factory=list)
    flaky_count: int = 0


@dataclass
class HealthSummary:
    """Badge tallies across every feature of a project."""
    passed: int = 0
    failed: int = 0
    missing: int = 0
    features: int = 0
    truncated: bool = False


@dataclass
class FeatureCoverage:
    feature_id: str
    feature_name: str
    total_test_cases: int = 0
    executed_test_cases: int = 0
    missing_test_cases: int = 0
    coverage_ratio: Optional[float] = None
    latest_run: Optional[LatestRun] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FeatureCoverage':
        total = data.get('totalTestCases') or 0
        executed = data.get('executedTestCases') or 0
        missing = data.get('missingTestCases')
        if missing is None:
            missing = max(total - executed, 0) if total > 0 else 0
        return cls(
            feature_id=str(data.get('featureId') or data.get('id')),
            feature_name=data.get('featureName') or data.get('name') or '',
            total_test_cases=total,
            executed_test_cases=executed,
            missing_test_cases=missing,
            coverage_ratio=data.get('coverageRatio'),
            latest_run=LatestRun.from_dict(data.get('latestRun')),
        )


@dataclass
class RunSummary:
    """A run as listed on the dashboard, with per-evaluation counts."""
    id: str
    status: RunStatus
    feature_id: Optional[str] = None
    feature_name: Optional[str] = None
    environment: str = ""
    run_by: Optional[str] = None
    run_date: Optional[datetime] = None
    total_cases: int = 0
    executed_cases: int = 0
    missing_cases: int = 0
    counts: Dict[Evaluation, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RunSummary':
        feature = data.get('feature') or {}
        coverage = data.get('coverage') or {}
        run_by = data.get('runBy')
        if isinstance(run_by, dict):
            run_by = run_by.get('name') or run_by.get('id')
        counts = {}
        for evaluation in Evaluation:
            raw = (coverage.get('counts') or {}).get(evaluation.value)
            if raw is not None:
                counts[evaluation] = int(raw)
        return cls(
            id=str(data['id']),
            status=RunStatus(data.get('status') or RunStatus.OPEN.value),
            feature_id=data.get('featureId') or feature.get('id'),
            feature_name=feature.get('name'),
            environment=data.get('environment') or '',
            run_by=run_by,
            run_date=parse_timestamp(data.get('runDate')),
            total_cases=coverage.get('totalCases') or 0,
            executed_cases=coverage.get('executedCases') or 0,
            missing_cases=coverage.get('missingCases') or 0,
            counts=counts,
        )


@dataclass
class DocumentationGap:
    """An entity missing its description or mandatory documentation labels."""
    id: str
    name: str
    entity_type: Optional[str] = None
    missing_labels: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DocumentationGap':
        labels = []
        for label in data.get('missingLabels') or []:
            labels.append(label.get('name') if isinstance(label, dict) else str(label))
        return cls(
            id=str(data['id']),
            name=data.get('name') or '',
            entity_type=data.get('entityType'),
            missing_labels=labels,
        )


@dataclass
class FeatureWithoutTestCases:
    id: str
    name: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FeatureWithoutTestCases':
        return cls(id=str(data.get('id') or data.get('featureId')), name=data.get('name') or '')


@dataclass
class DashboardMetrics:
    """Headline counters for a project's QA dashboard."""
    total_features: int = 0
    features_with_runs: int = 0
    features_missing_description: int = 0
    features_without_test_cases: int = 0
    entities_missing_mandatory_documentation: int = 0
    open_runs: int = 0
    runs_with_full_pass: int = 0
    test_coverage_ratio: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DashboardMetrics':
        return cls(
            total_features=data.get('totalFeatures') or 0,
            features_with_runs=data.get('featuresWithRuns') or 0,
            features_missing_description=data.get('featuresMissingDescription') or 0,
            features_without_test_cases=data.get('featuresWithoutTestCases') or 0,
            entities_missing_mandatory_documentation=data.get(
                'entitiesMissingMandatoryDocumentation') or 0,
            open_runs=data.get('openRuns') or 0,
            runs_with_full_pass=data.get('runsWithFullPass') or 0,
            test_coverage_ratio=data.get('testCoverageRatio'),
        )
