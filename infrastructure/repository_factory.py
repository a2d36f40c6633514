"""
Repository factory.

Creates the repository implementations and engine services described by
an EngineConfig.
"""
from dataclasses import dataclass
from typing import Optional

from core.config.engine_config import EngineConfig
from core.interfaces.repository import (
    IDashboardRepository,
    ITestCaseRepository,
    ITestRunRepository,
)
from core.interfaces.scheduler import IScheduler
from core.services.dashboard_aggregator import DashboardAggregator
from core.services.run_lifecycle import TestRunLifecycleManager
from core.services.test_case_catalog import TestCaseCatalog
from infrastructure.qa_api.http_client import QaApiHttpClient
from infrastructure.qa_api.qa_repository import (
    QaApiDashboardRepository,
    QaApiTestCaseRepository,
    QaApiTestRunRepository,
)


@dataclass
class QaRepositories:
    test_cases: ITestCaseRepository
    test_runs: ITestRunRepository
    dashboard: IDashboardRepository


@dataclass
class QaEngine:
    """Wired engine services for one session."""
    catalog: TestCaseCatalog
    lifecycle: TestRunLifecycleManager
    dashboard: DashboardAggregator


class RepositoryFactory:
    """Factory for creating QA API repositories and engine services."""

    @staticmethod
    def create_repositories(config: EngineConfig) -> QaRepositories:
        """
        Create repositories sharing one HTTP client.

        Args:
            config: Engine configuration

        Returns:
            Test case, test run and dashboard repositories
        """
        client = QaApiHttpClient(
            base_url=config.api.base_url,
            token=config.api.token,
            timeout=config.api.timeout
        )
        return QaRepositories(
            test_cases=QaApiTestCaseRepository(client=client),
            test_runs=QaApiTestRunRepository(client=client),
            dashboard=QaApiDashboardRepository(client=client),
        )

    @staticmethod
    def create_engine(
        config: EngineConfig,
        repositories: Optional[QaRepositories] = None,
        scheduler: Optional[IScheduler] = None
    ) -> QaEngine:
        """
        Create catalog, lifecycle manager and dashboard aggregator.

        Args:
            config: Engine configuration
            repositories: Repositories to use (QA API by default)
            scheduler: Debounce scheduler (real timers by default)
        """
        repos = repositories or RepositoryFactory.create_repositories(config)
        catalog = TestCaseCatalog(repos.test_cases)
        lifecycle = TestRunLifecycleManager(
            repos.test_runs,
            catalog,
            scheduler=scheduler,
            debounce_ms=config.buffer.debounce_ms,
            current_user=config.current_user,
        )
        dashboard = DashboardAggregator(
            repos.dashboard,
            run_repository=repos.test_runs,
            catalog=catalog,
            page_size=config.dashboard.page_size,
        )
        return QaEngine(catalog=catalog, lifecycle=lifecycle, dashboard=dashboard)


def get_repositories(config: EngineConfig) -> QaRepositories:
    """Convenience function to get QA API repositories."""
    return RepositoryFactory.create_repositories(config)
