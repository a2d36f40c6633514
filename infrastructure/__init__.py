"""
Infrastructure layer - implementations of interfaces.

Contains:
- qa_api: QA REST API client and repositories
- repository_factory: Builds repositories and engine services from config
"""
from .qa_api import (
    QaApiHttpClient,
    QaApiTestCaseRepository,
    QaApiTestRunRepository,
    QaApiDashboardRepository,
)
from .repository_factory import (
    RepositoryFactory,
    QaRepositories,
    QaEngine,
    get_repositories,
)

__all__ = [
    # QA API
    'QaApiHttpClient',
    'QaApiTestCaseRepository',
    'QaApiTestRunRepository',
    'QaApiDashboardRepository',
    # Repository Factory
    'RepositoryFactory',
    'QaRepositories',
    'QaEngine',
    'get_repositories',
]
