"""
QA API integration.

Provides HTTP client and repository implementations for the QA REST API.
"""
from .http_client import QaApiHttpClient
from .qa_repository import (
    QaApiTestCaseRepository,
    QaApiTestRunRepository,
    QaApiDashboardRepository,
)

__all__ = [
    'QaApiHttpClient',
    'QaApiTestCaseRepository',
    'QaApiTestRunRepository',
    'QaApiDashboardRepository',
]
