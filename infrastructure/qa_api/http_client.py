"""
QA API HTTP Client - Low-level HTTP interactions with the QA REST API.

This class handles only HTTP concerns: URLs, auth headers, timeouts and
mapping failures onto the engine's exception types.
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from core.exceptions import (
    AccessDeniedError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class QaApiHttpClient:
    """Low-level HTTP client for the QA API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: int = 30
    ):
        """Initialize QA API HTTP client.

        Args:
            base_url: API root (e.g., "https://app.example.com/api")
            token: Bearer token passed through unchanged
            timeout: Request timeout in seconds
        """
        if not base_url:
            raise ValidationError("Base URL is required", details={'base_url': 'required'})

        self._base_url = base_url.rstrip('/')
        self._token = token
        self._timeout = timeout
        self._headers = self._create_headers()

    @property
    def base_url(self) -> str:
        """Base URL for API calls."""
        return self._base_url

    @property
    def headers(self) -> Dict[str, str]:
        """Headers for API calls."""
        return self._headers.copy()

    def _create_headers(self) -> Dict[str, str]:
        headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }
        if self._token:
            headers['Authorization'] = f'Bearer {self._token}'
        return headers

    def _get_api_url(self, endpoint: str) -> str:
        return f"{self._base_url}/{endpoint.lstrip('/')}"

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None
    ) -> Any:
        url = self._get_api_url(endpoint)
        try:
            response = requests.request(
                method,
                url,
                headers=self._headers,
                params=params,
                json=data,
                timeout=self._timeout
            )
        except requests.Timeout as exc:
            raise PersistenceError(f"{method} {endpoint} timed out after {self._timeout}s") from exc
        except requests.RequestException as exc:
            raise PersistenceError(f"{method} {endpoint} failed: {exc}") from exc

        if response.status_code >= 400:
            self._raise_for_status(method, endpoint, response)
        return self._parse_body(response)

    @staticmethod
    def _parse_body(response: requests.Response) -> Any:
        """Decode a JSON body; empty or non-JSON bodies become {}."""
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            logger.debug("Non-JSON response from %s", response.url)
            return {}

    def _raise_for_status(self, method: str, endpoint: str, response: requests.Response) -> None:
        status = response.status_code
        body = self._parse_body(response)
        message = None
        if isinstance(body, dict):
            message = body.get('message') or body.get('error')
        message = message or f"{method} {endpoint} returned HTTP {status}"

        if status == 404:
            raise NotFoundError(endpoint)
        if status in (401, 403):
            raise AccessDeniedError(message, status_code=status)
        if status in (400, 422):
            details = body.get('details') if isinstance(body, dict) else None
            raise ValidationError(message, details=details if isinstance(details, dict) else None)
        raise PersistenceError(message, status_code=status)

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make GET request to the QA API.

        Args:
            endpoint: API endpoint (e.g., "qa/test-runs/42")
            params: Optional query parameters

        Returns:
            Decoded JSON response
        """
        return self._request('GET', endpoint, params=params)

    def post(self, endpoint: str, data: Dict[str, Any]) -> Any:
        """Make POST request to the QA API."""
        return self._request('POST', endpoint, data=data)

    def patch(self, endpoint: str, data: Dict[str, Any]) -> Any:
        """Make PATCH request to the QA API."""
        return self._request('PATCH', endpoint, data=data)

    @staticmethod
    def items(payload: Any) -> List[Dict[str, Any]]:
        """List payloads arrive either bare or wrapped in {items: [...]}."""
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            return payload.get('items') or []
        return []

    # Test cases

    def list_test_cases(self, feature_id: str, include_archived: bool = False) -> List[Dict[str, Any]]:
        params = {'includeArchived': 'true'} if include_archived else None
        return self.items(self.get(f"qa/features/{feature_id}/test-cases", params=params))

    def create_test_cases(self, feature_id: str, cases: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self.items(self.post(f"qa/features/{feature_id}/test-cases", {'cases': cases}))

    def update_test_case(self, test_case_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return self.patch(f"qa/test-cases/{test_case_id}", changes)

    # Test runs

    def create_feature_run(self, feature_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.post(f"qa/features/{feature_id}/test-runs", data)

    def create_project_run(self, project_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.post(f"qa/projects/{project_id}/test-runs", data)

    def get_run(self, run_id: str) -> Dict[str, Any]:
        return self.get(f"qa/test-runs/{run_id}")

    def list_feature_runs(self, feature_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {'limit': limit} if limit else None
        return self.items(self.get(f"qa/features/{feature_id}/test-runs", params=params))

    def upsert_results(self, run_id: str, results: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self.post(f"qa/test-runs/{run_id}/results", {'results': results})

    def update_run(self, run_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return self.patch(f"qa/test-runs/{run_id}", changes)

    def get_test_health(self, feature_id: str) -> Dict[str, Any]:
        return self.get(f"qa/features/{feature_id}/test-health")

    # Dashboard

    def get_dashboard(self, project_id: str) -> Dict[str, Any]:
        return self.get(f"qa/projects/{project_id}/dashboard")

    def get_dashboard_list(
        self,
        project_id: str,
        kind: str,
        page: int,
        page_size: int,
        **filters: Any
    ) -> Any:
        """Fetch one page of a dashboard list (featureHealth, openRuns, ...).

        Filters with a None value are not sent.
        """
        params = {'page': page, 'pageSize': page_size}
        params.update({key: value for key, value in filters.items() if value is not None})
        return self.get(f"qa/projects/{project_id}/dashboard/{kind}", params=params)
