"""
Engine-wide exception hierarchy.

Services raise these types, never bare ValueError/RuntimeError, so callers
(UI adapters, the CLI) can map them to a message once.

Usage:
    from core.exceptions import ValidationError, InvalidStateError

    raise ValidationError("Name is required", details={"name": "required"})
    raise InvalidStateError("Run is closed", run_id="run-1")
"""
from typing import Dict, Optional


class ValidationError(Exception):
    """Raised when input to run or case creation is malformed or incomplete.

    Nothing is sent to the backend when this is raised.

    Args:
        message: Human-readable explanation of what failed.
        details: Field-level breakdown. Keys are field names; values are
                 error descriptions.
    """

    def __init__(self, message: str, details: Optional[Dict[str, str]] = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidStateError(Exception):
    """Raised when a mutation is not allowed in the run's current state.

    Covers edits on a CLOSED run, comment edits on a PASSED result and
    edits on a disposed edit buffer. Always raised before any network call.
    """

    def __init__(self, message: str, run_id: Optional[str] = None) -> None:
        self.run_id = run_id
        super().__init__(message)


class PersistenceError(Exception):
    """Raised when the QA API cannot be reached or answers with a server error.

    Args:
        message: Description of the failure.
        status_code: HTTP status if a response was received.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class NotFoundError(Exception):
    """Raised when the QA API reports that a resource does not exist.

    Args:
        resource: Entity name (e.g. "TestRun", "TestCase").
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: Optional[str] = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class AccessDeniedError(Exception):
    """Raised on HTTP 401/403 from the QA API."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


# Failures coming back from the backend. Any of these aborts the current
# operation and leaves local state at the last confirmed snapshot.
BACKEND_ERRORS = (PersistenceError, NotFoundError, AccessDeniedError)
