"""
Test run lifecycle manager.

Creates runs, opens them for editing, grows and shrinks their target sets
and closes them. Every open run gets its own ResultEditBuffer; all result
and target mutations pass through this manager or that buffer.

State machine: OPEN -> CLOSED. CLOSED is terminal.
"""
import logging
import threading
from typing import Callable, Dict, List, Optional, Union

from core.domain.selection import FeatureSelection, TargetSelection
from core.domain.test_run import (
    Evaluation,
    RunCoverage,
    RunMetadata,
    RunScope,
    RunStatus,
    TestRun,
)
from core.domain.timestamps import utcnow
from core.exceptions import BACKEND_ERRORS, InvalidStateError, ValidationError
from core.interfaces.metrics import IMetricsCollector
from core.interfaces.repository import ITestRunRepository
from core.interfaces.scheduler import IScheduler
from core.services.coverage import coverage_for_run
from core.services.metrics.metrics_collector import get_metrics_collector
from core.services.result_edit_buffer import DEFAULT_DEBOUNCE_MS, FlushResult, ResultEditBuffer
from core.services.scheduling import ThreadingScheduler
from core.services.test_case_catalog import TestCaseCatalog

logger = logging.getLogger(__name__)

RunRef = Union[TestRun, str]
Subscriber = Callable[[TestRun], None]


def reconcile_targets(run: TestRun) -> List[str]:
    """Target ids followed by any result id missing from them."""
    targets = list(run.target_test_case_ids)
    known = set(targets)
    for test_case_id in run.results:
        if test_case_id not in known:
            known.add(test_case_id)
            targets.append(test_case_id)
    return targets


def _blank(value: Optional[str]) -> bool:
    return not (value or '').strip()


class TestRunLifecycleManager:
    """Owns open runs and their edit buffers for one editing session."""
    __test__ = False

    def __init__(
        self,
        repository: ITestRunRepository,
        catalog: TestCaseCatalog,
        scheduler: Optional[IScheduler] = None,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        current_user: Optional[str] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_skipped: Optional[Callable[[List[str]], None]] = None,
        metrics: Optional[IMetricsCollector] = None
    ):
        """Initialize the manager.

        Args:
            repository: Test run data access
            catalog: Resolves target selections and labels missing cases
            scheduler: Debounce scheduler (real timers by default)
            debounce_ms: Debounce window for result flushes
            current_user: Default run_by for new runs
            on_error: Receives errors from timer-driven flushes
            on_skipped: Receives case ids whose comment-only edits a flush
                        kept unsaved
            metrics: Metrics collector (global collector by default)
        """
        self._repository = repository
        self._catalog = catalog
        self._scheduler = scheduler or ThreadingScheduler()
        self._debounce_ms = debounce_ms
        self._current_user = current_user
        self._on_error = on_error
        self._on_skipped = on_skipped
        self._metrics = metrics or get_metrics_collector()

        self._buffers: Dict[str, ResultEditBuffer] = {}
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    # Subscriptions

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a listener for authoritative run updates.

        Called after successful flushes, target changes and closes.

        Returns:
            Function that removes the listener
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, run: TestRun) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(run.copy())

    # Buffers

    def _register(self, run: TestRun) -> ResultEditBuffer:
        buffer = ResultEditBuffer(
            run,
            self._repository,
            self._scheduler,
            debounce_ms=self._debounce_ms,
            on_persisted=self._publish,
            on_error=self._on_error,
            on_skipped=self._on_skipped,
            metrics=self._metrics,
        )
        with self._lock:
            previous = self._buffers.get(run.id)
            self._buffers[run.id] = buffer
        if previous is not None:
            previous.dispose()
        return buffer

    def buffer(self, run: RunRef) -> ResultEditBuffer:
        """Edit buffer of a run, opening the run if this session has not yet."""
        run_id = run if isinstance(run, str) else run.id
        with self._lock:
            buffer = self._buffers.get(run_id)
        if buffer is not None:
            return buffer
        if isinstance(run, str):
            self.open_run(run)
            with self._lock:
                return self._buffers[run_id]
        return self._register(run)

    def view(self, run: RunRef) -> TestRun:
        """Optimistic state of a run."""
        return self.buffer(run).view

    def coverage(self, run: RunRef) -> RunCoverage:
        """Coverage of a run's optimistic state, with catalog labels for missing cases."""
        return coverage_for_run(self.view(run), self._catalog.describe)

    def _transition(self, run_id: str, transition: str, success: bool = True) -> None:
        self._metrics.record_transition(run_id, transition, success)
        if success:
            logger.info("Run %s: %s", run_id, transition, extra={"run_id": run_id})
        else:
            logger.warning("Run %s: %s failed", run_id, transition, extra={"run_id": run_id})

    # Lifecycle

    def create_run(
        self,
        scope: RunScope,
        target_selection: TargetSelection,
        metadata: RunMetadata,
        owner_id: Optional[str] = None
    ) -> TestRun:
        """Create an OPEN run with no results.

        Args:
            scope: FEATURE or PROJECT
            target_selection: Which cases the run targets
            metadata: Name, environment, notes, run_by, run_date
            owner_id: Project id for PROJECT runs. For FEATURE runs it
                      defaults to the feature of a FeatureSelection.

        Raises:
            ValidationError: Missing required metadata, or an empty target
                             set for a scope that needs cases
        """
        if scope is RunScope.FEATURE and owner_id is None and isinstance(target_selection, FeatureSelection):
            owner_id = target_selection.feature_id

        details = {}
        if scope is RunScope.PROJECT:
            if _blank(metadata.name):
                details['name'] = 'required'
            if _blank(metadata.environment):
                details['environment'] = 'required'
            if _blank(owner_id):
                details['projectId'] = 'required'
        elif _blank(owner_id):
            details['featureId'] = 'required'
        if details:
            raise ValidationError("Run is missing required fields", details=details)

        target_ids = self._catalog.resolve_targets(target_selection)
        if scope.requires_cases and not target_ids:
            raise ValidationError(
                "Select at least one test case",
                details={'targetTestCaseIds': 'at least one case is required'}
            )

        if metadata.run_by is None or metadata.run_date is None:
            metadata = RunMetadata(
                name=metadata.name,
                environment=metadata.environment,
                notes=metadata.notes,
                run_by=metadata.run_by or self._current_user,
                run_date=metadata.run_date or utcnow(),
            )

        run = self._repository.create_run(scope, owner_id, metadata, target_ids)
        self._register(run)
        self._transition(run.id, "created")
        logger.info(
            "Created %s run %s with %d target case(s)",
            scope.value, run.id, len(run.target_test_case_ids),
            extra={"run_id": run.id}
        )
        return run.copy()

    def open_run(self, run_id: str) -> TestRun:
        """Fetch a run and register an edit buffer for it."""
        run = self._repository.get_run(run_id)
        buffer = self._register(run)
        return buffer.view

    def refresh(self, run: RunRef) -> TestRun:
        """Re-fetch a run and rebase unsent edits onto it."""
        buffer = self.buffer(run)
        server_run = self._repository.get_run(buffer.run_id)
        return buffer.reconcile(server_run)

    def _ensure_open(self, buffer: ResultEditBuffer) -> TestRun:
        view = buffer.view
        if view.is_closed:
            raise InvalidStateError("Run is closed", run_id=view.id)
        return view

    def add_target_case(self, run: RunRef, test_case_id: str) -> TestRun:
        """Add a case to the target set. No-op if already targeted.

        Raises:
            InvalidStateError: Run is closed
        """
        buffer = self.buffer(run)
        view = self._ensure_open(buffer)
        if view.has_target(test_case_id):
            return view

        try:
            server_run = self._repository.update_run(view.id, {'addTestCaseIds': [test_case_id]})
        except BACKEND_ERRORS:
            self._transition(view.id, "target_added", success=False)
            raise
        updated = buffer.reconcile(server_run)
        self._transition(view.id, "target_added")
        self._publish(server_run)
        return updated

    def remove_target_case(self, run: RunRef, test_case_id: str) -> TestRun:
        """Remove a case from the target set along with its result.

        Any unsent edit for the case is discarded. Removing a case that is
        not targeted does nothing.

        Raises:
            InvalidStateError: Run is closed
        """
        buffer = self.buffer(run)
        view = self._ensure_open(buffer)
        if not view.has_target(test_case_id):
            return view

        try:
            server_run = self._repository.update_run(view.id, {'removeTestCaseIds': [test_case_id]})
        except BACKEND_ERRORS:
            self._transition(view.id, "target_removed", success=False)
            raise
        buffer.discard(test_case_id)
        updated = buffer.reconcile(server_run)
        self._transition(view.id, "target_removed")
        self._publish(server_run)
        return updated

    def evaluate(self, run: RunRef, test_case_id: str, evaluation: Optional[Evaluation]) -> TestRun:
        """Record an evaluation; untargeted cases are admitted to the run."""
        return self.buffer(run).set_evaluation(test_case_id, evaluation)

    def set_comment(self, run: RunRef, test_case_id: str, comment: str) -> TestRun:
        return self.buffer(run).set_comment(test_case_id, comment)

    def flush(self, run: RunRef) -> FlushResult:
        return self.buffer(run).flush()

    def close_run(self, run: RunRef) -> TestRun:
        """Flush pending edits, reconcile the target set and close the run.

        The run stays OPEN if the flush or the status update fails; the
        error is raised to the caller.

        Raises:
            InvalidStateError: Run already closed
        """
        buffer = self.buffer(run)
        view = self._ensure_open(buffer)
        run_id = view.id

        buffer.commit_all_drafts()
        try:
            buffer.flush()
        except BACKEND_ERRORS:
            self._transition(run_id, "closed", success=False)
            raise
        unsaved = buffer.unsaved_ids
        if unsaved:
            logger.warning(
                "Closing run %s without %d comment-only edit(s)",
                run_id, len(unsaved),
                extra={"run_id": run_id}
            )

        targets = reconcile_targets(buffer.view)
        try:
            server_run = self._repository.update_run(run_id, {
                'status': RunStatus.CLOSED.value,
                'targetTestCaseIds': targets,
            })
        except BACKEND_ERRORS:
            self._transition(run_id, "closed", success=False)
            raise

        closed = buffer.reconcile(server_run)
        self._transition(run_id, "closed")
        self._publish(server_run)
        return closed

    def dispose(self, run: RunRef) -> None:
        """Cancel the run's debounce timer and forget it."""
        run_id = run if isinstance(run, str) else run.id
        with self._lock:
            buffer = self._buffers.pop(run_id, None)
        if buffer is not None:
            buffer.dispose()

    def dispose_all(self) -> None:
        with self._lock:
            buffers = list(self._buffers.values())
            self._buffers.clear()
        for buffer in buffers:
            buffer.dispose()
