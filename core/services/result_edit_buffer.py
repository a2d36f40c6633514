"""
Result edit buffer.

Absorbs evaluation and comment edits for one run, shows them immediately
in an optimistic view, and persists them in debounced batches. The buffer
owns three pieces of state:

    stable     last run snapshot confirmed by the server
    pending    edits not yet sent, one merged entry per test case
    in_flight  the batch currently being sent, if any

A failed batch rolls the view back to the stable snapshot with any edits
made after the batch was sent re-applied on top. Comment-only edits cannot
be saved without an evaluation; a flush leaves them in the view as unsaved
local values until the case is evaluated, discarded or rolled back.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from core.domain.edits import (
    EditComment,
    EvaluateAndAdmitCase,
    EvaluateKnownCase,
    ResultEdit,
    evaluation_edit,
)
from core.domain.test_run import Evaluation, Result, RunCoverage, TestRun
from core.exceptions import BACKEND_ERRORS, InvalidStateError, ValidationError
from core.interfaces.metrics import FlushMetrics, IMetricsCollector
from core.interfaces.repository import ITestRunRepository
from core.interfaces.scheduler import IScheduledCall, IScheduler
from core.services.coverage import Describe, coverage_for_run
from core.services.metrics.metrics_collector import get_metrics_collector

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 800


@dataclass
class _PendingEntry:
    evaluation: Optional[Evaluation] = None
    comment: str = ""
    admit: bool = False

    @property
    def is_empty(self) -> bool:
        return self.evaluation is None and not self.comment

    def to_result(self, test_case_id: str) -> Result:
        return Result(test_case_id=test_case_id, evaluation=self.evaluation, comment=self.comment)

    def to_payload(self, test_case_id: str) -> Dict[str, object]:
        comment = self.comment.strip()
        return {
            'testCaseId': test_case_id,
            'evaluation': self.evaluation.value,
            'comment': comment or None,
        }


@dataclass
class FlushResult:
    """Outcome of one flush.

    submitted lists the case ids sent, skipped the comment-only ids kept
    unsaved because they had no evaluation. run is the view after the flush.
    """
    submitted: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    run: Optional[TestRun] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ResultEditBuffer:
    """Debounced, optimistic editor for the results of one run."""

    def __init__(
        self,
        run: TestRun,
        repository: ITestRunRepository,
        scheduler: IScheduler,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        on_change: Optional[Callable[[TestRun], None]] = None,
        on_persisted: Optional[Callable[[TestRun], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_skipped: Optional[Callable[[List[str]], None]] = None,
        metrics: Optional[IMetricsCollector] = None
    ):
        """Initialize the buffer.

        Args:
            run: Server snapshot to start from
            repository: Receives upsert_results calls
            scheduler: Drives the debounce timer
            debounce_ms: Quiet period before pending edits are flushed
            on_change: Called with a copy of the view after every change
            on_persisted: Called with the server run after a successful flush
            on_error: Called with the error when a timer-driven flush fails
            on_skipped: Called with the case ids whose comment-only edits
                        a flush could not send
            metrics: Metrics collector (global collector by default)
        """
        self._run_id = run.id
        self._repository = repository
        self._scheduler = scheduler
        self._debounce_ms = debounce_ms
        self._on_change = on_change
        self._on_persisted = on_persisted
        self._on_error = on_error
        self._on_skipped = on_skipped
        self._metrics = metrics or get_metrics_collector()

        self._stable = run.copy()
        self._view = run.copy()
        self._pending: Dict[str, _PendingEntry] = {}
        self._unsaved: Dict[str, _PendingEntry] = {}
        self._in_flight: Optional[Dict[str, _PendingEntry]] = None
        self._drafts: Dict[str, str] = {}
        self._timer: Optional[IScheduledCall] = None
        self._disposed = False

        # _lock guards state; _flush_lock keeps one batch in flight at a time
        self._lock = threading.RLock()
        self._flush_lock = threading.Lock()

    # State accessors

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def view(self) -> TestRun:
        """Optimistic run: stable snapshot plus every unconfirmed edit."""
        with self._lock:
            return self._view.copy()

    @property
    def stable(self) -> TestRun:
        with self._lock:
            return self._stable.copy()

    @property
    def pending_ids(self) -> List[str]:
        with self._lock:
            return list(self._pending)

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._pending)

    @property
    def unsaved_ids(self) -> List[str]:
        """Cases showing a comment that no flush could save yet."""
        with self._lock:
            return list(self._unsaved)

    @property
    def in_flight_ids(self) -> List[str]:
        with self._lock:
            return list(self._in_flight or {})

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def coverage(self, describe: Optional[Describe] = None) -> RunCoverage:
        """Coverage of the optimistic view."""
        return coverage_for_run(self.view, describe)

    def draft(self, test_case_id: str) -> Optional[str]:
        with self._lock:
            return self._drafts.get(test_case_id)

    def comment_locked(self, test_case_id: str) -> bool:
        """Comments are read-only on closed runs and on PASSED results."""
        with self._lock:
            if self._view.is_closed:
                return True
            result = self._view.results.get(test_case_id)
            return result is not None and result.evaluation is Evaluation.PASSED

    # Edits

    def apply(self, edit: ResultEdit) -> TestRun:
        """Apply an edit to the view and schedule a flush.

        Returns:
            Copy of the view after the edit

        Raises:
            InvalidStateError: Buffer disposed, run closed, comment on a
                               PASSED result, or a known-case evaluation for
                               a case outside the target set
        """
        with self._lock:
            self._ensure_editable()
            if isinstance(edit, EditComment):
                changed = self._apply_comment(edit)
            elif isinstance(edit, (EvaluateKnownCase, EvaluateAndAdmitCase)):
                changed = self._apply_evaluation(edit)
            else:
                raise ValidationError(
                    f"Unsupported edit: {type(edit).__name__}",
                    details={'edit': 'unsupported'}
                )
            if changed:
                self._schedule_flush()
            view = self._view.copy()
        if changed:
            self._notify_change(view)
        return view

    def set_evaluation(self, test_case_id: str, evaluation: Optional[Evaluation]) -> TestRun:
        """Evaluate a case, admitting it to the run if it is not targeted."""
        with self._lock:
            targeted = self._view.has_target(test_case_id)
        return self.apply(evaluation_edit(test_case_id, evaluation, targeted))

    def set_comment(self, test_case_id: str, comment: str) -> TestRun:
        return self.apply(EditComment(test_case_id, comment or ""))

    def stage_comment_draft(self, test_case_id: str, text: str) -> None:
        """Keep keystroke-level comment text without creating a pending edit."""
        text = text or ""
        with self._lock:
            self._ensure_editable()
            self._ensure_comment_unlocked(test_case_id)
            current = self._view.results.get(test_case_id)
            if text == (current.comment if current else ""):
                self._drafts.pop(test_case_id, None)
            else:
                self._drafts[test_case_id] = text

    def commit_comment(self, test_case_id: str) -> Optional[TestRun]:
        """Move a case's comment draft into the pending edits.

        Returns:
            The view if a draft was committed, None if there was nothing to do
        """
        with self._lock:
            if test_case_id not in self._drafts:
                return None
            text = self._drafts.pop(test_case_id)
            if not self._view.has_target(test_case_id):
                logger.debug("Dropping comment draft for untargeted test case %s", test_case_id)
                return None
            current = self._view.results.get(test_case_id)
            if (current.comment if current else "") == text:
                return None
            if current is not None and current.evaluation is Evaluation.PASSED:
                logger.debug("Dropping comment draft for PASSED test case %s", test_case_id)
                return None
        return self.apply(EditComment(test_case_id, text))

    def commit_all_drafts(self) -> None:
        with self._lock:
            ids = list(self._drafts)
        for test_case_id in ids:
            self.commit_comment(test_case_id)

    def discard(self, test_case_id: str) -> None:
        """Forget the pending or unsaved edit and the draft of one case."""
        with self._lock:
            self._drafts.pop(test_case_id, None)
            had_pending = self._pending.pop(test_case_id, None) is not None
            had_unsaved = self._unsaved.pop(test_case_id, None) is not None
            if not (had_pending or had_unsaved):
                return
            self._rebuild_view(self._stable)
            if not self._pending and self._timer is not None:
                self._timer.cancel()
                self._timer = None
            view = self._view.copy()
        self._notify_change(view)

    # Persistence

    def flush(self) -> FlushResult:
        """Send pending edits now.

        Raises:
            PersistenceError, NotFoundError, AccessDeniedError: After the
                view has been rolled back
        """
        return self._flush(triggered_by="explicit")

    def reconcile(self, server_run: TestRun) -> TestRun:
        """Adopt a server snapshot, keeping unsent edits on top of it."""
        with self._lock:
            self._stable = server_run.copy()
            self._rebuild_view(self._stable)
            view = self._view.copy()
        self._notify_change(view)
        return view

    def rollback(self) -> TestRun:
        """Drop every unsent edit and draft and show the stable snapshot."""
        with self._lock:
            self._cancel_timer()
            self._pending.clear()
            self._unsaved.clear()
            self._drafts.clear()
            self._view = self._stable.copy()
            view = self._view.copy()
        self._notify_change(view)
        return view

    def dispose(self) -> None:
        """Cancel the debounce timer. Later edits raise InvalidStateError."""
        with self._lock:
            self._disposed = True
            self._cancel_timer()
            if self._pending:
                logger.warning(
                    "Disposing buffer for run %s with %d unsent edit(s)",
                    self._run_id, len(self._pending),
                    extra={"run_id": self._run_id}
                )

    # Internals

    def _ensure_editable(self) -> None:
        if self._disposed:
            raise InvalidStateError("Edit buffer has been disposed", run_id=self._run_id)
        if self._view.is_closed:
            raise InvalidStateError("Run is closed", run_id=self._run_id)

    def _ensure_comment_unlocked(self, test_case_id: str) -> None:
        result = self._view.results.get(test_case_id)
        if result is not None and result.evaluation is Evaluation.PASSED:
            raise InvalidStateError(
                f"Comment of test case {test_case_id} is read-only while it is PASSED",
                run_id=self._run_id
            )

    def _current_entry(self, test_case_id: str) -> _PendingEntry:
        entry = self._pending.get(test_case_id)
        if entry is not None:
            return _PendingEntry(entry.evaluation, entry.comment, entry.admit)
        result = self._view.results.get(test_case_id)
        if result is not None:
            return _PendingEntry(result.evaluation, result.comment)
        return _PendingEntry()

    def _apply_evaluation(self, edit) -> bool:
        test_case_id = edit.test_case_id
        targeted = self._view.has_target(test_case_id)
        if not targeted:
            if edit.evaluation is None:
                return False
            if isinstance(edit, EvaluateKnownCase):
                raise InvalidStateError(
                    f"Test case {test_case_id} is not in the run's target set",
                    run_id=self._run_id
                )

        entry = self._current_entry(test_case_id)
        if edit.evaluation is Evaluation.PASSED and test_case_id in self._drafts:
            entry.comment = self._drafts.pop(test_case_id)
        entry.evaluation = edit.evaluation
        if not targeted:
            entry.admit = True
            self._view.admit(test_case_id)
        self._store(test_case_id, entry)
        return True

    def _apply_comment(self, edit: EditComment) -> bool:
        test_case_id = edit.test_case_id
        if not self._view.has_target(test_case_id):
            raise InvalidStateError(
                f"Test case {test_case_id} is not in the run's target set",
                run_id=self._run_id
            )
        self._ensure_comment_unlocked(test_case_id)
        self._drafts.pop(test_case_id, None)
        entry = self._current_entry(test_case_id)
        entry.comment = edit.comment
        self._store(test_case_id, entry)
        return True

    def _store(self, test_case_id: str, entry: _PendingEntry) -> None:
        self._unsaved.pop(test_case_id, None)
        if entry.is_empty:
            self._pending.pop(test_case_id, None)
            self._view.results.pop(test_case_id, None)
            if entry.admit and not self._stable.has_target(test_case_id):
                self._view.target_test_case_ids.remove(test_case_id)
            return
        self._pending[test_case_id] = entry
        self._view.results[test_case_id] = entry.to_result(test_case_id)

    def _rebuild_view(self, base: TestRun) -> None:
        view = base.copy()
        if view.is_closed:
            self._unsaved.clear()
        # Unsaved values first so newer pending edits win
        for entries in (self._unsaved, self._pending):
            for test_case_id, entry in list(entries.items()):
                if not view.has_target(test_case_id):
                    if not entry.admit:
                        del entries[test_case_id]
                        continue
                    view.admit(test_case_id)
                view.results[test_case_id] = entry.to_result(test_case_id)
        for test_case_id in list(self._drafts):
            if not view.has_target(test_case_id):
                del self._drafts[test_case_id]
        self._view = view

    def _schedule_flush(self) -> None:
        self._cancel_timer()
        self._timer = self._scheduler.call_later(self._debounce_ms, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        if self._disposed:
            return
        self._flush(triggered_by="timer")

    def _take_batch(self) -> Tuple[Dict[str, _PendingEntry], List[str]]:
        batch: Dict[str, _PendingEntry] = {}
        skipped: List[str] = []
        for test_case_id, entry in self._pending.items():
            if entry.evaluation is None:
                skipped.append(test_case_id)
                self._unsaved[test_case_id] = entry
            else:
                batch[test_case_id] = entry
        self._pending = {}
        return batch, skipped

    def _flush(self, triggered_by: str) -> FlushResult:
        with self._flush_lock:
            with self._lock:
                if self._disposed and triggered_by == "explicit":
                    raise InvalidStateError("Edit buffer has been disposed", run_id=self._run_id)
                self._cancel_timer()
                batch, skipped = self._take_batch()
                if skipped:
                    logger.warning(
                        "Kept %d comment-only edit(s) unsaved until evaluated: %s",
                        len(skipped), ", ".join(skipped),
                        extra={"run_id": self._run_id}
                    )
                view = self._view.copy()
                self._in_flight = batch or None
                payload = [entry.to_payload(test_case_id) for test_case_id, entry in batch.items()]

            if skipped and self._on_skipped:
                self._on_skipped(list(skipped))
            if not batch:
                return FlushResult(skipped=skipped, run=view)

            started = time.perf_counter()
            try:
                server_run = self._repository.upsert_results(self._run_id, payload)
            except BACKEND_ERRORS as exc:
                duration_ms = (time.perf_counter() - started) * 1000
                with self._lock:
                    self._in_flight = None
                    self._rebuild_view(self._stable)
                    view = self._view.copy()
                logger.error(
                    "Failed to save %d result(s), reverted to last saved state: %s",
                    len(batch), exc,
                    extra={"run_id": self._run_id, "duration_ms": duration_ms}
                )
                self._record(len(batch), len(skipped), duration_ms, triggered_by, exc)
                self._notify_change(view)
                if triggered_by == "explicit":
                    raise
                if self._on_error:
                    self._on_error(exc)
                return FlushResult(skipped=skipped, run=view, error=exc)

            duration_ms = (time.perf_counter() - started) * 1000
            with self._lock:
                self._in_flight = None
                self._stable = server_run.copy()
                self._rebuild_view(self._stable)
                view = self._view.copy()
            self._record(len(batch), len(skipped), duration_ms, triggered_by, None)
            self._notify_change(view)
            if self._on_persisted:
                self._on_persisted(server_run.copy())
            return FlushResult(submitted=list(batch), skipped=skipped, run=view)

    def _record(
        self,
        batch_size: int,
        skipped: int,
        duration_ms: float,
        triggered_by: str,
        error: Optional[Exception]
    ) -> None:
        self._metrics.record_flush(FlushMetrics(
            run_id=self._run_id,
            batch_size=batch_size,
            skipped=skipped,
            duration_ms=duration_ms,
            success=error is None,
            triggered_by=triggered_by,
            error_message=str(error) if error else None
        ))

    def _notify_change(self, view: TestRun) -> None:
        if self._on_change:
            self._on_change(view)
