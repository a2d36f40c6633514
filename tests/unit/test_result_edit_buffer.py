"""
Tests for the debounced result edit buffer.

A ManualScheduler drives the debounce timer so every test controls time
explicitly.
"""
import pytest
from unittest.mock import Mock

from core.domain.edits import EditComment, EvaluateAndAdmitCase, EvaluateKnownCase
from core.domain.test_run import Evaluation, Result, RunScope, RunStatus, TestRun
from core.exceptions import InvalidStateError, PersistenceError
from core.services.coverage import ratio_to_percent
from core.services.metrics.metrics_collector import MetricsCollector
from core.services.result_edit_buffer import DEFAULT_DEBOUNCE_MS, ResultEditBuffer
from core.services.scheduling import ManualScheduler
from tests.fakes import FakeTestRunRepository


def _run(targets, results=None, status=RunStatus.OPEN):
    return TestRun(
        id='run-1',
        scope=RunScope.FEATURE,
        status=status,
        feature_id='F1',
        target_test_case_ids=list(targets),
        results=dict(results or {}),
    )


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def repository():
    return FakeTestRunRepository()


@pytest.fixture
def metrics():
    return MetricsCollector(enable_logging=False)


@pytest.fixture
def make_buffer(scheduler, repository, metrics):
    def factory(run, **kwargs):
        repository.add_run(run)
        return ResultEditBuffer(run, repository, scheduler, metrics=metrics, **kwargs)
    return factory


class TestDebounce:
    """Test coalescing of edits into one batch."""

    def test_edits_within_window_coalesce(self, make_buffer, scheduler, repository):
        """Three edits 100ms apart produce one call 800ms after the last."""
        buffer = make_buffer(_run(['A', 'B', 'C']))

        buffer.set_evaluation('A', Evaluation.PASSED)
        scheduler.advance(100)
        buffer.set_evaluation('B', Evaluation.NOT_WORKING)
        scheduler.advance(100)
        buffer.set_evaluation('C', Evaluation.MINOR_ISSUE)

        scheduler.advance(DEFAULT_DEBOUNCE_MS - 1)
        assert repository.calls_named('upsert_results') == []

        scheduler.advance(1)
        calls = repository.calls_named('upsert_results')
        assert len(calls) == 1
        assert [item['testCaseId'] for item in calls[0][2]] == ['A', 'B', 'C']

    def test_same_case_edited_twice_sends_latest(self, make_buffer, scheduler, repository):
        """Later edits to the same case replace earlier ones."""
        buffer = make_buffer(_run(['A']))

        buffer.set_evaluation('A', Evaluation.NOT_WORKING)
        buffer.set_evaluation('A', Evaluation.PASSED)
        scheduler.advance(DEFAULT_DEBOUNCE_MS)

        payload = repository.calls_named('upsert_results')[0][2]
        assert payload == [{'testCaseId': 'A', 'evaluation': 'PASSED', 'comment': None}]

    def test_custom_debounce(self, make_buffer, scheduler, repository):
        buffer = make_buffer(_run(['A']), debounce_ms=50)

        buffer.set_evaluation('A', Evaluation.PASSED)
        scheduler.advance(50)

        assert len(repository.calls_named('upsert_results')) == 1

    def test_explicit_flush_cancels_timer(self, make_buffer, scheduler, repository):
        buffer = make_buffer(_run(['A']))
        buffer.set_evaluation('A', Evaluation.PASSED)

        buffer.flush()
        scheduler.advance(DEFAULT_DEBOUNCE_MS * 2)

        assert len(repository.calls_named('upsert_results')) == 1
        assert scheduler.pending_count == 0


class TestFlush:
    """Test successful persistence."""

    def test_payload_and_coverage(self, make_buffer, scheduler, repository):
        """Evaluating two of three cases persists both and yields 33%."""
        buffer = make_buffer(_run(['A', 'B', 'C']))

        buffer.set_evaluation('A', Evaluation.PASSED)
        buffer.set_evaluation('B', Evaluation.NOT_WORKING)
        scheduler.advance(DEFAULT_DEBOUNCE_MS)

        payload = repository.calls_named('upsert_results')[0][2]
        assert payload == [
            {'testCaseId': 'A', 'evaluation': 'PASSED', 'comment': None},
            {'testCaseId': 'B', 'evaluation': 'NOT_WORKING', 'comment': None},
        ]
        coverage = buffer.coverage()
        assert coverage.executed_cases == 2
        assert coverage.missing_cases == 1
        assert ratio_to_percent(coverage.pass_rate) == 33

    def test_success_replaces_stable_snapshot(self, make_buffer, scheduler):
        buffer = make_buffer(_run(['A']))

        buffer.set_evaluation('A', Evaluation.MINOR_ISSUE)
        scheduler.advance(DEFAULT_DEBOUNCE_MS)

        assert buffer.stable.results['A'].evaluation is Evaluation.MINOR_ISSUE
        assert buffer.has_pending is False
        assert buffer.in_flight_ids == []

    def test_comment_is_trimmed(self, make_buffer, repository):
        buffer = make_buffer(_run(['A']))

        buffer.set_evaluation('A', Evaluation.NOT_WORKING)
        buffer.set_comment('A', '  crashes on save  ')
        buffer.flush()

        payload = repository.calls_named('upsert_results')[0][2]
        assert payload[0]['comment'] == 'crashes on save'

    def test_flush_with_nothing_pending(self, make_buffer, repository):
        buffer = make_buffer(_run(['A']))

        result = buffer.flush()

        assert result.submitted == []
        assert result.ok is True
        assert repository.calls_named('upsert_results') == []

    def test_on_persisted_receives_server_run(self, make_buffer):
        persisted = Mock()
        buffer = make_buffer(_run(['A']), on_persisted=persisted)

        buffer.set_evaluation('A', Evaluation.PASSED)
        buffer.flush()

        persisted.assert_called_once()
        server_run = persisted.call_args[0][0]
        assert server_run.results['A'].evaluation is Evaluation.PASSED

    def test_on_change_sees_optimistic_view(self, make_buffer):
        changes = Mock()
        buffer = make_buffer(_run(['A']), on_change=changes)

        buffer.set_evaluation('A', Evaluation.PASSED)

        view = changes.call_args[0][0]
        assert view.results['A'].evaluation is Evaluation.PASSED

    def test_flush_records_metrics(self, make_buffer, metrics):
        buffer = make_buffer(_run(['A', 'B']))

        buffer.set_evaluation('A', Evaluation.PASSED)
        buffer.set_evaluation('B', Evaluation.PASSED)
        buffer.flush()

        summary = metrics.get_summary()
        assert summary['total_flushes'] == 1
        assert summary['successful_flushes'] == 1
        assert summary['results_submitted'] == 2


class TestAdmission:
    """Test evaluating cases outside the target set."""

    def test_admitted_case_grows_target_set(self, make_buffer, scheduler):
        """Evaluating an untargeted case admits it and the total grows."""
        buffer = make_buffer(_run(['A', 'B', 'C']))

        view = buffer.set_evaluation('D', Evaluation.PASSED)

        assert 'D' in view.target_test_case_ids
        assert buffer.coverage().total_cases == 4

        scheduler.advance(DEFAULT_DEBOUNCE_MS)
        assert buffer.stable.has_target('D')
        assert buffer.coverage().total_cases == 4

    def test_known_case_edit_rejects_untargeted_case(self, make_buffer, repository):
        buffer = make_buffer(_run(['A']))

        with pytest.raises(InvalidStateError):
            buffer.apply(EvaluateKnownCase('Z', Evaluation.PASSED))

        assert buffer.has_pending is False

    def test_admit_edit_applies(self, make_buffer):
        buffer = make_buffer(_run(['A']))

        view = buffer.apply(EvaluateAndAdmitCase('Z', Evaluation.MINOR_ISSUE))

        assert view.target_test_case_ids == ['A', 'Z']

    def test_clearing_admitted_case_removes_it_again(self, make_buffer):
        """An admitted case that is cleared before flushing leaves the target set."""
        buffer = make_buffer(_run(['A']))

        buffer.set_evaluation('Z', Evaluation.PASSED)
        view = buffer.set_evaluation('Z', None)

        assert view.target_test_case_ids == ['A']
        assert buffer.has_pending is False

    def test_clearing_untargeted_case_is_noop(self, make_buffer):
        buffer = make_buffer(_run(['A']))

        view = buffer.set_evaluation('Z', None)

        assert view.target_test_case_ids == ['A']
        assert buffer.has_pending is False

    def test_results_always_subset_of_targets(self, make_buffer, scheduler):
        buffer = make_buffer(_run(['A']))

        buffer.set_evaluation('B', Evaluation.NOT_WORKING)
        buffer.set_evaluation('C', Evaluation.PASSED)
        scheduler.advance(DEFAULT_DEBOUNCE_MS)

        view = buffer.view
        assert set(view.results) <= set(view.target_test_case_ids)


class TestRollback:
    """Test failure handling."""

    def test_failed_flush_restores_stable_state(self, make_buffer, scheduler, repository):
        """A failed batch reverts to the last saved evaluation and reports the error."""
        on_error = Mock()
        stable = _run(['A'], {'A': Result('A', Evaluation.PASSED)})
        buffer = make_buffer(stable, on_error=on_error)
        repository.upsert_failures.append(PersistenceError("Server error", status_code=500))

        buffer.set_evaluation('A', Evaluation.NOT_WORKING)
        assert buffer.view.results['A'].evaluation is Evaluation.NOT_WORKING

        scheduler.advance(DEFAULT_DEBOUNCE_MS)

        assert buffer.view.results['A'].evaluation is Evaluation.PASSED
        on_error.assert_called_once()
        assert isinstance(on_error.call_args[0][0], PersistenceError)
        assert buffer.has_pending is False
        assert buffer.in_flight_ids == []

    def test_explicit_flush_raises_after_rollback(self, make_buffer, repository):
        buffer = make_buffer(_run(['A']))
        repository.upsert_failures.append(PersistenceError("Network down"))

        buffer.set_evaluation('A', Evaluation.PASSED)
        with pytest.raises(PersistenceError):
            buffer.flush()

        assert 'A' not in buffer.view.results

    def test_no_automatic_retry(self, make_buffer, scheduler, repository):
        buffer = make_buffer(_run(['A']), on_error=Mock())
        repository.upsert_failures.append(PersistenceError("Server error", status_code=503))

        buffer.set_evaluation('A', Evaluation.PASSED)
        scheduler.advance(DEFAULT_DEBOUNCE_MS * 5)

        assert len(repository.calls_named('upsert_results')) == 1

    def test_failed_admission_is_rolled_back(self, make_buffer, scheduler, repository):
        buffer = make_buffer(_run(['A']), on_error=Mock())
        repository.upsert_failures.append(PersistenceError("Server error"))

        buffer.set_evaluation('D', Evaluation.PASSED)
        scheduler.advance(DEFAULT_DEBOUNCE_MS)

        assert buffer.view.target_test_case_ids == ['A']

    def test_edits_during_flight_survive_failure(self, make_buffer, repository):
        """Edits made while a batch is in flight are re-applied after a rollback."""
        buffer = make_buffer(_run(['A', 'B']))
        repository.upsert_failures.append(PersistenceError("Server error"))
        repository.during_upsert = lambda: buffer.set_evaluation('B', Evaluation.MINOR_ISSUE)

        buffer.set_evaluation('A', Evaluation.PASSED)
        with pytest.raises(PersistenceError):
            buffer.flush()

        view = buffer.view
        assert 'A' not in view.results
        assert view.results['B'].evaluation is Evaluation.MINOR_ISSUE
        assert buffer.pending_ids == ['B']

    def test_edits_during_flight_start_new_batch(self, make_buffer, scheduler, repository):
        buffer = make_buffer(_run(['A', 'B']))
        repository.during_upsert = lambda: buffer.set_evaluation('B', Evaluation.NOT_WORKING)

        buffer.set_evaluation('A', Evaluation.PASSED)
        buffer.flush()

        first = repository.calls_named('upsert_results')[0][2]
        assert [item['testCaseId'] for item in first] == ['A']
        assert buffer.view.results['B'].evaluation is Evaluation.NOT_WORKING

        scheduler.advance(DEFAULT_DEBOUNCE_MS)
        second = repository.calls_named('upsert_results')[1][2]
        assert [item['testCaseId'] for item in second] == ['B']

    def test_failed_flush_records_metrics(self, make_buffer, scheduler, repository, metrics):
        buffer = make_buffer(_run(['A']), on_error=Mock())
        repository.upsert_failures.append(PersistenceError("Server error"))

        buffer.set_evaluation('A', Evaluation.PASSED)
        scheduler.advance(DEFAULT_DEBOUNCE_MS)

        summary = metrics.get_summary()
        assert summary['failed_flushes'] == 1
        assert summary['results_submitted'] == 0

    def test_manual_rollback_drops_pending(self, make_buffer, scheduler, repository):
        buffer = make_buffer(_run(['A']))

        buffer.set_evaluation('A', Evaluation.PASSED)
        buffer.rollback()
        scheduler.advance(DEFAULT_DEBOUNCE_MS)

        assert repository.calls_named('upsert_results') == []
        assert buffer.view.results == {}


class TestComments:
    """Test comment drafts and the PASSED lock."""

    def test_comment_only_entry_is_skipped(self, make_buffer, repository):
        """A comment without an evaluation is never sent."""
        buffer = make_buffer(_run(['A']))

        buffer.set_comment('A', 'looks odd')
        result = buffer.flush()

        assert result.skipped == ['A']
        assert repository.calls_named('upsert_results') == []
        assert buffer.has_pending is False
        assert buffer.unsaved_ids == ['A']
        assert buffer.view.results['A'].comment == 'looks odd'

    def test_timer_flush_keeps_committed_comment_visible(self, make_buffer, scheduler, repository):
        """A blurred comment on an unevaluated case survives the timer and is reported."""
        on_skipped = Mock()
        buffer = make_buffer(_run(['A']), on_skipped=on_skipped)

        buffer.stage_comment_draft('A', 'login button misaligned')
        buffer.commit_comment('A')
        scheduler.advance(DEFAULT_DEBOUNCE_MS)

        assert repository.calls_named('upsert_results') == []
        on_skipped.assert_called_once_with(['A'])
        assert buffer.view.results['A'].comment == 'login button misaligned'
        assert buffer.view.results['A'].evaluation is None

    def test_unsaved_comment_is_sent_with_later_evaluation(self, make_buffer, scheduler, repository):
        buffer = make_buffer(_run(['A']))

        buffer.set_comment('A', 'flaky on retry')
        scheduler.advance(DEFAULT_DEBOUNCE_MS)
        buffer.set_evaluation('A', Evaluation.MINOR_ISSUE)
        scheduler.advance(DEFAULT_DEBOUNCE_MS)

        payload = repository.calls_named('upsert_results')[0][2]
        assert payload == [{'testCaseId': 'A', 'evaluation': 'MINOR_ISSUE', 'comment': 'flaky on retry'}]
        assert buffer.unsaved_ids == []

    def test_unsaved_comment_survives_other_flushes(self, make_buffer, repository):
        buffer = make_buffer(_run(['A', 'B']))

        buffer.set_comment('A', 'note')
        buffer.flush()
        buffer.set_evaluation('B', Evaluation.PASSED)
        buffer.flush()

        assert buffer.view.results['A'].comment == 'note'
        assert buffer.view.results['B'].evaluation is Evaluation.PASSED

    def test_discard_forgets_unsaved_comment(self, make_buffer):
        buffer = make_buffer(_run(['A']))
        buffer.set_comment('A', 'note')
        buffer.flush()

        buffer.discard('A')

        assert buffer.unsaved_ids == []
        assert 'A' not in buffer.view.results

    def test_skipped_entries_do_not_block_batch(self, make_buffer, repository):
        buffer = make_buffer(_run(['A', 'B']))

        buffer.set_comment('A', 'note')
        buffer.set_evaluation('B', Evaluation.PASSED)
        result = buffer.flush()

        assert result.submitted == ['B']
        assert result.skipped == ['A']
        assert buffer.view.results['B'].evaluation is Evaluation.PASSED
        assert buffer.view.results['A'].comment == 'note'

    def test_comment_read_only_while_passed(self, make_buffer):
        buffer = make_buffer(_run(['A'], {'A': Result('A', Evaluation.PASSED)}))

        assert buffer.comment_locked('A') is True
        with pytest.raises(InvalidStateError):
            buffer.apply(EditComment('A', 'new note'))
        with pytest.raises(InvalidStateError):
            buffer.stage_comment_draft('A', 'new note')

    def test_passed_commits_outstanding_draft(self, make_buffer, repository):
        """Marking PASSED folds the typed draft into the same edit."""
        buffer = make_buffer(_run(['A']))

        buffer.stage_comment_draft('A', 'checked on staging')
        buffer.set_evaluation('A', Evaluation.PASSED)
        buffer.flush()

        payload = repository.calls_named('upsert_results')[0][2]
        assert payload == [{'testCaseId': 'A', 'evaluation': 'PASSED', 'comment': 'checked on staging'}]
        assert buffer.draft('A') is None

    def test_draft_is_not_pending(self, make_buffer, scheduler, repository):
        buffer = make_buffer(_run(['A']))

        buffer.stage_comment_draft('A', 'typing')
        scheduler.advance(DEFAULT_DEBOUNCE_MS)

        assert buffer.has_pending is False
        assert repository.calls_named('upsert_results') == []

    def test_commit_comment_moves_draft_into_pending(self, make_buffer):
        buffer = make_buffer(_run(['A'], {'A': Result('A', Evaluation.MINOR_ISSUE)}))

        buffer.stage_comment_draft('A', 'slow')
        view = buffer.commit_comment('A')

        assert view.results['A'].comment == 'slow'
        assert buffer.pending_ids == ['A']

    def test_commit_unchanged_comment_is_noop(self, make_buffer):
        buffer = make_buffer(_run(['A'], {'A': Result('A', Evaluation.MINOR_ISSUE, comment='slow')}))

        buffer.stage_comment_draft('A', 'slow')

        assert buffer.commit_comment('A') is None
        assert buffer.has_pending is False

    def test_draft_matching_comment_is_dropped(self, make_buffer):
        """Typing back to the saved text leaves no draft behind."""
        buffer = make_buffer(_run(['A'], {'A': Result('A', Evaluation.MINOR_ISSUE, comment='slow')}))

        buffer.stage_comment_draft('A', 'slower')
        buffer.stage_comment_draft('A', 'slow')

        assert buffer.draft('A') is None

    def test_clearing_entry_removes_it(self, make_buffer, repository):
        """Clearing both evaluation and comment drops the pending entry."""
        buffer = make_buffer(_run(['A']))

        buffer.set_evaluation('A', Evaluation.NOT_WORKING)
        buffer.set_evaluation('A', None)
        buffer.flush()

        assert buffer.has_pending is False
        assert repository.calls_named('upsert_results') == []


class TestClosedAndDisposed:
    """Test edits that must be rejected before any network call."""

    def test_closed_run_rejects_edits(self, make_buffer, repository):
        buffer = make_buffer(_run(['A'], status=RunStatus.CLOSED))

        with pytest.raises(InvalidStateError):
            buffer.set_evaluation('A', Evaluation.PASSED)
        with pytest.raises(InvalidStateError):
            buffer.set_comment('A', 'late note')

        assert repository.calls == []
        assert buffer.comment_locked('A') is True

    def test_dispose_cancels_timer(self, make_buffer, scheduler, repository):
        buffer = make_buffer(_run(['A']))

        buffer.set_evaluation('A', Evaluation.PASSED)
        buffer.dispose()
        scheduler.advance(DEFAULT_DEBOUNCE_MS)

        assert repository.calls_named('upsert_results') == []
        assert buffer.is_disposed is True

    def test_disposed_buffer_rejects_edits(self, make_buffer):
        buffer = make_buffer(_run(['A']))
        buffer.dispose()

        with pytest.raises(InvalidStateError):
            buffer.set_evaluation('A', Evaluation.PASSED)
        with pytest.raises(InvalidStateError):
            buffer.flush()


class TestReconcile:
    """Test adopting a fresh server snapshot."""

    def test_pending_edits_stay_on_top(self, make_buffer):
        buffer = make_buffer(_run(['A', 'B']))
        buffer.set_evaluation('A', Evaluation.NOT_WORKING)

        server = _run(['A', 'B'], {'B': Result('B', Evaluation.PASSED)})
        view = buffer.reconcile(server)

        assert view.results['A'].evaluation is Evaluation.NOT_WORKING
        assert view.results['B'].evaluation is Evaluation.PASSED

    def test_pending_edit_for_removed_case_is_dropped(self, make_buffer):
        buffer = make_buffer(_run(['A', 'B']))
        buffer.set_evaluation('B', Evaluation.NOT_WORKING)

        view = buffer.reconcile(_run(['A']))

        assert 'B' not in view.results
        assert buffer.has_pending is False

    def test_draft_for_removed_case_is_dropped(self, make_buffer, repository):
        """A stale draft cannot block committing the remaining drafts."""
        buffer = make_buffer(_run(['A', 'B']))
        buffer.stage_comment_draft('A', 'still typing')
        buffer.stage_comment_draft('B', 'gone soon')

        buffer.reconcile(_run(['A']))
        buffer.commit_all_drafts()

        assert buffer.draft('B') is None
        assert buffer.pending_ids == ['A']

    def test_closed_snapshot_drops_unsaved_comments(self, make_buffer):
        buffer = make_buffer(_run(['A']))
        buffer.set_comment('A', 'note')
        buffer.flush()

        view = buffer.reconcile(_run(['A'], status=RunStatus.CLOSED))

        assert buffer.unsaved_ids == []
        assert 'A' not in view.results
