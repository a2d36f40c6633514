"""
Coverage calculator.

Pure functions deriving coverage and pass-rate metrics from a run's target
set and results. Nothing here is stored; callers recompute after every
mutation.

Pass rates travel through the engine as ratios in [0, 1]. Percentages only
appear at the edges, via ratio_to_percent.
"""
import math
from typing import Callable, Dict, Iterable, Mapping, Optional, Union

from core.domain.test_run import (
    Evaluation,
    MissingTestCase,
    Result,
    RunCoverage,
    TestRun,
)

Describe = Callable[[str], MissingTestCase]


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (0.125 * 100 -> 13)."""
    return int(math.floor(value + 0.5))


def _iter_results(results: Union[Mapping[str, Result], Iterable[Result]]) -> Iterable[Result]:
    if isinstance(results, Mapping):
        return results.values()
    return results


def count_evaluations(results: Union[Mapping[str, Result], Iterable[Result]]) -> Dict[Evaluation, int]:
    """Count results per evaluation. Every evaluation is present in the output."""
    counts = {evaluation: 0 for evaluation in Evaluation}
    for result in _iter_results(results):
        if result.evaluation is not None:
            counts[result.evaluation] += 1
    return counts


def compute_pass_rate(passed: int, total: int) -> float:
    """Share of passed cases over the target size, as a ratio."""
    if total <= 0:
        return 0.0
    return passed / total


def coverage_ratio(executed: int, total: int) -> Optional[float]:
    """Executed over total, clamped to [0, 1]. None when there is nothing to cover."""
    if total <= 0:
        return None
    return min(max(executed / total, 0.0), 1.0)


def ratio_to_percent(ratio: Optional[float]) -> Optional[int]:
    """Render a ratio as a whole percentage."""
    if ratio is None:
        return None
    return round_half_up(min(max(ratio, 0.0), 1.0) * 100)


def normalize_pass_rate(value: Optional[float]) -> Optional[int]:
    """Turn an externally supplied pass rate into a whole percentage.

    Values at or below 1 are read as ratios, anything larger as an
    already-computed percentage. A literal 1 therefore means 100%.
    """
    if value is None:
        return None
    if value <= 1:
        return round_half_up(value * 100)
    return round_half_up(value)


def _default_describe(test_case_id: str) -> MissingTestCase:
    return MissingTestCase(id=test_case_id, name=test_case_id)


def compute_coverage(
    target_ids: Iterable[str],
    results: Mapping[str, Result],
    describe: Optional[Describe] = None
) -> RunCoverage:
    """Derive coverage for a target set.

    Args:
        target_ids: Ordered target test case ids
        results: Results keyed by test case id
        describe: Looks up display metadata for missing cases; the id is
                  used as the name when omitted

    Returns:
        RunCoverage with missing cases listed in target order. With no
        target ids (partially hydrated history) the result ids stand in.
    """
    describe = describe or _default_describe
    targets = list(target_ids) or list(results)
    executed = 0
    missing = []
    for test_case_id in targets:
        result = results.get(test_case_id)
        if result is not None and result.evaluation is not None:
            executed += 1
        else:
            missing.append(describe(test_case_id))

    total = len(targets)
    target_set = set(targets)
    counts = count_evaluations(
        result for test_case_id, result in results.items() if test_case_id in target_set
    )
    return RunCoverage(
        total_cases=total,
        executed_cases=executed,
        missing_cases=max(0, total - executed),
        missing_test_cases=missing,
        counts=counts,
        pass_rate=compute_pass_rate(counts[Evaluation.PASSED], total),
    )


def coverage_for_run(run: TestRun, describe: Optional[Describe] = None) -> RunCoverage:
    """Coverage of a run; case metadata sent with the run wins over describe."""
    fallback = describe or _default_describe
    details = run.case_details

    def lookup(test_case_id: str) -> MissingTestCase:
        known = details.get(test_case_id)
        return known if known is not None else fallback(test_case_id)

    return compute_coverage(run.target_test_case_ids, run.results, lookup)


def is_full_pass(coverage: RunCoverage) -> bool:
    """True when every targeted case passed and nothing is missing."""
    return (
        coverage.total_cases > 0
        and coverage.passed_cases == coverage.total_cases
        and coverage.missing_cases == 0
    )
