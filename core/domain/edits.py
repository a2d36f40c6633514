"""
Result edit commands.

Each edit is a tagged variant so the buffer can tell an evaluation of a
case that is already targeted apart from one that also admits the case
into the run.
"""
from dataclasses import dataclass
from typing import Optional, Union

from .test_run import Evaluation


@dataclass(frozen=True)
class EvaluateKnownCase:
    """Set (or clear) the evaluation of a case already in the target set."""
    test_case_id: str
    evaluation: Optional[Evaluation]


@dataclass(frozen=True)
class EvaluateAndAdmitCase:
    """Evaluate a case that is missing from the target set.

    The case is admitted to the run's targets optimistically and becomes
    permanent once the server confirms the result.
    """
    test_case_id: str
    evaluation: Evaluation


@dataclass(frozen=True)
class EditComment:
    """Replace the comment of a case."""
    test_case_id: str
    comment: str


ResultEdit = Union[EvaluateKnownCase, EvaluateAndAdmitCase, EditComment]


def evaluation_edit(
    test_case_id: str,
    evaluation: Optional[Evaluation],
    targeted: bool
) -> ResultEdit:
    """Pick the evaluation command matching the case's membership."""
    if targeted or evaluation is None:
        return EvaluateKnownCase(test_case_id, evaluation)
    return EvaluateAndAdmitCase(test_case_id, evaluation)
