"""
Target selection for new runs.
"""
from dataclasses import dataclass, field
from typing import List, Union


@dataclass(frozen=True)
class FeatureSelection:
    """Every non-archived case of a feature."""
    feature_id: str


@dataclass(frozen=True)
class ExplicitSelection:
    """A hand-picked list of case ids (order preserved, duplicates dropped)."""
    test_case_ids: List[str] = field(default_factory=list)


TargetSelection = Union[FeatureSelection, ExplicitSelection]
