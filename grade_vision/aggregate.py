import logging
from dataclasses import replace
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Optional, Sequence

import numpy as np

from grade_vision.ladder import GRADE_LADDER, required_exam_marks, round_marks, tier_by_name
from grade_vision.models import AggregateResult, Subject, SubjectResult

logger = logging.getLogger(__name__)

MANUAL_EDIT_REASON = "manual grade edit"


# ------------------------
# Core logic
# ------------------------
def round_2dp_half_up(x: float) -> float:
    return float(Decimal(str(x)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def weighted_grade_point(gc: np.ndarray) -> float:
    """
    gc: Nx2 numpy array -> [grade point, credit]
    returns: credit-weighted mean grade point, 0.0 when there are no credits
    """
    if gc.size == 0:
        return 0.0

    points = gc[:, 0].astype(float)
    credits = gc[:, 1].astype(float)
    total_credits = float(credits.sum())
    if total_credits == 0:
        return 0.0

    return float(np.dot(points, credits) / total_credits)


def aggregate(results: Sequence[SubjectResult]) -> AggregateResult:
    # at-risk subjects are left out of both sums, not counted as zero
    confirmed = [(r.grade_point, r.credit_weight) for r in results if not r.at_risk]
    gc = np.array(confirmed, dtype=float).reshape(-1, 2)
    average = round_2dp_half_up(weighted_grade_point(gc))
    return AggregateResult(per_subject=tuple(results), average=average)


def edit_grade(
    results: Sequence[SubjectResult],
    subject_index: int,
    new_tier_name: str,
) -> List[SubjectResult]:
    """
    Replace one subject's grade by hand.

    Required exam marks are always recomputed from the new tier. Returns a
    new list; run aggregate() on it afterwards.
    """
    if not 0 <= subject_index < len(results):
        raise IndexError(f"No subject at position {subject_index}")

    tier = tier_by_name(new_tier_name, GRADE_LADDER)
    old = results[subject_index]
    subject = Subject(old.subject_name, old.internal_marks, old.credit_weight)
    passing = tier.grade_point > 0

    updated = replace(
        old,
        committed_tier=tier.name,
        grade_point=tier.grade_point,
        required_exam_marks=round_marks(required_exam_marks(tier, subject)),
        at_risk=not passing,
        risk_reason=None if passing else MANUAL_EDIT_REASON,
    )
    logger.info("%s: grade edited %s -> %s", old.subject_name, old.committed_tier, tier.name)

    new_results = list(results)
    new_results[subject_index] = updated
    return new_results


def add_result(results: Sequence[SubjectResult], result: SubjectResult) -> List[SubjectResult]:
    return [*results, result]


def remove_result(results: Sequence[SubjectResult], subject_index: int) -> List[SubjectResult]:
    if not 0 <= subject_index < len(results):
        raise IndexError(f"No subject at position {subject_index}")
    return [r for i, r in enumerate(results) if i != subject_index]


def overall_cgpa(previous_cgpa, sgpa: float) -> Optional[float]:
    """
    Average a previously earned CGPA with this semester's SGPA.

    Returns None unless previous_cgpa is a number in [0, 10].
    """
    if previous_cgpa is None or isinstance(previous_cgpa, bool):
        return None
    try:
        previous = Decimal(str(previous_cgpa).strip())
    except InvalidOperation:
        return None
    if not previous.is_finite() or not 0 <= previous <= 10:
        return None
    return round_2dp_half_up((float(previous) + sgpa) / 2)
