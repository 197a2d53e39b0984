from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from typing import Optional, Tuple

from grade_vision.models import Subject

# ------------------------
# Grade tiers
# ------------------------
EXAM_MAX_MARKS = 100


@dataclass(frozen=True)
class GradeTier:
    name: str
    min_total_marks: int
    grade_point: int


GRADE_LADDER: Tuple[GradeTier, ...] = (
    GradeTier("O", 90, 10),
    GradeTier("A+", 80, 9),
    GradeTier("A", 70, 8),
    GradeTier("B+", 60, 7),
    GradeTier("B", 50, 6),
    GradeTier("C", 45, 5),
    GradeTier("P", 40, 4),
    GradeTier("F", 0, 0),
)


def validate_ladder(ladder: Tuple[GradeTier, ...]) -> None:
    """
    Raise ValueError unless thresholds strictly descend and exactly one
    zero-point, zero-threshold tier closes the ladder.
    """
    if not ladder:
        raise ValueError("Grade ladder is empty.")

    for upper, lower in zip(ladder, ladder[1:]):
        if lower.min_total_marks >= upper.min_total_marks:
            raise ValueError(
                f"Tier {lower.name} ({lower.min_total_marks}) is not below "
                f"{upper.name} ({upper.min_total_marks})."
            )

    for tier in ladder:
        if not 0 <= tier.min_total_marks <= 100:
            raise ValueError(f"Tier {tier.name} threshold out of range.")
        if not 0 <= tier.grade_point <= 10:
            raise ValueError(f"Tier {tier.name} grade point out of range.")

    fallbacks = [t for t in ladder if t.grade_point == 0]
    if len(fallbacks) != 1 or fallbacks[0].min_total_marks != 0:
        raise ValueError("Ladder needs exactly one zero-point tier at 0 marks.")


validate_ladder(GRADE_LADDER)


def round_marks(x: float) -> int:
    return int(Decimal(str(x)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def ceil_marks(x: float) -> int:
    # the figure a student is asked about must never undershoot the tier
    # float noise like 76.00000000000001 must not push the figure up a mark
    exact = Decimal(str(x)).quantize(Decimal("0.000001"), rounding=ROUND_HALF_UP)
    return int(exact.quantize(Decimal("1"), rounding=ROUND_CEILING))


def required_exam_marks(tier: GradeTier, subject: Subject) -> float:
    """
    Final-exam marks (out of 100) needed to reach the tier's total.

    Internal marks are out of 50 and the exam counts at half weight toward
    the 100-point total, so the gap is doubled.
    """
    return 2 * (tier.min_total_marks - subject.internal_marks)


def is_reachable(required: float) -> bool:
    return 0 <= required <= EXAM_MAX_MARKS


def passing_tiers(ladder: Tuple[GradeTier, ...] = GRADE_LADDER) -> Tuple[GradeTier, ...]:
    return tuple(t for t in ladder if t.grade_point > 0)


def fallback_tier(ladder: Tuple[GradeTier, ...] = GRADE_LADDER) -> GradeTier:
    for tier in ladder:
        if tier.grade_point == 0:
            return tier
    raise ValueError("Ladder has no fallback tier.")


def tier_by_name(name: str, ladder: Tuple[GradeTier, ...] = GRADE_LADDER) -> GradeTier:
    for tier in ladder:
        if tier.name == name:
            return tier
    raise KeyError(f"Unknown grade: {name!r}")


def fifty_mark_equivalent(required: float, credit_weight: float) -> Optional[float]:
    # 1 and 2 credit papers are set out of 50
    if credit_weight in (1, 2):
        half = Decimal(str(required)) / 2
        return float(half.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
    return None
