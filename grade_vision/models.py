"""
Immutable records passed between the form layer, the descent engine and the
aggregator.

    Subject         validated input for one subject
    SubjectResult   the single terminal outcome of one subject's descent
    AggregateResult credit-weighted average plus the per-subject breakdown

Every record converts to and from plain dicts so a whole result can travel
as JSON (see grade_vision.io_csv.encode_result).
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

NOT_APPLICABLE = -1


@dataclass(frozen=True)
class Subject:
    name: str
    internal_marks: float
    credit_weight: float


@dataclass(frozen=True)
class SubjectResult:
    subject_name: str
    committed_tier: str
    grade_point: int
    required_exam_marks: int
    credit_weight: float
    internal_marks: float
    at_risk: bool = False
    risk_reason: Optional[str] = None

    def __post_init__(self):
        if self.at_risk != (self.grade_point == 0):
            raise ValueError(
                f"{self.subject_name}: at_risk must be set exactly when the grade point is 0."
            )
        for value in (self.credit_weight, self.internal_marks):
            if not math.isfinite(value):
                raise ValueError(f"{self.subject_name}: non-finite value {value!r}.")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubjectResult":
        try:
            return cls(
                subject_name=str(data["subject_name"]),
                committed_tier=str(data["committed_tier"]),
                grade_point=int(data["grade_point"]),
                required_exam_marks=int(data["required_exam_marks"]),
                credit_weight=float(data["credit_weight"]),
                internal_marks=float(data["internal_marks"]),
                at_risk=bool(data.get("at_risk", False)),
                risk_reason=data.get("risk_reason"),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed subject result: {e}") from e


@dataclass(frozen=True)
class AggregateResult:
    per_subject: Tuple[SubjectResult, ...]
    average: float

    @property
    def at_risk_subjects(self) -> Tuple[SubjectResult, ...]:
        return tuple(r for r in self.per_subject if r.at_risk)

    @property
    def has_at_risk(self) -> bool:
        return any(r.at_risk for r in self.per_subject)

    @property
    def confirmed_credits(self) -> float:
        return float(sum(r.credit_weight for r in self.per_subject if not r.at_risk))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "per_subject": [r.to_dict() for r in self.per_subject],
            "average": self.average,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AggregateResult":
        try:
            rows = data["per_subject"]
            average = float(data["average"])
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed aggregate result: {e}") from e
        if not isinstance(rows, list):
            raise ValueError("per_subject must be a list.")
        return cls(
            per_subject=tuple(SubjectResult.from_dict(r) for r in rows),
            average=average,
        )
