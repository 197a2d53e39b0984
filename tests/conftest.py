import pytest

from grade_vision.models import Subject, SubjectResult
from grade_vision.oracle import ConfidenceOracle, OracleError


class ScriptedOracle(ConfidenceOracle):
    """Answers from a {tier_name: answer} map and records every question."""

    def __init__(self, answers=None, default=False):
        self.answers = answers or {}
        self.default = default
        self.calls = []

    def assess(self, subject_name, tier_name, required_exam_marks, context=None):
        self.calls.append((subject_name, tier_name, required_exam_marks))
        answer = self.answers.get(tier_name, self.default)
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture
def scripted_oracle():
    return ScriptedOracle


@pytest.fixture
def failing_error():
    return OracleError("timeout")


@pytest.fixture
def maths():
    """Example subject: 42 CIE marks, 4 credits."""
    return Subject(name="Mathematics", internal_marks=42, credit_weight=4)


@pytest.fixture
def weak_subject():
    return Subject(name="Physics", internal_marks=10, credit_weight=3)


def make_result(name, tier, gp, credits, internal=30.0, required=40):
    at_risk = gp == 0
    return SubjectResult(
        subject_name=name,
        committed_tier=tier,
        grade_point=gp,
        required_exam_marks=-1 if at_risk else required,
        credit_weight=credits,
        internal_marks=internal,
        at_risk=at_risk,
        risk_reason="at risk" if at_risk else None,
    )


@pytest.fixture
def result_factory():
    return make_result
