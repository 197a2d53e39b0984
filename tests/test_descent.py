"""
Unit tests for the confidence-descent state machine and its driver.
"""

import pytest

from grade_vision.descent import (
    AT_RISK_REASON,
    Committed,
    DescentEngine,
    Exhausted,
    InvalidTransition,
    Probing,
    initial_state,
    pending_question,
    settle,
    to_result,
    transition,
)
from grade_vision.ladder import passing_tiers, required_exam_marks, round_marks, tier_by_name
from grade_vision.models import Subject
from grade_vision.oracle import CallbackOracle, ConfidenceOracle, OracleError


class TestTransitions:

    # ─────────────────────────────────────────────────────────────────────
    # settle
    # ─────────────────────────────────────────────────────────────────────

    def test_settle_when_top_tier_reachable_then_stays(self, maths):
        assert settle(initial_state(), maths) == Probing(0)

    def test_settle_when_top_tiers_need_over_100_then_skips_to_b_plus(self, weak_subject):
        # O, A+ and A need 160, 140 and 120
        assert settle(initial_state(), weak_subject) == Probing(3)

    def test_settle_when_past_last_tier_then_exhausted(self, maths):
        assert settle(Probing(len(passing_tiers())), maths) == Exhausted()

    def test_settle_when_requirement_negative_then_skips_by_default(self):
        subject = Subject("Chemistry", 45, 4)
        # C needs 0, P needs -10
        assert settle(Probing(6), subject) == Exhausted()

    def test_settle_when_auto_commit_secured_then_commits_secured_tier(self):
        subject = Subject("Chemistry", 45, 4)
        state = settle(Probing(6), subject, auto_commit_secured=True)
        # P needs -10: kept as the formula value, shown as N/A
        assert state == Committed(tier_by_name("P"), -10)

    def test_settle_when_terminal_then_unchanged(self, maths):
        assert settle(Exhausted(), maths) == Exhausted()

    # ─────────────────────────────────────────────────────────────────────
    # transition
    # ─────────────────────────────────────────────────────────────────────

    def test_transition_when_confident_then_commits_rounded_marks(self, maths):
        state = transition(Probing(1), maths, True)
        assert state == Committed(tier_by_name("A+"), 76)

    def test_transition_when_not_confident_then_moves_one_tier_down(self, maths):
        assert transition(Probing(0), maths, False) == Probing(1)

    def test_transition_when_last_tier_rejected_then_exhausted(self, weak_subject):
        assert transition(Probing(6), weak_subject, False) == Exhausted()

    def test_transition_when_fractional_marks_then_rounds_half_up(self):
        subject = Subject("Biology", 42.25, 4)
        state = transition(Probing(0), subject, True)
        assert state.required_exam_marks == 96

    def test_transition_when_terminal_then_raises(self, maths):
        with pytest.raises(InvalidTransition):
            transition(Exhausted(), maths, True)

    def test_transition_when_tier_unreachable_then_raises(self, weak_subject):
        with pytest.raises(InvalidTransition, match="never settled"):
            transition(Probing(0), weak_subject, True)

    # ─────────────────────────────────────────────────────────────────────
    # pending_question / to_result
    # ─────────────────────────────────────────────────────────────────────

    def test_pending_question_when_probing_then_describes_tier(self, maths):
        question = pending_question(Probing(0), maths)
        assert question.subject_name == "Mathematics"
        assert question.tier_name == "O"
        assert question.required_exam_marks == 96
        assert question.out_of_fifty is None

    def test_pending_question_when_two_credit_subject_then_includes_out_of_fifty(self):
        subject = Subject("Lab", 40, 2)
        question = pending_question(Probing(0), subject)
        assert question.required_exam_marks == 100
        assert question.out_of_fifty == 50.0

    def test_pending_question_when_fractional_marks_then_never_undershoots_tier(self):
        subject = Subject("Mechanics", 42.3, 4)
        question = pending_question(Probing(0), subject)

        assert question.required_exam_marks == 96
        assert subject.internal_marks + question.required_exam_marks / 2 >= 90

    def test_pending_question_when_terminal_then_none(self, maths):
        assert pending_question(Exhausted(), maths) is None

    def test_to_result_when_exhausted_then_at_risk_fallback(self, weak_subject):
        result = to_result(Exhausted(), weak_subject)
        assert result.committed_tier == "F"
        assert result.grade_point == 0
        assert result.required_exam_marks == -1
        assert result.at_risk is True
        assert result.risk_reason == AT_RISK_REASON
        assert result.credit_weight == 3

    def test_to_result_when_probing_then_raises(self, maths):
        with pytest.raises(InvalidTransition):
            to_result(Probing(0), maths)


class TestDescentEngine:

    def test_assess_when_confident_at_a_plus_then_commits_a_plus(self, maths, scripted_oracle):
        oracle = scripted_oracle({"O": False, "A+": True})
        result = DescentEngine(oracle).assess(maths)

        assert (result.committed_tier, result.grade_point, result.required_exam_marks) == ("A+", 9, 76)
        assert result.at_risk is False
        assert oracle.calls == [("Mathematics", "O", 96), ("Mathematics", "A+", 76)]

    def test_assess_when_never_confident_then_at_risk(self, weak_subject, scripted_oracle):
        oracle = scripted_oracle(default=False)
        result = DescentEngine(oracle).assess(weak_subject)

        assert result.committed_tier == "F"
        assert result.grade_point == 0
        assert result.at_risk is True
        assert result.required_exam_marks == -1
        # unreachable O, A+ and A are never asked about
        assert [c[1] for c in oracle.calls] == ["B+", "B", "C", "P"]

    def test_assess_when_descending_then_never_revisits_higher_tier(self, scripted_oracle):
        oracle = scripted_oracle(default=False)
        DescentEngine(oracle).assess(Subject("History", 30, 3))

        order = [t.name for t in passing_tiers()]
        indices = [order.index(c[1]) for c in oracle.calls]
        assert indices == sorted(indices)
        assert len(set(indices)) == len(indices)

    def test_assess_when_committed_then_marks_match_formula(self, scripted_oracle):
        subject = Subject("Economics", 33.5, 3)
        result = DescentEngine(scripted_oracle({"B": True})).assess(subject)

        tier = tier_by_name(result.committed_tier)
        assert result.required_exam_marks == round_marks(required_exam_marks(tier, subject))

    def test_assess_when_oracle_fails_then_retries_once(self, maths, scripted_oracle, failing_error):
        oracle = scripted_oracle({"O": failing_error, "A+": True})
        result = DescentEngine(oracle, retries=1).assess(maths)

        assert [c[1] for c in oracle.calls] == ["O", "O", "A+"]
        assert result.committed_tier == "A+"

    def test_assess_when_oracle_always_fails_then_still_one_at_risk_result(self, maths, failing_error):
        def broken(*args):
            raise failing_error

        result = DescentEngine(CallbackOracle(broken), retries=0).assess(maths)
        assert result.at_risk is True
        assert result.subject_name == "Mathematics"

    def test_assess_when_oracle_returns_non_bool_then_treated_as_failure(self, maths):
        oracle = CallbackOracle(lambda *args: "yes")
        result = DescentEngine(oracle, retries=0).assess(maths)
        assert result.at_risk is True

    def test_assess_when_custom_oracle_returns_non_bool_then_treated_as_failure(self, maths):
        class WordOracle(ConfidenceOracle):
            def __init__(self):
                self.calls = []

            def assess(self, subject_name, tier_name, required_exam_marks, context=None):
                self.calls.append(tier_name)
                return "no"

        oracle = WordOracle()
        result = DescentEngine(oracle, retries=1).assess(maths)

        assert result.committed_tier == "F"
        assert result.at_risk is True
        # each tier asked twice: first attempt plus one retry
        assert oracle.calls[:2] == ["O", "O"]

    def test_assess_when_fractional_marks_then_asks_ceiling_but_commits_half_up(self, scripted_oracle):
        subject = Subject("Mechanics", 42.3, 4)
        oracle = scripted_oracle({"O": True})
        result = DescentEngine(oracle).assess(subject)

        # O needs 95.4 exam marks
        assert oracle.calls == [("Mechanics", "O", 96)]
        assert result.required_exam_marks == 95

    def test_assess_when_auto_commit_secured_then_no_question_for_secured_tier(self, scripted_oracle):
        subject = Subject("Chemistry", 45, 4)
        oracle = scripted_oracle(default=False)
        result = DescentEngine(oracle, auto_commit_secured=True).assess(subject)

        assert result.committed_tier == "P"
        assert result.required_exam_marks == -10
        assert "P" not in [c[1] for c in oracle.calls]

    def test_init_when_negative_retries_then_raises_error(self, scripted_oracle):
        with pytest.raises(ValueError):
            DescentEngine(scripted_oracle(), retries=-1)

    def test_assess_all_when_many_subjects_then_one_result_each_in_order(self, scripted_oracle):
        subjects = [Subject(f"S{i}", 20 + i * 5, 3) for i in range(6)]
        engine = DescentEngine(CallbackOracle(lambda name, tier, required: required <= 70))

        serial = engine.assess_all(subjects)
        parallel = engine.assess_all(subjects, max_workers=3)

        assert [r.subject_name for r in serial] == [s.name for s in subjects]
        assert parallel == serial

    def test_assess_all_when_one_oracle_failure_then_other_subjects_unaffected(self, scripted_oracle):
        def oracle(name, tier, required):
            if name == "Bad":
                raise OracleError("malformed")
            return True

        results = DescentEngine(CallbackOracle(oracle)).assess_all(
            [Subject("Good", 42, 4), Subject("Bad", 42, 4)]
        )
        assert [r.committed_tier for r in results] == ["O", "F"]
