"""
Confidence-descent state machine.

A subject starts at the highest passing tier and walks down. Unreachable
tiers (required exam marks outside 0..100) are skipped without asking. At a
reachable tier the oracle is asked once; "yes" commits the tier, "no" moves
one tier down. Running off the bottom of the ladder commits the fallback
tier and flags the subject as at risk.

The transitions below are pure. DescentEngine is the driver that feeds them
oracle answers; interactive callers (the Streamlit page) drive them
directly, one click at a time.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from grade_vision.ladder import (
    GRADE_LADDER,
    GradeTier,
    ceil_marks,
    fallback_tier,
    fifty_mark_equivalent,
    is_reachable,
    passing_tiers,
    required_exam_marks,
    round_marks,
)
from grade_vision.models import NOT_APPLICABLE, Subject, SubjectResult
from grade_vision.oracle import ConfidenceOracle, OracleContext, OracleError

logger = logging.getLogger(__name__)

AT_RISK_REASON = "Lacks confidence for any passing grade. This subject is at risk."


class InvalidTransition(RuntimeError):
    pass


@dataclass(frozen=True)
class Probing:
    tier_index: int


@dataclass(frozen=True)
class Committed:
    tier: GradeTier
    required_exam_marks: int


@dataclass(frozen=True)
class Exhausted:
    pass


DescentState = Union[Probing, Committed, Exhausted]


@dataclass(frozen=True)
class ConfidenceQuestion:
    subject_name: str
    tier_name: str
    required_exam_marks: int
    out_of_fifty: Optional[float] = None


# ------------------------
# Pure transitions
# ------------------------
def initial_state() -> Probing:
    return Probing(0)


def is_terminal(state: DescentState) -> bool:
    return isinstance(state, (Committed, Exhausted))


def settle(
    state: DescentState,
    subject: Subject,
    ladder: Tuple[GradeTier, ...] = GRADE_LADDER,
    auto_commit_secured: bool = False,
) -> DescentState:
    """
    Advance past every tier that cannot be asked about.

    Returns a Probing state whose tier is reachable, or a terminal state.
    A tier committed under auto_commit_secured keeps its negative formula
    value as required exam marks.
    """
    if is_terminal(state):
        return state

    tiers = passing_tiers(ladder)
    index = state.tier_index
    while index < len(tiers):
        tier = tiers[index]
        required = required_exam_marks(tier, subject)
        if is_reachable(required):
            return Probing(index)
        if required < 0 and auto_commit_secured:
            logger.debug("%s: tier %s already secured on internal marks", subject.name, tier.name)
            return Committed(tier, round_marks(required))
        logger.debug("%s: skipping tier %s (needs %s)", subject.name, tier.name, required)
        index += 1
    return Exhausted()


def transition(
    state: DescentState,
    subject: Subject,
    confident: bool,
    ladder: Tuple[GradeTier, ...] = GRADE_LADDER,
    auto_commit_secured: bool = False,
) -> DescentState:
    if is_terminal(state):
        raise InvalidTransition(f"{subject.name}: descent already finished ({state!r})")

    tiers = passing_tiers(ladder)
    if state.tier_index >= len(tiers):
        raise InvalidTransition(f"{subject.name}: tier index {state.tier_index} out of range")

    tier = tiers[state.tier_index]
    required = required_exam_marks(tier, subject)
    if not is_reachable(required):
        raise InvalidTransition(f"{subject.name}: tier {tier.name} was never settled")

    if confident:
        return Committed(tier, round_marks(required))
    return settle(Probing(state.tier_index + 1), subject, ladder, auto_commit_secured)


def pending_question(
    state: DescentState,
    subject: Subject,
    ladder: Tuple[GradeTier, ...] = GRADE_LADDER,
) -> Optional[ConfidenceQuestion]:
    if is_terminal(state):
        return None
    tier = passing_tiers(ladder)[state.tier_index]
    required = required_exam_marks(tier, subject)
    return ConfidenceQuestion(
        subject_name=subject.name,
        tier_name=tier.name,
        required_exam_marks=ceil_marks(required),
        out_of_fifty=fifty_mark_equivalent(required, subject.credit_weight),
    )


def to_result(
    state: DescentState,
    subject: Subject,
    ladder: Tuple[GradeTier, ...] = GRADE_LADDER,
) -> SubjectResult:
    if isinstance(state, Committed):
        return SubjectResult(
            subject_name=subject.name,
            committed_tier=state.tier.name,
            grade_point=state.tier.grade_point,
            required_exam_marks=state.required_exam_marks,
            credit_weight=subject.credit_weight,
            internal_marks=subject.internal_marks,
        )
    if isinstance(state, Exhausted):
        return SubjectResult(
            subject_name=subject.name,
            committed_tier=fallback_tier(ladder).name,
            grade_point=0,
            required_exam_marks=NOT_APPLICABLE,
            credit_weight=subject.credit_weight,
            internal_marks=subject.internal_marks,
            at_risk=True,
            risk_reason=AT_RISK_REASON,
        )
    raise InvalidTransition(f"{subject.name}: descent not finished ({state!r})")


# ------------------------
# Driver
# ------------------------
class DescentEngine:
    """
    Runs the descent for whole subjects against a ConfidenceOracle.

    A failing oracle call is retried ``retries`` more times and then counted
    as "not confident", so every subject always ends in one result.
    """

    def __init__(
        self,
        oracle: ConfidenceOracle,
        *,
        retries: int = 1,
        ladder: Tuple[GradeTier, ...] = GRADE_LADDER,
        auto_commit_secured: bool = False,
    ):
        if retries < 0:
            raise ValueError("retries must be >= 0")
        self.oracle = oracle
        self.retries = retries
        self.ladder = ladder
        self.auto_commit_secured = auto_commit_secured

    def _ask(self, subject: Subject, tier: GradeTier, required: int) -> bool:
        context = OracleContext(
            subject_name=subject.name,
            internal_marks=subject.internal_marks,
            credit_weight=subject.credit_weight,
            target_total_marks=tier.min_total_marks,
        )
        for attempt in range(self.retries + 1):
            try:
                answer = self.oracle.assess(subject.name, tier.name, required, context)
                if not isinstance(answer, bool):
                    raise OracleError(f"Expected a boolean answer, got {answer!r}")
                return answer
            except Exception as e:
                logger.warning(
                    "Confidence check failed for %s at %s (attempt %d/%d): %s",
                    subject.name, tier.name, attempt + 1, self.retries + 1, e,
                )
        logger.warning("Treating %s at %s as not confident", subject.name, tier.name)
        return False

    def assess(self, subject: Subject) -> SubjectResult:
        tiers = passing_tiers(self.ladder)
        state = settle(initial_state(), subject, self.ladder, self.auto_commit_secured)
        while not is_terminal(state):
            tier = tiers[state.tier_index]
            required = ceil_marks(required_exam_marks(tier, subject))
            confident = self._ask(subject, tier, required)
            state = transition(state, subject, confident, self.ladder, self.auto_commit_secured)

        result = to_result(state, subject, self.ladder)
        if result.at_risk:
            logger.info("%s: no passing grade confirmed, marked at risk", subject.name)
        else:
            logger.info("%s: committed %s", subject.name, result.committed_tier)
        return result

    def assess_all(self, subjects: Iterable[Subject], max_workers: int = 1) -> List[SubjectResult]:
        subjects = list(subjects)
        if max_workers <= 1 or len(subjects) <= 1:
            return [self.assess(s) for s in subjects]

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(self.assess, subjects))
