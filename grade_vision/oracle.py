"""
Confidence oracles.

The descent engine only needs one yes/no answer per reachable tier: can the
student plausibly score the required final-exam marks? Anything that can
answer that (a person clicking a button, a scripted list of answers, a
generative model) implements ConfidenceOracle.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import google.generativeai as genai

from grade_vision.ladder import GRADE_LADDER

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


class OracleError(RuntimeError):
    """The oracle could not give a usable answer."""


@dataclass(frozen=True)
class OracleContext:
    subject_name: str
    internal_marks: float
    credit_weight: float
    target_total_marks: int


class ConfidenceOracle(ABC):

    @abstractmethod
    def assess(
        self,
        subject_name: str,
        tier_name: str,
        required_exam_marks: int,
        context: Optional[OracleContext] = None,
    ) -> bool:
        """Return True when the student is confident of the required marks."""


class CallbackOracle(ConfidenceOracle):
    """Wraps a plain callable, e.g. a prompt shown to the student."""

    def __init__(self, func: Callable[[str, str, int], Any]):
        self.func = func

    def assess(self, subject_name, tier_name, required_exam_marks, context=None):
        answer = self.func(subject_name, tier_name, required_exam_marks)
        if not isinstance(answer, bool):
            raise OracleError(f"Expected a boolean answer, got {answer!r}")
        return answer


# ------------------------
# Gemini-backed oracle
# ------------------------
SYSTEM_PROMPT = """You are assisting a student in evaluating their academic performance.
Internal (CIE) marks are out of 50. The final exam (SEE) is out of 100 and counts
at half weight, so total = CIE + SEE / 2 (out of 100).

Grade points:
{grade_table}

Respond ONLY with a JSON object of this shape:
{{
  "gradePoint": <grade point of the target grade if confident, otherwise 0>,
  "confident": <true|false>,
  "requiredSeeMarks": <SEE marks required for the target grade>
}}"""

USER_PROMPT = """The student has obtained {internal_marks} CIE marks in {subject_name},
which has a credit value of {credit_weight}. To reach a total of {target} marks
(grade {tier_name}) they need {required} marks in the SEE.

Judge whether scoring {required} out of 100 in the SEE is a realistic expectation
for this student."""


def _grade_table() -> str:
    return "\n".join(f"{t.name}: {t.grade_point}" for t in GRADE_LADDER)


def _grade_point(tier_name: str) -> Optional[int]:
    for tier in GRADE_LADDER:
        if tier.name == tier_name:
            return tier.grade_point
    return None


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Pull the first JSON object out of a model reply, tolerating markdown
    fences and chatter around it.
    """
    text = text.strip()
    fenced = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
    if fenced:
        text = fenced.group(1).strip()

    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace == -1 or last_brace < first_brace:
        raise OracleError(f"No JSON object in model reply: {text[:200]!r}")

    try:
        parsed = json.loads(text[first_brace:last_brace + 1])
    except json.JSONDecodeError as e:
        raise OracleError(f"Model reply is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise OracleError("Model reply is not a JSON object.")
    return parsed


class GeminiConfidenceOracle(ConfidenceOracle):
    """
    Asks a Gemini model whether the required marks are plausible.

    Only the "confident" flag of the reply is used. The model is also asked
    for a grade point and a required-marks figure; the engine's own
    arithmetic is authoritative, so disagreement is merely logged.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = DEFAULT_MODEL,
        temperature: float = 0.1,
        model: Any = None,
    ):
        if model is None:
            if not api_key:
                raise ValueError("A Gemini API key is required for AI assessment.")
            genai.configure(api_key=api_key)
            model = genai.GenerativeModel(
                model_name,
                system_instruction=SYSTEM_PROMPT.format(grade_table=_grade_table()),
            )
        self.model = model
        self.temperature = temperature

    def build_prompt(self, subject_name, tier_name, required_exam_marks, context):
        if context is None:
            context = OracleContext(subject_name, float("nan"), float("nan"), 0)
        return USER_PROMPT.format(
            internal_marks=f"{context.internal_marks:g}",
            subject_name=subject_name,
            credit_weight=f"{context.credit_weight:g}",
            target=context.target_total_marks,
            tier_name=tier_name,
            required=required_exam_marks,
        )

    def assess(self, subject_name, tier_name, required_exam_marks, context=None):
        prompt = self.build_prompt(subject_name, tier_name, required_exam_marks, context)
        try:
            response = self.model.generate_content(
                prompt,
                generation_config=genai.types.GenerationConfig(
                    temperature=self.temperature,
                    response_mime_type="application/json",
                ),
            )
            text = response.text
        except Exception as e:
            raise OracleError(f"Gemini request failed for {subject_name}/{tier_name}: {e}") from e

        reply = extract_json_object(text)
        confident = reply.get("confident")
        if not isinstance(confident, bool):
            raise OracleError(f"Reply has no boolean 'confident' field: {reply!r}")

        echoed = reply.get("requiredSeeMarks")
        if echoed is not None and echoed != required_exam_marks:
            logger.debug(
                "Model echoed %s required marks for %s/%s, using %s",
                echoed, subject_name, tier_name, required_exam_marks,
            )

        expected_point = _grade_point(tier_name) if confident else 0
        echoed_point = reply.get("gradePoint")
        if echoed_point is not None and echoed_point != expected_point:
            logger.debug(
                "Model echoed grade point %s for %s/%s, expected %s",
                echoed_point, subject_name, tier_name, expected_point,
            )
        return confident
