"""
Grade Vision: estimate SGPA from internal marks by asking, grade by grade,
whether the student is confident of the final-exam marks each grade needs.
"""

from .aggregate import aggregate, edit_grade, overall_cgpa
from .descent import DescentEngine
from .ladder import GRADE_LADDER, GradeTier, required_exam_marks
from .models import AggregateResult, Subject, SubjectResult
from .oracle import CallbackOracle, ConfidenceOracle, GeminiConfidenceOracle, OracleError

__all__ = [
    "AggregateResult",
    "CallbackOracle",
    "ConfidenceOracle",
    "DescentEngine",
    "GRADE_LADDER",
    "GeminiConfidenceOracle",
    "GradeTier",
    "OracleError",
    "Subject",
    "SubjectResult",
    "aggregate",
    "edit_grade",
    "overall_cgpa",
    "required_exam_marks",
]
