"""Question model and loader."""

from cadre_eval.questions.loader import QuestionLoader, parse_question, validate_rubric_weights
from cadre_eval.questions.models import (
    RUBRIC_WEIGHT_TOLERANCE,
    Question,
    Rubric,
    RubricCriterion,
    Variant,
)

__all__ = [
    "Question",
    "QuestionLoader",
    "RUBRIC_WEIGHT_TOLERANCE",
    "Rubric",
    "RubricCriterion",
    "Variant",
    "parse_question",
    "validate_rubric_weights",
]
