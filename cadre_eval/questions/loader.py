"""YAML question loader with schema validation.

The question file has a single top-level ``questions`` list. Each entry uses
snake_case keys::

    questions:
      - id: q_001_trinity
        pillar_id: 1
        truth_hierarchy: 1
        weight: 1.0
        explicit_text: "..."
        implicit_text: "..."
        reference_answer: "..."       # optional
        source_citations: ["CCC 253"] # optional
        rubrics:
          explicit:
            max_score: 100
            criteria:
              - {name: "...", weight: 0.6, required: true}
              - {name: "...", weight: 0.4}
          implicit: {...}

Structural problems raise QuestionValidationError. Rubric weights that do
not sum to 1.0 only log a warning.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from cadre_eval.errors import QuestionValidationError
from cadre_eval.questions.models import Question, Rubric, RubricCriterion, Variant

logger = logging.getLogger(__name__)


def _require(data: dict[str, Any], key: str, where: str) -> Any:
    if key not in data or data[key] is None:
        raise QuestionValidationError(f"{where}: missing required field '{key}'")
    return data[key]


def _as_number(value: Any, key: str, where: str) -> float:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise QuestionValidationError(f"{where}: '{key}' must be a number, got {value!r}")
    return float(value)


def _as_int(value: Any, key: str, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise QuestionValidationError(f"{where}: '{key}' must be an integer, got {value!r}")
    return value


def _as_text(value: Any, key: str, where: str) -> str:
    if not isinstance(value, str):
        raise QuestionValidationError(f"{where}: '{key}' must be a string, got {value!r}")
    return value


def _parse_rubric(data: Any, where: str) -> Rubric:
    if not isinstance(data, dict):
        raise QuestionValidationError(f"{where}: rubric must be a mapping")

    raw_criteria = _require(data, "criteria", where)
    if not isinstance(raw_criteria, list):
        raise QuestionValidationError(f"{where}: 'criteria' must be a list")

    criteria: list[RubricCriterion] = []
    for idx, raw in enumerate(raw_criteria):
        c_where = f"{where}.criteria[{idx}]"
        if not isinstance(raw, dict):
            raise QuestionValidationError(f"{c_where}: criterion must be a mapping")
        required = raw.get("required", False)
        if not isinstance(required, bool):
            raise QuestionValidationError(f"{c_where}: 'required' must be a boolean")
        try:
            criteria.append(
                RubricCriterion(
                    name=_as_text(_require(raw, "name", c_where), "name", c_where),
                    weight=_as_number(_require(raw, "weight", c_where), "weight", c_where),
                    required=required,
                )
            )
        except ValueError as e:
            raise QuestionValidationError(f"{c_where}: {e}") from e

    max_score = _as_number(data.get("max_score", 100), "max_score", where)
    try:
        return Rubric(criteria=tuple(criteria), max_score=max_score)
    except ValueError as e:
        raise QuestionValidationError(f"{where}: {e}") from e


def parse_question(data: Any, index: int = 0) -> Question:
    """Build a Question from one raw YAML mapping.

    Args:
        data: The mapping for a single question
        index: Position in the file, used in error messages

    Returns:
        Validated Question

    Raises:
        QuestionValidationError: If a field is missing, mistyped or out of range
    """
    where = f"questions[{index}]"
    if not isinstance(data, dict):
        raise QuestionValidationError(f"{where}: question must be a mapping")

    question_id = _as_text(_require(data, "id", where), "id", where)
    where = f"{where} ({question_id})"

    raw_rubrics = _require(data, "rubrics", where)
    if not isinstance(raw_rubrics, dict):
        raise QuestionValidationError(f"{where}: 'rubrics' must be a mapping")
    rubrics = {
        variant: _parse_rubric(
            _require(raw_rubrics, variant.value, f"{where}.rubrics"),
            f"{where}.rubrics.{variant.value}",
        )
        for variant in Variant
    }

    reference = data.get("reference_answer")
    if reference is not None:
        reference = _as_text(reference, "reference_answer", where)

    citations = data.get("source_citations") or []
    if not isinstance(citations, list):
        raise QuestionValidationError(f"{where}: 'source_citations' must be a list")

    try:
        return Question(
            id=question_id,
            pillar_id=_as_int(_require(data, "pillar_id", where), "pillar_id", where),
            truth_hierarchy=_as_int(
                _require(data, "truth_hierarchy", where), "truth_hierarchy", where
            ),
            weight=_as_number(data.get("weight", 1.0), "weight", where),
            explicit_text=_as_text(_require(data, "explicit_text", where), "explicit_text", where),
            implicit_text=_as_text(_require(data, "implicit_text", where), "implicit_text", where),
            reference_answer=reference,
            source_citations=tuple(str(c) for c in citations),
            rubrics=rubrics,
        )
    except ValueError as e:
        raise QuestionValidationError(f"{where}: {e}") from e


def validate_rubric_weights(question: Question) -> bool:
    """Warn about rubrics whose criterion weights do not sum to 1.0.

    Args:
        question: Question whose explicit and implicit rubrics are checked

    Returns:
        True if every rubric is within tolerance, False otherwise
    """
    all_valid = True
    for variant in Variant:
        rubric = question.rubric_for(variant)
        if not rubric.has_valid_weights():
            logger.warning(
                f"{variant.value} rubric weights for question '{question.id}' "
                f"sum to {rubric.total_weight:.2f}, not 1.0"
            )
            all_valid = False
    return all_valid


class QuestionLoader:
    """Loads and validates question files.

    Example:
        ```python
        questions = QuestionLoader.load("data/questions-alpha.yaml")
        print(f"{len(questions)} questions, first: {questions[0].id}")
        ```
    """

    @staticmethod
    def load(file_path: str | Path) -> list[Question]:
        """Load questions from a YAML file.

        Args:
            file_path: Path to the questions file

        Returns:
            Questions in file order

        Raises:
            FileNotFoundError: If the file doesn't exist
            QuestionValidationError: If the content is malformed
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Question file not found: {path}")

        with path.open("r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise QuestionValidationError(f"Invalid YAML in {path}: {e}") from e

        questions = QuestionLoader.parse(data)
        logger.info(f"Loaded {len(questions)} questions from {path}")
        return questions

    @staticmethod
    def parse(data: Any) -> list[Question]:
        """Validate already-decoded question data.

        Args:
            data: Decoded document with a top-level ``questions`` list

        Returns:
            Questions in document order
        """
        if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
            raise QuestionValidationError("Question file must contain a 'questions' list")

        questions = [parse_question(raw, idx) for idx, raw in enumerate(data["questions"])]

        seen: set[str] = set()
        for question in questions:
            if question.id in seen:
                raise QuestionValidationError(f"Duplicate question id: {question.id}")
            seen.add(question.id)
            validate_rubric_weights(question)

        return questions
