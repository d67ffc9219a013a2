"""Pytest configuration and shared fixtures for cadre-eval tests."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

# Ensure cadre_eval is importable without installation
_root = Path(__file__).parent.parent
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))

from cadre_eval.questions.models import Question, Rubric, RubricCriterion, Variant  # noqa: E402


def make_rubric(weights: tuple[float, ...] = (0.6, 0.4), max_score: float = 100.0) -> Rubric:
    """Rubric with one criterion per weight; the first is required."""
    return Rubric(
        criteria=tuple(
            RubricCriterion(name=f"criterion {i + 1}", weight=w, required=i == 0)
            for i, w in enumerate(weights)
        ),
        max_score=max_score,
    )


def make_question(
    question_id: str = "q_001",
    pillar_id: int = 1,
    max_score: float = 100.0,
    weights: tuple[float, ...] = (0.6, 0.4),
    reference_answer: str | None = "Reference answer.",
) -> Question:
    """Question with identical-shaped explicit and implicit rubrics."""
    return Question(
        id=question_id,
        pillar_id=pillar_id,
        truth_hierarchy=1,
        explicit_text=f"Explicit text of {question_id}?",
        implicit_text=f"Implicit text of {question_id}?",
        rubrics={
            Variant.EXPLICIT: make_rubric(weights, max_score),
            Variant.IMPLICIT: make_rubric(weights, max_score),
        },
        reference_answer=reference_answer,
    )


def question_data(question_id: str = "q_001", pillar_id: int = 1) -> dict[str, Any]:
    """Raw YAML mapping for one valid question."""
    rubric = {
        "max_score": 100,
        "criteria": [
            {"name": "States the doctrine", "weight": 0.6, "required": True},
            {"name": "Cites a source", "weight": 0.4},
        ],
    }
    return {
        "id": question_id,
        "pillar_id": pillar_id,
        "truth_hierarchy": 1,
        "weight": 1.0,
        "explicit_text": f"According to Catholic teaching, what is {question_id}?",
        "implicit_text": f"What is {question_id}?",
        "reference_answer": "A reference answer.",
        "source_citations": ["CCC 253"],
        "rubrics": {"explicit": rubric, "implicit": rubric},
    }


@pytest.fixture
def questions() -> list[Question]:
    """Three questions across two pillars."""
    return [
        make_question("q_001", pillar_id=1),
        make_question("q_002", pillar_id=1),
        make_question("q_003", pillar_id=2, max_score=50.0),
    ]


@pytest.fixture
def write_questions(tmp_path: Path) -> Callable[[list[dict[str, Any]]], Path]:
    """Write raw question mappings to a YAML file and return its path."""

    def _write(items: list[dict[str, Any]], name: str = "questions.yaml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump({"questions": items}), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def question_factory() -> Callable[..., Question]:
    """Factory for Question objects (see make_question)."""
    return make_question


@pytest.fixture
def question_data_factory() -> Callable[..., dict[str, Any]]:
    """Factory for raw question mappings (see question_data)."""
    return question_data
