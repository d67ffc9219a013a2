"""Question and rubric data structures.

Questions are immutable inputs to an evaluation run. Each question carries
two phrasings (explicit and implicit) and one grading rubric per phrasing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Rubric criterion weights should add up to 1.0 within this tolerance
RUBRIC_WEIGHT_TOLERANCE = 0.01


class Variant(Enum):
    """Phrasing of a question.

    Iteration order is the evaluation order: explicit first, then implicit.
    """

    EXPLICIT = "explicit"
    IMPLICIT = "implicit"


@dataclass(frozen=True, slots=True)
class RubricCriterion:
    """One named grading criterion.

    Attributes:
        name: Short description of what the response must contain
        weight: Share of the rubric max score this criterion is worth (0-1)
        required: Whether a response missing this criterion should fail
    """

    name: str
    weight: float
    required: bool = False

    def __post_init__(self) -> None:
        if not 0.0 <= self.weight <= 1.0:
            raise ValueError(f"criterion weight must be between 0 and 1, got {self.weight}")

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "weight": self.weight, "required": self.required}


@dataclass(frozen=True, slots=True)
class Rubric:
    """Grading rubric for one question variant.

    Attributes:
        criteria: Ordered criteria the judge evaluates
        max_score: Maximum attainable score (typically 100)
    """

    criteria: tuple[RubricCriterion, ...]
    max_score: float = 100.0

    def __post_init__(self) -> None:
        if self.max_score <= 0:
            raise ValueError(f"max_score must be positive, got {self.max_score}")

    @property
    def total_weight(self) -> float:
        """Sum of all criterion weights."""
        return sum(c.weight for c in self.criteria)

    def has_valid_weights(self, tolerance: float = RUBRIC_WEIGHT_TOLERANCE) -> bool:
        """Check that criterion weights sum to 1.0 within tolerance."""
        return abs(self.total_weight - 1.0) <= tolerance

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_score": self.max_score,
            "criteria": [c.to_dict() for c in self.criteria],
        }


@dataclass(frozen=True, slots=True)
class Question:
    """A benchmark question with both variants and their rubrics.

    Attributes:
        id: Stable string identifier (e.g. "q_001_trinity")
        pillar_id: Subject pillar (1-4)
        truth_hierarchy: Authoritativeness class (1-4)
        weight: Importance weight (not applied during aggregation)
        explicit_text: Question phrased with explicit framing
        implicit_text: Same question without the framing
        rubrics: One rubric per variant
        reference_answer: Optional model answer shown to the judge
        source_citations: Optional supporting citations
    """

    id: str
    pillar_id: int
    truth_hierarchy: int
    explicit_text: str
    implicit_text: str
    rubrics: dict[Variant, Rubric]
    weight: float = 1.0
    reference_answer: str | None = None
    source_citations: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not 1 <= self.pillar_id <= 4:
            raise ValueError(f"pillar_id must be between 1 and 4, got {self.pillar_id}")
        if not 1 <= self.truth_hierarchy <= 4:
            raise ValueError(
                f"truth_hierarchy must be between 1 and 4, got {self.truth_hierarchy}"
            )
        if self.weight < 0:
            raise ValueError(f"weight must be non-negative, got {self.weight}")
        missing = [v.value for v in Variant if v not in self.rubrics]
        if missing:
            raise ValueError(f"question {self.id} is missing rubrics for: {', '.join(missing)}")

    def text_for(self, variant: Variant) -> str:
        """Question text for the given variant."""
        if variant is Variant.EXPLICIT:
            return self.explicit_text
        return self.implicit_text

    def rubric_for(self, variant: Variant) -> Rubric:
        """Rubric for the given variant."""
        return self.rubrics[variant]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pillar_id": self.pillar_id,
            "truth_hierarchy": self.truth_hierarchy,
            "weight": self.weight,
            "explicit_text": self.explicit_text,
            "implicit_text": self.implicit_text,
            "reference_answer": self.reference_answer,
            "source_citations": list(self.source_citations),
            "rubrics": {v.value: r.to_dict() for v, r in self.rubrics.items()},
        }
