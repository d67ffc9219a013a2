"""Mock judge for runs without API calls.

Returns deterministic judgments so the pipeline can complete offline
(``cadre-eval run --mock``) and in tests.
"""

from __future__ import annotations

from typing import Any

from cadre_eval.evaluation.judge import CriterionScore, Judgment
from cadre_eval.questions.models import Rubric


class MockJudge:
    """Drop-in replacement for LLMJudge that never calls a model.

    The mock judge scores with simple heuristics, as a fraction of the
    rubric maximum:
    - Empty responses get 0
    - Responses containing "mock" get half marks
    - All other responses get full marks

    When ``scores`` is given, those fractions are returned in rotation
    instead, which lets tests script exact outcomes.

    Example:
        ```python
        judge = MockJudge()
        judgment = await judge.grade("Q?", "An answer", rubric)
        print(judgment.score == rubric.max_score)  # True
        ```
    """

    def __init__(self, model: str = "mock-judge", scores: list[float] | None = None) -> None:
        """Initialize the mock judge.

        Args:
            model: The judge model name to report
            scores: Fractions of the rubric maximum (0.0-1.0) to hand out in order
        """
        self.model = model
        self.scores = list(scores or [])
        self._call_count = 0

    def _fraction_for(self, response: str) -> tuple[float, str]:
        if self.scores:
            fraction = self.scores[self._call_count % len(self.scores)]
            return fraction, "Mock judgment: scripted score"

        text = response.lower().strip()
        if not text:
            return 0.0, "Mock judgment: Empty response"
        if "mock" in text:
            return 0.5, "Mock judgment: Mock response detected, partial credit"
        return 1.0, "Mock judgment: Response provided, assuming correct for testing"

    async def grade(
        self,
        question: str,  # noqa: ARG002 - API compat
        response: str,
        rubric: Rubric,
        reference_answer: str | None = None,  # noqa: ARG002 - API compat
    ) -> Judgment:
        """Return a deterministic judgment for ``response``."""
        fraction, reasoning = self._fraction_for(response)
        self._call_count += 1

        criteria = tuple(
            CriterionScore(
                criterion=c.name,
                met=fraction >= 0.5,
                score=c.weight * rubric.max_score * fraction,
            )
            for c in rubric.criteria
        )
        return Judgment(
            score=rubric.max_score * fraction,
            max_score=rubric.max_score,
            reasoning=reasoning,
            criteria_scores=criteria,
        )

    def get_stats(self) -> dict[str, Any]:
        """Get judge statistics (parse failures are always 0)."""
        return {"model": self.model, "total_calls": self._call_count, "parse_failures": 0}

    @property
    def call_count(self) -> int:
        """Number of mock judgments made."""
        return self._call_count
