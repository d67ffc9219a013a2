"""Unit tests for the rubric judge.

Tests cover:
- Grading prompt construction
- JSON extraction from fenced and bare replies
- Regex score fallback and its ordering
- LLMJudge client call settings and error propagation
- MockJudge heuristics
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from cadre_eval.errors import GenerationError
from cadre_eval.evaluation.judge import (
    DEFAULT_JUDGE_MODEL,
    JUDGE_SYSTEM_MESSAGE,
    Judgment,
    LLMJudge,
    build_judge_prompt,
    extract_score_from_text,
    parse_judgment,
)
from cadre_eval.evaluation.mock_judge import MockJudge
from cadre_eval.questions.models import Rubric, RubricCriterion


@pytest.fixture
def rubric() -> Rubric:
    return Rubric(
        criteria=(
            RubricCriterion("Affirms one God in three Persons", 0.6, required=True),
            RubricCriterion("Cites the Catechism", 0.4),
        ),
        max_score=100.0,
    )


def judge_reply(final_score: float, reasoning: str = "Accurate and complete.") -> str:
    return json.dumps(
        {
            "criteria_evaluations": [
                {
                    "criterion": "Affirms one God in three Persons",
                    "met": True,
                    "score": 60,
                    "feedback": "Clear.",
                },
                {"criterion": "Cites the Catechism", "met": False, "score": 0, "feedback": "None."},
            ],
            "overall_reasoning": reasoning,
            "final_score": final_score,
        }
    )


class TestBuildJudgePrompt:
    """Tests for build_judge_prompt()."""

    def test_includes_rubric(self, rubric: Rubric) -> None:
        """Criteria are listed with weight and required flag."""
        prompt = build_judge_prompt("What is the Trinity?", "One God.", rubric)

        assert "## Question\nWhat is the Trinity?" in prompt
        assert "## Model Response\nOne God." in prompt
        assert "Maximum Score: 100" in prompt
        assert "- Affirms one God in three Persons (weight: 0.6, required: true)" in prompt
        assert "- Cites the Catechism (weight: 0.4, required: false)" in prompt
        assert '"final_score": numeric score out of 100' in prompt

    def test_reference_answer_section(self, rubric: Rubric) -> None:
        """The reference section appears only when a reference is given."""
        with_ref = build_judge_prompt("Q", "R", rubric, reference_answer="CCC 253")
        without_ref = build_judge_prompt("Q", "R", rubric)

        assert "## Reference Answer\nCCC 253" in with_ref
        assert "## Reference Answer" not in without_ref


class TestParseJudgment:
    """Tests for parse_judgment()."""

    def test_json_code_block(self, rubric: Rubric) -> None:
        """JSON inside a ```json fence is parsed."""
        text = f"Here you go:\n```json\n{judge_reply(85)}\n```\nThanks."

        judgment = parse_judgment(text, rubric)

        assert judgment.score == 85.0
        assert judgment.max_score == 100.0
        assert judgment.reasoning == "Accurate and complete."
        assert len(judgment.criteria_scores) == 2
        assert judgment.criteria_scores[0].met is True
        assert judgment.criteria_scores[1].criterion == "Cites the Catechism"
        assert not judgment.parse_failed

    def test_bare_code_block(self, rubric: Rubric) -> None:
        """JSON inside an unlabelled fence is parsed."""
        judgment = parse_judgment(f"```\n{judge_reply(70)}\n```", rubric)

        assert judgment.score == 70.0

    def test_raw_json(self, rubric: Rubric) -> None:
        """A bare JSON reply is parsed."""
        assert parse_judgment(judge_reply(42.5), rubric).score == 42.5

    def test_max_score_comes_from_rubric(self) -> None:
        """The rubric maximum is reported regardless of the reply."""
        rubric = Rubric(criteria=(RubricCriterion("c", 1.0),), max_score=50.0)

        assert parse_judgment(judge_reply(40), rubric).max_score == 50.0

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Final score: 88.5 after review", 88.5),
            ("final_score 77", 77.0),
            ("Score: 72 out of 100", 72.0),
            ("I would give this 64/100 overall", 64.0),
            ("The response receives 45 points.", 45.0),
        ],
    )
    def test_regex_fallback(self, rubric: Rubric, text: str, expected: float) -> None:
        """Scores are recovered from free text."""
        judgment = parse_judgment(text, rubric)

        assert judgment.score == expected
        assert judgment.parse_failed
        assert judgment.criteria_scores == ()
        assert judgment.reasoning.startswith("[JSON parsing failed] ")

    def test_fallback_pattern_order(self) -> None:
        """'final score' wins over a later 'N/M' ratio."""
        assert extract_score_from_text("Criterion 1: 30/60. Final score: 55") == 55.0

    def test_no_score_defaults_to_zero(self, rubric: Rubric) -> None:
        """Unparseable text without a number scores 0."""
        text = "I cannot grade this response. " * 20

        judgment = parse_judgment(text, rubric)

        assert judgment.score == 0.0
        assert judgment.parse_failed
        assert judgment.reasoning == f"[JSON parsing failed] {text[:300]}"

    def test_non_object_json_falls_back(self, rubric: Rubric) -> None:
        """A JSON array is not a judgment."""
        judgment = parse_judgment("[1, 2, 3]", rubric)

        assert judgment.parse_failed
        assert judgment.score == 0.0

    def test_missing_final_score_falls_back(self, rubric: Rubric) -> None:
        """A JSON object without a numeric final_score falls back to text."""
        judgment = parse_judgment('{"overall_reasoning": "fine", "final_score": "high"}', rubric)

        assert judgment.parse_failed

    def test_normalized_score(self) -> None:
        """Scores convert to percentages of the maximum."""
        assert Judgment(score=40.0, max_score=50.0, reasoning="").normalized_score == 80.0


class TestLLMJudge:
    """Tests for LLMJudge."""

    @pytest.mark.asyncio
    async def test_grade_calls_judge_model_deterministically(self, rubric: Rubric) -> None:
        """Grading uses temperature 0, 2000 tokens and the JSON-only system message."""
        client = AsyncMock()
        client.model = DEFAULT_JUDGE_MODEL
        client.generate = AsyncMock(return_value=judge_reply(90))
        judge = LLMJudge(client)

        judgment = await judge.grade("What is the Trinity?", "One God.", rubric, "CCC 253")

        assert judgment.score == 90.0
        kwargs = client.generate.await_args.kwargs
        assert kwargs["temperature"] == 0.0
        assert kwargs["max_tokens"] == 2000
        assert kwargs["system_message"] == JUDGE_SYSTEM_MESSAGE
        assert "CCC 253" in client.generate.await_args.args[0]
        assert judge.get_stats() == {
            "model": DEFAULT_JUDGE_MODEL,
            "total_calls": 1,
            "parse_failures": 0,
        }

    @pytest.mark.asyncio
    async def test_parse_failures_are_counted(self, rubric: Rubric) -> None:
        """Fallback judgments are tallied."""
        client = AsyncMock()
        client.generate = AsyncMock(return_value="Score: 60 out of 100")
        judge = LLMJudge(client)

        judgment = await judge.grade("Q", "R", rubric)

        assert judgment.score == 60.0
        assert judge.get_stats()["parse_failures"] == 1

    @pytest.mark.asyncio
    async def test_transport_failure_propagates(self, rubric: Rubric) -> None:
        """An unreachable judge is not a zero score."""
        client = AsyncMock()
        client.generate = AsyncMock(side_effect=GenerationError("OpenRouter", 3, "timeout"))
        judge = LLMJudge(client)

        with pytest.raises(GenerationError):
            await judge.grade("Q", "R", rubric)


class TestMockJudge:
    """Tests for MockJudge."""

    @pytest.mark.asyncio
    async def test_heuristics(self, rubric: Rubric) -> None:
        """Empty, mock and real responses score 0, half and full."""
        judge = MockJudge()

        empty = await judge.grade("Q", "   ", rubric)
        mock = await judge.grade("Q", "This is a mock response.", rubric)
        real = await judge.grade("Q", "God is one in three Persons.", rubric)

        assert (empty.score, mock.score, real.score) == (0.0, 50.0, 100.0)
        assert judge.call_count == 3

    @pytest.mark.asyncio
    async def test_scripted_scores(self) -> None:
        """Scripted fractions are scaled to the rubric maximum."""
        rubric = Rubric(criteria=(RubricCriterion("c", 1.0),), max_score=50.0)
        judge = MockJudge(scores=[0.8, 0.2])

        scores = [(await judge.grade("Q", "R", rubric)).score for _ in range(3)]

        assert scores == pytest.approx([40.0, 10.0, 40.0])
