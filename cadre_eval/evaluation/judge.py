"""LLM-as-judge grading against question rubrics.

The judge sends one grading prompt per response to a fixed judge model and
parses a structured score out of the reply. Parsing is forgiving:
- A JSON object is read from a ```json block, a bare ``` block or the raw text.
- Failing that, a numeric score is pulled out of the text with regexes.
- Failing that, the score is 0.

Parsing never raises. Transport failures (an exhausted GenerationError from
the client) do propagate, since a missing grade is not a zero grade.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from cadre_eval.clients.base import GenerationClient
from cadre_eval.questions.models import Rubric

logger = logging.getLogger(__name__)

DEFAULT_JUDGE_MODEL = "anthropic/claude-opus-4.1"
JUDGE_TEMPERATURE = 0.0
JUDGE_MAX_TOKENS = 2000
FALLBACK_REASONING_CHARS = 300

JUDGE_SYSTEM_MESSAGE = (
    "You are a precise grading assistant. You MUST respond with valid JSON only, "
    "following the exact schema provided. Do not include any text outside the JSON structure."
)

# Tried in order on the raw text when no usable JSON object is found
SCORE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"final[_\s]score[:\s]+(\d+(?:\.\d+)?)", re.IGNORECASE),
    re.compile(r"score[:\s]+(\d+(?:\.\d+)?)\s*(?:out of|/)", re.IGNORECASE),
    re.compile(r"(\d+(?:\.\d+)?)\s*(?:out of|/)\s*\d+", re.IGNORECASE),
    re.compile(r"receives?\s+(\d+(?:\.\d+)?)\s+points", re.IGNORECASE),
)

_FENCED_JSON = re.compile(r"```json(.*?)(?:```|\Z)", re.DOTALL)
_FENCED_ANY = re.compile(r"```(.*?)(?:```|\Z)", re.DOTALL)

JUDGE_PROMPT_TEMPLATE = """CRITICAL: You MUST respond with valid JSON only. Do not include any text before or after the JSON structure.

You are an expert Catholic theologian tasked with evaluating AI model responses for accuracy and alignment with Catholic teaching.

## Required Output Format

Respond ONLY with this exact JSON structure (no additional text):

```json
{{
  "criteria_evaluations": [
    {{
      "criterion": "criterion name",
      "met": true/false,
      "score": numeric score,
      "feedback": "brief explanation"
    }}
  ],
  "overall_reasoning": "Your overall assessment of the response's theological accuracy and completeness",
  "final_score": numeric score out of {max_score}
}}
```

## Question
{question}

## Model Response
{response}
{reference_section}
## Grading Rubric
Maximum Score: {max_score}

Criteria:
{criteria}

## Evaluation Instructions
Evaluate the model's response against each criterion:
1. Assess whether it meets the requirement
2. Assign a score based on the criterion's weight (multiply weight by {max_score} for score out of {max_score})
3. Note if any required criteria are missing (these must be present for a passing grade)

Be rigorous in assessing theological precision. Heterodox or heretical statements should result in significant score deductions. Missing required dogmatic elements should fail the response entirely.

REMINDER: Output ONLY the JSON structure above. No additional commentary."""


def _format_number(value: float) -> str:
    return f"{value:g}"


@dataclass(frozen=True, slots=True)
class CriterionScore:
    """The judge's verdict on one rubric criterion."""

    criterion: str
    met: bool
    score: float
    feedback: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "criterion": self.criterion,
            "met": self.met,
            "score": self.score,
            "feedback": self.feedback,
        }


@dataclass(frozen=True, slots=True)
class Judgment:
    """Result of grading one response.

    Attributes:
        score: Awarded score on the rubric's scale
        max_score: The rubric's maximum score
        reasoning: The judge's overall reasoning, or the annotated raw text
            when the reply could not be parsed
        criteria_scores: Per-criterion verdicts (empty on parse failure)
        parse_failed: True when the score came from the text fallback
    """

    score: float
    max_score: float
    reasoning: str
    criteria_scores: tuple[CriterionScore, ...] = field(default_factory=tuple)
    parse_failed: bool = False

    @property
    def normalized_score(self) -> float:
        """Score as a percentage of the rubric maximum."""
        return self.score / self.max_score * 100.0 if self.max_score else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serialize judgment to dictionary."""
        return {
            "score": self.score,
            "max_score": self.max_score,
            "reasoning": self.reasoning,
            "criteria_scores": [c.to_dict() for c in self.criteria_scores],
            "parse_failed": self.parse_failed,
        }


def build_judge_prompt(
    question: str,
    response: str,
    rubric: Rubric,
    reference_answer: str | None = None,
) -> str:
    """Render the grading prompt for one response.

    Args:
        question: The question text shown to the model
        response: The model's response
        rubric: Rubric for the question variant
        reference_answer: Optional reference answer

    Returns:
        The full prompt text
    """
    criteria = "\n".join(
        f"- {c.name} (weight: {_format_number(c.weight)}, required: {str(c.required).lower()})"
        for c in rubric.criteria
    )
    reference_section = (
        f"\n## Reference Answer\n{reference_answer}\n" if reference_answer else ""
    )
    return JUDGE_PROMPT_TEMPLATE.format(
        question=question,
        response=response,
        reference_section=reference_section,
        max_score=_format_number(rubric.max_score),
        criteria=criteria,
    )


def _extract_json_text(text: str) -> str:
    for pattern in (_FENCED_JSON, _FENCED_ANY):
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return text.strip()


def _as_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValueError(f"Expected a number, got {value!r}")
    return float(value)


def _parse_criteria(items: Any) -> tuple[CriterionScore, ...]:
    if not isinstance(items, list):
        return ()
    parsed = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            score = _as_float(item.get("score", 0))
        except ValueError:
            score = 0.0
        parsed.append(
            CriterionScore(
                criterion=str(item.get("criterion", "")),
                met=bool(item.get("met", False)),
                score=score,
                feedback=str(item.get("feedback", "")),
            )
        )
    return tuple(parsed)


def extract_score_from_text(text: str) -> float | None:
    """First score matched by SCORE_PATTERNS, or None."""
    for pattern in SCORE_PATTERNS:
        match = pattern.search(text)
        if match:
            return float(match.group(1))
    return None


def parse_judgment(text: str, rubric: Rubric) -> Judgment:
    """Parse a judge reply into a Judgment.

    Never raises: malformed replies fall back to regex score extraction,
    and to a score of 0 when no pattern matches.

    Args:
        text: Raw judge reply
        rubric: Rubric the reply grades against (supplies max_score)

    Returns:
        Parsed Judgment
    """
    try:
        data = json.loads(_extract_json_text(text))
        if not isinstance(data, dict):
            raise ValueError("Judge reply is not a JSON object")
        return Judgment(
            score=_as_float(data.get("final_score")),
            max_score=rubric.max_score,
            reasoning=str(data.get("overall_reasoning", "")),
            criteria_scores=_parse_criteria(data.get("criteria_evaluations")),
        )
    except ValueError as e:  # json.JSONDecodeError is a ValueError
        logger.warning(f"Failed to parse judge JSON, attempting text extraction: {e}")

    score = extract_score_from_text(text)
    if score is None:
        logger.warning("Could not extract score from judge reply, defaulting to 0.0")
        score = 0.0
    else:
        logger.info(f"Extracted score from judge text: {score}")

    return Judgment(
        score=score,
        max_score=rubric.max_score,
        reasoning=f"[JSON parsing failed] {text[:FALLBACK_REASONING_CHARS]}",
        criteria_scores=(),
        parse_failed=True,
    )


class LLMJudge:
    """Rubric-based grader backed by a judge model.

    Example:
        ```python
        judge = LLMJudge(OpenRouterClient(api_key, DEFAULT_JUDGE_MODEL))
        judgment = await judge.grade(question_text, response, rubric)
        print(judgment.score, judgment.max_score)
        ```

    Attributes:
        client: Generation client for the judge model
        temperature: Sampling temperature for grading calls
        max_tokens: Max tokens for the judge reply
    """

    def __init__(
        self,
        client: GenerationClient,
        temperature: float = JUDGE_TEMPERATURE,
        max_tokens: int = JUDGE_MAX_TOKENS,
    ) -> None:
        self.client = client
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._call_count = 0
        self._parse_failures = 0

    @property
    def model(self) -> str:
        return self.client.model

    async def grade(
        self,
        question: str,
        response: str,
        rubric: Rubric,
        reference_answer: str | None = None,
    ) -> Judgment:
        """Grade a model response against a rubric.

        Args:
            question: The question text the model answered
            response: The model's response
            rubric: Grading rubric for the question variant
            reference_answer: Optional reference answer for comparison

        Returns:
            Judgment with score, reasoning and per-criterion breakdown

        Raises:
            GenerationError: If the judge model could not be reached
        """
        prompt = build_judge_prompt(question, response, rubric, reference_answer)
        self._call_count += 1
        reply = await self.client.generate(
            prompt,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system_message=JUDGE_SYSTEM_MESSAGE,
        )
        judgment = parse_judgment(reply, rubric)
        if judgment.parse_failed:
            self._parse_failures += 1
        return judgment

    def get_stats(self) -> dict[str, Any]:
        """Get judge statistics.

        Returns:
            Dictionary with call and parse-failure counts
        """
        return {
            "model": self.model,
            "total_calls": self._call_count,
            "parse_failures": self._parse_failures,
        }
