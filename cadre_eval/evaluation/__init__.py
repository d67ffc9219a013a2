"""Evaluation module for the CADRE engine.

This module provides evaluation components including:
- LLMJudge for rubric-based grading
- MockJudge for runs without API calls
- Statistical functions for confidence, consistency and significance
"""

from cadre_eval.evaluation.judge import (
    DEFAULT_JUDGE_MODEL,
    JUDGE_SYSTEM_MESSAGE,
    CriterionScore,
    Judgment,
    LLMJudge,
    build_judge_prompt,
    parse_judgment,
)
from cadre_eval.evaluation.mock_judge import MockJudge
from cadre_eval.evaluation.statistics import (
    ConfidenceInterval,
    DescriptiveStats,
    StatisticalAnalyzer,
    WelchTestResult,
    average_consistency_score,
    bootstrap_ci,
    consistency_score,
    descriptive_stats,
    welch_t_test,
)

__all__ = [
    # Judge module
    "CriterionScore",
    "DEFAULT_JUDGE_MODEL",
    "JUDGE_SYSTEM_MESSAGE",
    "Judgment",
    "LLMJudge",
    "MockJudge",
    "build_judge_prompt",
    "parse_judgment",
    # Statistics module
    "ConfidenceInterval",
    "DescriptiveStats",
    "StatisticalAnalyzer",
    "WelchTestResult",
    "average_consistency_score",
    "bootstrap_ci",
    "consistency_score",
    "descriptive_stats",
    "welch_t_test",
]
