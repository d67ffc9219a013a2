"""Evaluation orchestration."""

from cadre_eval.experiments.runner import (
    DEFAULT_BENCHMARK_VERSION,
    DEFAULT_RUNS_PER_QUESTION,
    MAX_RUNS_PER_QUESTION,
    EvaluationConfig,
    EvaluationProgress,
    EvaluationResult,
    EvaluationRunner,
    JudgeProtocol,
    ProgressCallback,
)

__all__ = [
    "DEFAULT_BENCHMARK_VERSION",
    "DEFAULT_RUNS_PER_QUESTION",
    "MAX_RUNS_PER_QUESTION",
    "EvaluationConfig",
    "EvaluationProgress",
    "EvaluationResult",
    "EvaluationRunner",
    "JudgeProtocol",
    "ProgressCallback",
]
