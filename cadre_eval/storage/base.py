"""Persistence contract for evaluation runs.

This module defines the records the orchestrator writes and the
EvaluationStore protocol every storage backend satisfies. Persisted run and
aggregated-response rows are the authoritative state of a run: a resumed run
is rebuilt from them alone.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from cadre_eval.questions.models import Variant


def new_id() -> str:
    """Fresh record identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


def _serialize(data: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, datetime):
            out[key] = value.isoformat()
        elif isinstance(value, Enum):
            out[key] = value.value
        else:
            out[key] = value
    return out


class RunStatus(Enum):
    """Lifecycle states of an evaluation run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ModelRecord:
    """An evaluated model's identity."""

    id: str
    name: str
    version: str
    provider: str
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(slots=True)
class EvaluationRunRecord:
    """One execution of a model against a benchmark version.

    Mutated after every completed (question, variant) pair; terminal once
    ``status`` leaves RUNNING.

    Attributes:
        id: Run identifier
        model_id: Evaluated model's record id
        benchmark_version: Benchmark version tag (e.g. "alpha")
        runs_per_question: Trials per (question, variant) pair
        total_questions: Number of questions in the run
        status: Lifecycle state
        current_question: 1-based index of the last question worked on
        current_question_id: Id of the last question worked on
        current_variant: Variant of the last completed pair
        responses_completed: Completed (question, variant) pairs
        average_score: Running weighted average, 0-100
        estimated_time_remaining: Seconds, from the average pair duration
        started_at: Run start time (kept across resumes)
        completed_at: Completion time, once completed
    """

    id: str
    model_id: str
    benchmark_version: str
    runs_per_question: int
    total_questions: int
    status: RunStatus = RunStatus.RUNNING
    current_question: int = 0
    current_question_id: str | None = None
    current_variant: Variant | None = None
    responses_completed: int = 0
    average_score: float | None = None
    estimated_time_remaining: float | None = None
    started_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None

    @property
    def total_pairs(self) -> int:
        return self.total_questions * len(Variant)

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True, slots=True)
class AggregatedResponseRecord:
    """Summary of all trials for one (question, variant) pair.

    ``max_score`` is the highest trial score; ``rubric_max_score`` is the
    rubric's scale, which resume needs to rebuild the running average.
    The response text and reasoning are those of trial 1.
    """

    id: str
    run_id: str
    question_id: str
    variant: Variant
    run_count: int
    mean_score: float
    std_dev: float
    min_score: float
    max_score: float
    coefficient_of_variation: float
    rubric_max_score: float
    response_text: str
    judge_reasoning: str
    created_at: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> str:
        """Resume key ``question_id:variant``."""
        return f"{self.question_id}:{self.variant.value}"

    @property
    def normalized_mean(self) -> float:
        """Mean score as a percentage of the rubric maximum."""
        return self.mean_score / self.rubric_max_score * 100.0

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True, slots=True)
class TrialRecord:
    """One generation and grading attempt. Immutable once written."""

    id: str
    response_id: str
    run_number: int
    response_text: str
    score: float
    max_score: float
    judge_reasoning: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class PillarScoreRecord:
    """Aggregate for one pillar, on the 0-100 scale."""

    id: str
    run_id: str
    pillar_id: int
    score: float
    ci_lower: float
    ci_upper: float
    variance: float
    question_count: int
    confidence_level: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class ModelScoreRecord:
    """Run-wide aggregate, on the 0-100 scale."""

    id: str
    run_id: str
    model_id: str
    overall_score: float
    overall_ci_lower: float
    overall_ci_upper: float
    weighted_score: float
    weighted_ci_lower: float
    weighted_ci_upper: float
    consistency_score: float
    variance: float
    total_responses: int
    confidence_level: float
    computed_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@runtime_checkable
class EvaluationStore(Protocol):
    """Async persistence interface used by the orchestrator and reporter.

    Implementations:
        - InMemoryStore: process-local dictionaries (tests, mock runs)
        - SQLiteStore: local SQLite file
    """

    async def get_or_create_model(self, name: str, version: str, provider: str) -> ModelRecord:
        """Return the model record named ``name``, creating it if absent."""
        ...

    async def get_model(self, model_id: str) -> ModelRecord | None: ...

    async def list_models(self) -> list[ModelRecord]: ...

    async def create_run(self, run: EvaluationRunRecord) -> None: ...

    async def get_run(self, run_id: str) -> EvaluationRunRecord | None: ...

    async def update_run(self, run: EvaluationRunRecord) -> None:
        """Overwrite the stored progress fields of ``run``."""
        ...

    async def list_runs(self, model_id: str | None = None) -> list[EvaluationRunRecord]:
        """Runs, newest first, optionally for one model."""
        ...

    async def create_aggregated_response(
        self, record: AggregatedResponseRecord, trials: Sequence[TrialRecord]
    ) -> None:
        """Persist a completed pair and all of its trials as one unit.

        Either everything is written or nothing is, so a stored aggregate
        always has its trials.
        """
        ...

    async def list_aggregated_responses(self, run_id: str) -> list[AggregatedResponseRecord]:
        """Aggregated responses of a run in insertion order."""
        ...

    async def list_trials(self, response_id: str) -> list[TrialRecord]:
        """Trials of one aggregated response ordered by run number."""
        ...

    async def save_pillar_score(self, record: PillarScoreRecord) -> None:
        """Store a pillar score, replacing any earlier one for the same run and pillar."""
        ...

    async def list_pillar_scores(self, run_id: str) -> list[PillarScoreRecord]: ...

    async def save_model_score(self, record: ModelScoreRecord) -> None:
        """Store the run's model score, replacing any earlier one."""
        ...

    async def get_model_score(self, run_id: str) -> ModelScoreRecord | None: ...
