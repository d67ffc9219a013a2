"""Evaluation orchestrator.

Drives one model through every question x variant x trial combination:

1. Resolve the model record and create (or reload, when resuming) the run.
2. For each question in order, for each variant (explicit, then implicit),
   run all trials concurrently. Trial 1 is the deterministic baseline
   (temperature 0, seed 0); later trials sample at temperature 0.7.
3. Persist the pair's aggregate and trials, update run progress and emit a
   progress event.
4. Once every pair is done, compute pillar and overall scores with bootstrap
   confidence intervals, persist them and mark the run completed.

The (question, variant) pair is the unit of resumability. Nothing is written
for a pair until all of its trials have finished, so an interrupted pair is
simply re-run on resume.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from cadre_eval.clients.base import DEFAULT_MAX_TOKENS, GenerationClient
from cadre_eval.clients.models import ModelConfig
from cadre_eval.errors import ConfigurationError, RunAlreadyCompletedError, RunNotFoundError
from cadre_eval.evaluation.judge import Judgment
from cadre_eval.evaluation.statistics import (
    ConfidenceInterval,
    StatisticalAnalyzer,
    average_consistency_score,
    descriptive_stats,
)
from cadre_eval.questions.loader import validate_rubric_weights
from cadre_eval.questions.models import Question, Rubric, Variant
from cadre_eval.storage.base import (
    AggregatedResponseRecord,
    EvaluationRunRecord,
    EvaluationStore,
    ModelRecord,
    ModelScoreRecord,
    PillarScoreRecord,
    RunStatus,
    TrialRecord,
    new_id,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_RUNS_PER_QUESTION = 3
MAX_RUNS_PER_QUESTION = 10
DEFAULT_BENCHMARK_VERSION = "alpha"


class JudgeProtocol(Protocol):
    """Protocol for graders (LLMJudge, MockJudge)."""

    async def grade(
        self,
        question: str,
        response: str,
        rubric: Rubric,
        reference_answer: str | None = None,
    ) -> Judgment:
        """Grade one response against a rubric."""
        ...


@dataclass(frozen=True, slots=True)
class EvaluationConfig:
    """Configuration for an evaluation run.

    Attributes:
        runs_per_question: Trials per (question, variant) pair, 1-10. None
            means 3 for a new run and the stored value for a resumed one.
        benchmark_version: Benchmark version tag recorded on the run
        max_tokens: Max tokens per model response
        deterministic_temperature: Temperature of trial 1
        deterministic_seed: Seed of trial 1
        stochastic_temperature: Temperature of trials 2..N
    """

    runs_per_question: int | None = None
    benchmark_version: str = DEFAULT_BENCHMARK_VERSION
    max_tokens: int = DEFAULT_MAX_TOKENS
    deterministic_temperature: float = 0.0
    deterministic_seed: int = 0
    stochastic_temperature: float = 0.7

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.runs_per_question is not None and not (
            1 <= self.runs_per_question <= MAX_RUNS_PER_QUESTION
        ):
            raise ValueError(
                f"runs_per_question must be between 1 and {MAX_RUNS_PER_QUESTION}, "
                f"got {self.runs_per_question}"
            )
        if not self.benchmark_version:
            raise ValueError("benchmark_version must be non-empty")
        if self.max_tokens < 1:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")
        for name in ("deterministic_temperature", "stochastic_temperature"):
            value = getattr(self, name)
            if not 0.0 <= value <= 2.0:
                raise ValueError(f"{name} must be between 0.0 and 2.0, got {value}")


@dataclass(frozen=True, slots=True)
class EvaluationProgress:
    """Snapshot emitted after every completed pair and once at completion."""

    run_id: str
    model_id: str
    status: RunStatus
    current_question: int
    total_questions: int
    current_question_id: str | None
    current_variant: Variant | None
    runs_per_question: int
    responses_completed: int
    average_score: float | None
    estimated_time_remaining: float | None
    started_at: datetime

    @property
    def total_pairs(self) -> int:
        return self.total_questions * len(Variant)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON export."""
        return {
            "run_id": self.run_id,
            "model_id": self.model_id,
            "status": self.status.value,
            "current_question": self.current_question,
            "total_questions": self.total_questions,
            "current_question_id": self.current_question_id,
            "current_variant": self.current_variant.value if self.current_variant else None,
            "runs_per_question": self.runs_per_question,
            "responses_completed": self.responses_completed,
            "average_score": self.average_score,
            "estimated_time_remaining": self.estimated_time_remaining,
            "started_at": self.started_at.isoformat(),
        }


ProgressCallback = Callable[[EvaluationProgress], Awaitable[None] | None]


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """Summary returned when a run completes.

    Scores are percentages of the rubric maximum.
    """

    run_id: str
    model_id: str
    overall_score: float
    overall_ci: ConfidenceInterval
    weighted_score: float
    weighted_ci: ConfidenceInterval
    consistency_score: float
    total_responses: int
    pillar_scores: tuple[PillarScoreRecord, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON export."""
        return {
            "run_id": self.run_id,
            "model_id": self.model_id,
            "overall_score": self.overall_score,
            "overall_ci": self.overall_ci.to_dict(),
            "weighted_score": self.weighted_score,
            "weighted_ci": self.weighted_ci.to_dict(),
            "consistency_score": self.consistency_score,
            "total_responses": self.total_responses,
            "pillar_scores": [p.to_dict() for p in self.pillar_scores],
        }


@dataclass(frozen=True, slots=True)
class _TrialOutcome:
    run_number: int
    response_text: str
    judgment: Judgment


@dataclass(frozen=True, slots=True)
class _PairStats:
    mean_score: float
    rubric_max_score: float
    pillar_id: int
    coefficient_of_variation: float

    @property
    def normalized(self) -> float:
        return self.mean_score / self.rubric_max_score * 100.0


def _pair_key(question_id: str, variant: Variant) -> str:
    return f"{question_id}:{variant.value}"


class EvaluationRunner:
    """Runs a model through the question set and persists the results.

    Example:
        ```python
        runner = EvaluationRunner(
            client=client,
            judge=LLMJudge(judge_client),
            store=SQLiteStore("data/cadre.db"),
            model_config=get_model_config("gpt-4"),
            config=EvaluationConfig(runs_per_question=3),
        )
        result = await runner.run(questions)
        print(f"{result.overall_score:.1f}%")
        ```

    Attributes:
        client: Generation client for the evaluated model
        judge: Grader for model responses
        store: Persistence backend
        model_config: Registry entry of the evaluated model
        config: Run configuration
        analyzer: Bootstrap configuration for aggregate intervals
    """

    def __init__(
        self,
        client: GenerationClient,
        judge: JudgeProtocol,
        store: EvaluationStore,
        model_config: ModelConfig,
        config: EvaluationConfig | None = None,
        progress_callback: ProgressCallback | None = None,
        analyzer: StatisticalAnalyzer | None = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the runner.

        Args:
            client: Generation client for the evaluated model
            judge: Grader for model responses
            store: Persistence backend
            model_config: Registry entry of the evaluated model
            config: Run configuration (defaults to EvaluationConfig())
            progress_callback: Sync or async callable receiving progress events
            analyzer: Bootstrap configuration (defaults to an unseeded analyzer)
            now: Wall-clock source, injectable for tests
        """
        self.client = client
        self.judge = judge
        self.store = store
        self.model_config = model_config
        self.config = config or EvaluationConfig()
        self.progress_callback = progress_callback
        self.analyzer = analyzer or StatisticalAnalyzer()
        self._now = now
        self.run_record: EvaluationRunRecord | None = None

    async def run(
        self,
        questions: Sequence[Question],
        resume_run_id: str | None = None,
    ) -> EvaluationResult:
        """Execute (or resume) an evaluation run.

        Args:
            questions: Ordered question set, identical to the original when resuming
            resume_run_id: Id of an unfinished run to continue

        Returns:
            EvaluationResult with overall, weighted and consistency scores

        Raises:
            RunNotFoundError: If ``resume_run_id`` does not exist
            RunAlreadyCompletedError: If the run to resume already completed
            ConfigurationError: If the stored run does not match this model or question set
            GenerationError: If a model or judge call exhausted its retries
        """
        verb = "Resuming" if resume_run_id else "Starting"
        logger.info(
            f"{verb} evaluation: {self.model_config.name} ({self.model_config.version}), "
            f"{len(questions)} questions"
        )
        for question in questions:
            validate_rubric_weights(question)

        model = await self.store.get_or_create_model(
            self.model_config.name, self.model_config.version, self.model_config.provider
        )

        if resume_run_id:
            run, stats = await self._load_run(resume_run_id, model, questions)
        else:
            run = await self._create_run(model, questions)
            stats = {}
        self.run_record = run

        try:
            await self._evaluate_pairs(run, questions, stats)
            return await self._finalize(run, questions, stats)
        except BaseException:
            run.status = RunStatus.FAILED
            logger.exception(
                f"Evaluation run {run.id} failed after {run.responses_completed} "
                f"completed pairs; resume with its run id"
            )
            raise

    async def _create_run(
        self, model: ModelRecord, questions: Sequence[Question]
    ) -> EvaluationRunRecord:
        runs = self.config.runs_per_question or DEFAULT_RUNS_PER_QUESTION
        run = EvaluationRunRecord(
            id=new_id(),
            model_id=model.id,
            benchmark_version=self.config.benchmark_version,
            runs_per_question=runs,
            total_questions=len(questions),
            started_at=self._now(),
        )
        await self.store.create_run(run)
        logger.info(f"Created evaluation run {run.id} ({runs} runs per question-variant)")
        return run

    async def _load_run(
        self,
        run_id: str,
        model: ModelRecord,
        questions: Sequence[Question],
    ) -> tuple[EvaluationRunRecord, dict[str, _PairStats]]:
        run = await self.store.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        if run.status == RunStatus.COMPLETED:
            raise RunAlreadyCompletedError(run_id)
        if run.model_id != model.id:
            raise ConfigurationError(
                f"Evaluation run {run_id} belongs to a different model than {model.name}"
            )

        if self.config.runs_per_question is not None:
            run.runs_per_question = self.config.runs_per_question
        if run.total_questions != len(questions):
            logger.warning(
                f"Run {run_id} was created with {run.total_questions} questions, "
                f"resuming with {len(questions)}"
            )
            run.total_questions = len(questions)

        pillars = {q.id: q.pillar_id for q in questions}
        stats: dict[str, _PairStats] = {}
        for response in await self.store.list_aggregated_responses(run_id):
            if response.question_id not in pillars:
                raise ConfigurationError(
                    f"Evaluation run {run_id} has results for unknown question "
                    f"{response.question_id}"
                )
            stats[response.key] = _PairStats(
                mean_score=response.mean_score,
                rubric_max_score=response.rubric_max_score,
                pillar_id=pillars[response.question_id],
                coefficient_of_variation=response.coefficient_of_variation,
            )

        run.status = RunStatus.RUNNING
        run.responses_completed = len(stats)
        logger.info(
            f"Resuming evaluation run {run_id}: {len(stats)}/{run.total_pairs} pairs completed, "
            f"average so far {run.average_score if run.average_score is not None else 'N/A'}"
        )
        return run, stats

    async def _evaluate_pairs(
        self,
        run: EvaluationRunRecord,
        questions: Sequence[Question],
        stats: dict[str, _PairStats],
    ) -> None:
        for index, question in enumerate(questions, start=1):
            logger.info(
                f"Question {index}/{len(questions)}: {question.id} "
                f"(pillar {question.pillar_id}, hierarchy {question.truth_hierarchy})"
            )
            for variant in Variant:
                key = _pair_key(question.id, variant)
                if key in stats:
                    logger.info(f"Skipping {key} (already completed)")
                    continue

                stats[key] = await self._evaluate_pair(run, question, variant)
                await self._record_progress(run, index, question, variant, stats)

    async def _run_trial(self, question: Question, variant: Variant, run_number: int) -> _TrialOutcome:
        deterministic = run_number == 1
        text = question.text_for(variant)

        response = await self.client.generate(
            text,
            max_tokens=self.config.max_tokens,
            temperature=(
                self.config.deterministic_temperature
                if deterministic
                else self.config.stochastic_temperature
            ),
            seed=self.config.deterministic_seed if deterministic else None,
        )
        judgment = await self.judge.grade(
            text, response, question.rubric_for(variant), question.reference_answer
        )
        logger.debug(
            f"{question.id}:{variant.value} run {run_number}"
            f"{' (deterministic)' if deterministic else ''}: "
            f"{judgment.score:.1f}/{judgment.max_score:g}"
        )
        return _TrialOutcome(run_number, response, judgment)

    async def _evaluate_pair(
        self, run: EvaluationRunRecord, question: Question, variant: Variant
    ) -> _PairStats:
        rubric = question.rubric_for(variant)
        logger.info(
            f"Testing {variant.value} variant ({run.runs_per_question} runs, "
            f"{len(rubric.criteria)} criteria)"
        )

        tasks = [
            asyncio.ensure_future(self._run_trial(question, variant, n))
            for n in range(1, run.runs_per_question + 1)
        ]
        try:
            outcomes: list[_TrialOutcome] = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        summary = descriptive_stats([o.judgment.score for o in outcomes])
        baseline = outcomes[0]
        logger.info(
            f"Deterministic score: {baseline.judgment.score:.1f}/{rubric.max_score:g}; "
            f"mean={summary.mean:.1f}, std={summary.std_dev:.2f}, "
            f"CV={summary.coefficient_of_variation:.3f}"
        )

        response = AggregatedResponseRecord(
            id=new_id(),
            run_id=run.id,
            question_id=question.id,
            variant=variant,
            run_count=len(outcomes),
            mean_score=summary.mean,
            std_dev=summary.std_dev,
            min_score=summary.min,
            max_score=summary.max,
            coefficient_of_variation=summary.coefficient_of_variation,
            rubric_max_score=rubric.max_score,
            response_text=baseline.response_text,
            judge_reasoning=baseline.judgment.reasoning,
            created_at=self._now(),
        )
        trials = [
            TrialRecord(
                id=new_id(),
                response_id=response.id,
                run_number=o.run_number,
                response_text=o.response_text,
                score=o.judgment.score,
                max_score=o.judgment.max_score,
                judge_reasoning=o.judgment.reasoning,
            )
            for o in outcomes
        ]
        await self.store.create_aggregated_response(response, trials)

        return _PairStats(
            mean_score=summary.mean,
            rubric_max_score=rubric.max_score,
            pillar_id=question.pillar_id,
            coefficient_of_variation=summary.coefficient_of_variation,
        )

    async def _record_progress(
        self,
        run: EvaluationRunRecord,
        index: int,
        question: Question,
        variant: Variant,
        stats: dict[str, _PairStats],
    ) -> None:
        completed = len(stats)
        elapsed = (self._now() - run.started_at).total_seconds()
        remaining = max(run.total_pairs - completed, 0)

        run.current_question = index
        run.current_question_id = question.id
        run.current_variant = variant
        run.responses_completed = completed
        run.average_score = (
            sum(s.mean_score for s in stats.values())
            / sum(s.rubric_max_score for s in stats.values())
            * 100.0
        )
        run.estimated_time_remaining = float(round(elapsed / completed * remaining))
        await self.store.update_run(run)
        await self._emit(run)

    async def _finalize(
        self,
        run: EvaluationRunRecord,
        questions: Sequence[Question],
        stats: dict[str, _PairStats],
    ) -> EvaluationResult:
        logger.info("Calculating aggregate scores and confidence intervals")

        # Question order, not completion order, so resumed runs aggregate identically
        ordered = [
            stats[key]
            for key in (_pair_key(q.id, v) for q in questions for v in Variant)
            if key in stats
        ]
        confidence = self.analyzer.confidence_level

        by_pillar: dict[int, list[float]] = {}
        for pair in ordered:
            by_pillar.setdefault(pair.pillar_id, []).append(pair.normalized)

        pillar_scores = []
        for pillar_id in sorted(by_pillar):
            normalized = by_pillar[pillar_id]
            ci = self.analyzer.bootstrap_ci(normalized)
            record = PillarScoreRecord(
                id=new_id(),
                run_id=run.id,
                pillar_id=pillar_id,
                score=ci.mean,
                ci_lower=ci.lower,
                ci_upper=ci.upper,
                variance=descriptive_stats(normalized).variance,
                question_count=len(normalized),
                confidence_level=confidence,
            )
            await self.store.save_pillar_score(record)
            pillar_scores.append(record)
            logger.info(
                f"Pillar {pillar_id}: {ci.mean:.1f}% "
                f"({confidence:.0%} CI: {ci.lower:.1f}-{ci.upper:.1f}%)"
            )

        normalized_all = [pair.normalized for pair in ordered]
        overall_ci = self.analyzer.bootstrap_ci(normalized_all)
        consistency = average_consistency_score([p.coefficient_of_variation for p in ordered])
        # TODO: weight by truth hierarchy once per-question weighting is defined
        weighted_ci = overall_ci

        await self.store.save_model_score(
            ModelScoreRecord(
                id=new_id(),
                run_id=run.id,
                model_id=run.model_id,
                overall_score=overall_ci.mean,
                overall_ci_lower=overall_ci.lower,
                overall_ci_upper=overall_ci.upper,
                weighted_score=weighted_ci.mean,
                weighted_ci_lower=weighted_ci.lower,
                weighted_ci_upper=weighted_ci.upper,
                consistency_score=consistency,
                variance=descriptive_stats(normalized_all).variance,
                total_responses=len(ordered),
                confidence_level=confidence,
                computed_at=self._now(),
            )
        )

        run.status = RunStatus.COMPLETED
        run.completed_at = self._now()
        run.estimated_time_remaining = 0.0
        await self.store.update_run(run)

        logger.info(
            f"Evaluation complete: {self.model_config.name} overall {overall_ci.mean:.2f}% "
            f"[{overall_ci.lower:.2f}, {overall_ci.upper:.2f}], consistency {consistency:.1f}/100, "
            f"{len(ordered)} question-variants, run {run.id}"
        )

        await self._emit(
            run,
            current_question=len(questions),
            question_id=None,
            variant=None,
            average_score=overall_ci.mean,
        )

        return EvaluationResult(
            run_id=run.id,
            model_id=run.model_id,
            overall_score=overall_ci.mean,
            overall_ci=overall_ci,
            weighted_score=weighted_ci.mean,
            weighted_ci=weighted_ci,
            consistency_score=consistency,
            total_responses=len(ordered),
            pillar_scores=tuple(pillar_scores),
        )

    async def _emit(self, run: EvaluationRunRecord, **overrides: Any) -> None:
        if self.progress_callback is None:
            return
        progress = EvaluationProgress(
            run_id=run.id,
            model_id=run.model_id,
            status=run.status,
            current_question=overrides.get("current_question", run.current_question),
            total_questions=run.total_questions,
            current_question_id=overrides.get("question_id", run.current_question_id),
            current_variant=overrides.get("variant", run.current_variant),
            runs_per_question=run.runs_per_question,
            responses_completed=run.responses_completed,
            average_score=overrides.get("average_score", run.average_score),
            estimated_time_remaining=run.estimated_time_remaining,
            started_at=run.started_at,
        )
        result = self.progress_callback(progress)
        if inspect.isawaitable(result):
            await result
