"""Results reporter for persisted evaluation runs.

This module reads a run back from an EvaluationStore and produces:
- A markdown summary (overall, pillar and lowest-scoring responses)
- JSON, markdown and YAML exports
- A Welch t-test comparison between two runs
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from cadre_eval.errors import RunNotFoundError
from cadre_eval.evaluation.statistics import WelchTestResult, welch_t_test
from cadre_eval.storage.base import (
    AggregatedResponseRecord,
    EvaluationRunRecord,
    EvaluationStore,
    ModelRecord,
    ModelScoreRecord,
    PillarScoreRecord,
    TrialRecord,
)

RESPONSE_PREVIEW_CHARS = 300


@dataclass(frozen=True, slots=True)
class ResponseDetail:
    """One (question, variant) aggregate with its trials.

    Attributes:
        response: The aggregated response record
        trials: Trials ordered by run number
    """

    response: AggregatedResponseRecord
    trials: tuple[TrialRecord, ...] = ()

    @property
    def baseline_percentage(self) -> float:
        """Trial 1 score as a percentage, or the mean when trials are not loaded."""
        if self.trials:
            first = self.trials[0]
            return first.score / first.max_score * 100.0 if first.max_score else 0.0
        return self.response.normalized_mean

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        data = self.response.to_dict()
        data["baseline_percentage"] = self.baseline_percentage
        data["trials"] = [t.to_dict() for t in self.trials]
        return data


@dataclass(frozen=True, slots=True)
class RunReport:
    """Everything persisted about one evaluation run.

    Attributes:
        run: The run record
        model: The evaluated model, if its record exists
        model_score: Run-wide aggregate (None until the run completes)
        pillar_scores: Per-pillar aggregates ordered by pillar
        responses: Per-pair details in evaluation order
    """

    run: EvaluationRunRecord
    model: ModelRecord | None
    model_score: ModelScoreRecord | None
    pillar_scores: tuple[PillarScoreRecord, ...] = ()
    responses: tuple[ResponseDetail, ...] = field(default_factory=tuple)

    @property
    def model_name(self) -> str:
        return self.model.name if self.model else self.run.model_id

    def worst_responses(self, limit: int = 5) -> list[ResponseDetail]:
        """Lowest-scoring pairs by deterministic (trial 1) percentage."""
        return sorted(self.responses, key=lambda r: r.baseline_percentage)[:limit]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "run": self.run.to_dict(),
            "model": self.model.to_dict() if self.model else None,
            "model_score": self.model_score.to_dict() if self.model_score else None,
            "pillar_scores": [p.to_dict() for p in self.pillar_scores],
            "responses": [r.to_dict() for r in self.responses],
        }


@dataclass(frozen=True, slots=True)
class RunComparison:
    """Welch t-test between the per-pair normalized means of two runs."""

    run_a: str
    run_b: str
    label_a: str
    label_b: str
    mean_a: float
    mean_b: float
    n_a: int
    n_b: int
    test: WelchTestResult

    @property
    def difference(self) -> float:
        return self.mean_a - self.mean_b

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "run_a": self.run_a,
            "run_b": self.run_b,
            "label_a": self.label_a,
            "label_b": self.label_b,
            "mean_a": self.mean_a,
            "mean_b": self.mean_b,
            "n_a": self.n_a,
            "n_b": self.n_b,
            "difference": self.difference,
            "test": self.test.to_dict(),
        }


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


@dataclass(slots=True)
class ResultsReporter:
    """Generates reports from persisted evaluation runs.

    Attributes:
        store: Store the runs were written to
    """

    store: EvaluationStore

    async def generate_report(self, run_id: str, include_trials: bool = True) -> RunReport:
        """Load a run and all of its aggregates.

        Args:
            run_id: Run to report on
            include_trials: Also load every trial of every pair

        Returns:
            RunReport for the run

        Raises:
            RunNotFoundError: If the run does not exist
        """
        run = await self.store.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)

        responses = []
        for response in await self.store.list_aggregated_responses(run_id):
            trials = await self.store.list_trials(response.id) if include_trials else []
            responses.append(ResponseDetail(response, tuple(trials)))

        return RunReport(
            run=run,
            model=await self.store.get_model(run.model_id),
            model_score=await self.store.get_model_score(run_id),
            pillar_scores=tuple(await self.store.list_pillar_scores(run_id)),
            responses=tuple(responses),
        )

    async def compare_runs(self, run_a: str, run_b: str) -> RunComparison:
        """Compare two runs with Welch's t-test.

        Raises:
            RunNotFoundError: If either run does not exist
        """
        report_a = await self.generate_report(run_a, include_trials=False)
        report_b = await self.generate_report(run_b, include_trials=False)
        scores_a = [r.response.normalized_mean for r in report_a.responses]
        scores_b = [r.response.normalized_mean for r in report_b.responses]

        return RunComparison(
            run_a=run_a,
            run_b=run_b,
            label_a=report_a.model_name,
            label_b=report_b.model_name,
            mean_a=_mean(scores_a),
            mean_b=_mean(scores_b),
            n_a=len(scores_a),
            n_b=len(scores_b),
            test=welch_t_test(scores_a, scores_b),
        )

    def format_summary_table(self, report: RunReport, worst: int = 5) -> str:
        """Format report as markdown.

        Args:
            report: Run report to format
            worst: Number of lowest-scoring responses to list

        Returns:
            Markdown-formatted report
        """
        run = report.run
        lines: list[str] = [
            f"# {report.model_name} Evaluation Results",
            "",
            f"**Run ID:** {run.id}",
            f"**Benchmark version:** {run.benchmark_version}",
            f"**Status:** {run.status.value}",
            f"**Progress:** {run.responses_completed}/{run.total_pairs} question-variants, "
            f"{run.runs_per_question} runs each",
            "",
        ]

        score = report.model_score
        if score is not None:
            level = f"{score.confidence_level:.0%}"
            lines.extend(
                [
                    "## Overall",
                    "",
                    f"| Metric | Score | {level} CI |",
                    "|--------|-------|--------|",
                    f"| Overall | {score.overall_score:.2f}% | "
                    f"[{score.overall_ci_lower:.2f}, {score.overall_ci_upper:.2f}] |",
                    f"| Weighted | {score.weighted_score:.2f}% | "
                    f"[{score.weighted_ci_lower:.2f}, {score.weighted_ci_upper:.2f}] |",
                    f"| Consistency | {score.consistency_score:.1f}/100 | - |",
                    "",
                ]
            )
        elif run.average_score is not None:
            lines.extend([f"**Running average:** {run.average_score:.2f}%", ""])

        if report.pillar_scores:
            lines.extend(
                [
                    "## Pillars",
                    "",
                    "| Pillar | Score | CI | Variance | Responses |",
                    "|--------|-------|----|----------|-----------|",
                ]
            )
            for pillar in report.pillar_scores:
                lines.append(
                    f"| {pillar.pillar_id} | {pillar.score:.2f}% | "
                    f"[{pillar.ci_lower:.2f}, {pillar.ci_upper:.2f}] | "
                    f"{pillar.variance:.2f} | {pillar.question_count} |"
                )
            lines.append("")

        lowest = report.worst_responses(worst) if worst > 0 else []
        if lowest:
            lines.extend(["## Lowest-Scoring Responses", ""])
            for rank, detail in enumerate(lowest, start=1):
                response = detail.response
                preview = response.response_text[:RESPONSE_PREVIEW_CHARS]
                if len(response.response_text) > RESPONSE_PREVIEW_CHARS:
                    preview += "..."
                lines.extend(
                    [
                        f"### {rank}. {response.question_id} ({response.variant.value}): "
                        f"{detail.baseline_percentage:.1f}%",
                        "",
                        f"Mean {response.mean_score:.1f}/{response.rubric_max_score:g}, "
                        f"CV {response.coefficient_of_variation:.3f}",
                        "",
                        f"**Judge reasoning:** {response.judge_reasoning}",
                        "",
                        f"**Response:** {preview}",
                        "",
                    ]
                )

        return "\n".join(lines)

    def format_comparison(self, comparison: RunComparison) -> str:
        """Format a run comparison as markdown."""
        test = comparison.test
        return "\n".join(
            [
                f"# {comparison.label_a} vs {comparison.label_b}",
                "",
                "| Run | Model | Mean | Responses |",
                "|-----|-------|------|-----------|",
                f"| {comparison.run_a} | {comparison.label_a} | {comparison.mean_a:.2f}% | "
                f"{comparison.n_a} |",
                f"| {comparison.run_b} | {comparison.label_b} | {comparison.mean_b:.2f}% | "
                f"{comparison.n_b} |",
                "",
                f"- **Difference:** {comparison.difference:+.2f} points",
                f"- **t statistic:** {test.t_statistic:.3f}",
                f"- **Degrees of freedom:** {test.degrees_of_freedom:.1f}",
                f"- **p-value (approximate):** {test.p_value:.4f}",
                f"- **Significant (alpha=0.05):** {'Yes' if test.significant else 'No'}",
                "",
            ]
        )

    def export_report(self, report: RunReport, output_dir: Path) -> dict[str, str]:
        """Export report to JSON, markdown and YAML.

        Args:
            report: Report to export
            output_dir: Directory for output files

        Returns:
            Dictionary mapping format to output path
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        data = report.to_dict()
        stem = f"{report.run.id}_report"

        outputs: dict[str, str] = {}

        json_path = output_dir / f"{stem}.json"
        with json_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        outputs["json"] = str(json_path)

        md_path = output_dir / f"{stem}.md"
        with md_path.open("w", encoding="utf-8") as f:
            f.write(self.format_summary_table(report))
        outputs["markdown"] = str(md_path)

        yaml_path = output_dir / f"{stem}.yaml"
        with yaml_path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
        outputs["yaml"] = str(yaml_path)

        return outputs
