"""CLI entry point for the CADRE evaluation engine."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv

from cadre_eval.clients import (
    DEFAULT_TIMEOUT_SECONDS,
    MODEL_CONFIGS,
    MockGenerationClient,
    RateLimiter,
    create_client,
    create_judge_client,
    get_model_config,
    missing_credentials,
)
from cadre_eval.clients.models import ModelConfig
from cadre_eval.errors import CadreEvalError
from cadre_eval.evaluation import DEFAULT_JUDGE_MODEL, LLMJudge, MockJudge, StatisticalAnalyzer
from cadre_eval.experiments import (
    DEFAULT_BENCHMARK_VERSION,
    MAX_RUNS_PER_QUESTION,
    EvaluationConfig,
    EvaluationProgress,
    EvaluationResult,
    EvaluationRunner,
    JudgeProtocol,
)
from cadre_eval.questions import QuestionLoader
from cadre_eval.reporting import ResultsReporter
from cadre_eval.storage import DEFAULT_DB_PATH, RunStatus, SQLiteStore

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="cadre-eval",
    help="CADRE evaluation engine: benchmark language models against the question set.",
    no_args_is_help=True,
)

DbOption = Annotated[
    Path,
    typer.Option("--db", help="SQLite database holding evaluation runs"),
]


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _progress_callback(progress: EvaluationProgress) -> None:
    """Print progress updates."""
    if progress.status == RunStatus.COMPLETED:
        typer.echo(f"[{progress.responses_completed}/{progress.total_pairs}] completed")
        return

    pct = progress.responses_completed / progress.total_pairs * 100 if progress.total_pairs else 0
    eta = progress.estimated_time_remaining or 0.0
    variant = progress.current_variant.value if progress.current_variant else "-"
    average = f"{progress.average_score:.1f}%" if progress.average_score is not None else "N/A"
    typer.echo(
        f"[{progress.responses_completed}/{progress.total_pairs}] ({pct:.0f}%) "
        f"Q{progress.current_question}/{progress.total_questions} "
        f"{progress.current_question_id} {variant} | avg {average} | ETA {eta / 60:.1f} min"
    )


async def _run_evaluation(
    model_config: ModelConfig,
    questions_path: Path,
    db: Path,
    runs: int | None,
    version: str,
    timeout: float,
    resume: str | None,
    mock: bool,
    quiet: bool,
    seed: int | None,
) -> EvaluationResult:
    questions = QuestionLoader.load(questions_path)
    typer.echo(f"Loaded {len(questions)} questions from {questions_path}")

    store = SQLiteStore(db)
    try:
        rate_limiter = RateLimiter()
        judge: JudgeProtocol
        if mock:
            client = MockGenerationClient(model=model_config.provider_model)
            judge = MockJudge()
        else:
            client = create_client(model_config, rate_limiter, timeout=timeout)
            judge = LLMJudge(create_judge_client(DEFAULT_JUDGE_MODEL, rate_limiter, timeout=timeout))

        runner = EvaluationRunner(
            client=client,
            judge=judge,
            store=store,
            model_config=model_config,
            config=EvaluationConfig(runs_per_question=runs, benchmark_version=version),
            progress_callback=None if quiet else _progress_callback,
            analyzer=StatisticalAnalyzer(random_seed=seed),
        )
        return await runner.run(questions, resume_run_id=resume)
    finally:
        store.close()


@app.command()
def run(
    model: Annotated[
        str,
        typer.Option("--model", "-m", help="Model to evaluate (see list-models)"),
    ],
    runs: Annotated[
        int | None,
        typer.Option(
            "--runs",
            "-n",
            help="Runs per question-variant, 1-10 (default: 3, or the resumed run's value)",
        ),
    ] = None,
    version: Annotated[
        str,
        typer.Option("--version", "-v", help="Benchmark version tag"),
    ] = DEFAULT_BENCHMARK_VERSION,
    questions: Annotated[
        Path | None,
        typer.Option(
            "--questions",
            "-q",
            help="Questions YAML file (default: data/questions-<version>.yaml)",
        ),
    ] = None,
    timeout: Annotated[
        float,
        typer.Option("--timeout", "-t", help="Per-request timeout in seconds"),
    ] = DEFAULT_TIMEOUT_SECONDS,
    resume: Annotated[
        str | None,
        typer.Option("--resume", "-r", help="Resume an interrupted evaluation run by id"),
    ] = None,
    db: DbOption = DEFAULT_DB_PATH,
    mock: Annotated[
        bool,
        typer.Option("--mock", help="Use mock client and judge (no API calls)"),
    ] = False,
    seed: Annotated[
        int | None,
        typer.Option("--seed", help="Bootstrap random seed for reproducible intervals"),
    ] = None,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", help="Suppress progress output"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging"),
    ] = False,
) -> None:
    """Run (or resume) an evaluation of one model.

    Example:
        cadre-eval run --model claude-sonnet-4.5 --runs 3
        cadre-eval run --model gpt-4 --resume 3f1c...
    """
    load_dotenv()
    _configure_logging(verbose, quiet)

    try:
        model_config = get_model_config(model)
    except CadreEvalError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    if runs is not None and not 1 <= runs <= MAX_RUNS_PER_QUESTION:
        typer.echo(f"Error: --runs must be between 1 and {MAX_RUNS_PER_QUESTION}", err=True)
        raise typer.Exit(1)
    if timeout <= 0:
        typer.echo("Error: --timeout must be positive", err=True)
        raise typer.Exit(1)

    if not mock:
        missing = missing_credentials(model_config)
        if missing:
            typer.echo(
                f"Error: missing environment variable(s): {', '.join(missing)}", err=True
            )
            raise typer.Exit(1)

    questions_path = questions or Path(f"data/questions-{version}.yaml")

    typer.echo(f"{'Resuming' if resume else 'Starting'} evaluation: {model_config.name}")
    typer.echo(f"  Provider: {model_config.provider} ({model_config.provider_model})")
    typer.echo(f"  Benchmark version: {version}")
    typer.echo(f"  Timeout: {timeout:g}s")
    if resume:
        typer.echo(f"  Resuming run: {resume}")
    typer.echo()

    try:
        result = asyncio.run(
            _run_evaluation(
                model_config,
                questions_path,
                db,
                runs,
                version,
                timeout,
                resume,
                mock,
                quiet,
                seed,
            )
        )
    except (CadreEvalError, FileNotFoundError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        if resume is None and not isinstance(e, FileNotFoundError):
            typer.echo("Interrupted runs can be continued with --resume <run id>", err=True)
        raise typer.Exit(1) from e
    except KeyboardInterrupt as e:
        typer.echo("Interrupted; continue later with --resume <run id>", err=True)
        raise typer.Exit(1) from e

    typer.echo()
    typer.echo("=" * 60)
    typer.echo(f"Evaluation complete: {result.run_id}")
    typer.echo(
        f"  Overall score: {result.overall_score:.2f}% "
        f"[{result.overall_ci.lower:.2f}, {result.overall_ci.upper:.2f}]"
    )
    typer.echo(f"  Weighted score: {result.weighted_score:.2f}%")
    typer.echo(f"  Consistency score: {result.consistency_score:.1f}/100")
    typer.echo(f"  Question-variants: {result.total_responses}")
    for pillar in result.pillar_scores:
        typer.echo(
            f"  Pillar {pillar.pillar_id}: {pillar.score:.1f}% "
            f"[{pillar.ci_lower:.1f}, {pillar.ci_upper:.1f}]"
        )


@app.command("list-models")
def list_models() -> None:
    """List models available for evaluation."""
    typer.echo("Available models:")
    typer.echo()
    for key, config in MODEL_CONFIGS.items():
        typer.echo(f"  {key:<20} {config.name:<22} {config.provider}:{config.provider_model}")


@app.command("list-runs")
def list_runs(db: DbOption = DEFAULT_DB_PATH) -> None:
    """List models and evaluation runs in the database."""
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        raise typer.Exit(1)

    async def _load() -> None:
        store = SQLiteStore(db)
        try:
            models = await store.list_models()
            typer.echo(f"Models ({len(models)}):")
            for model in models:
                typer.echo(f"  {model.name} ({model.version}, {model.provider}) - {model.id}")
            typer.echo()

            names = {m.id: m.name for m in models}
            runs = await store.list_runs()
            typer.echo(f"Evaluation runs ({len(runs)}):")
            for run in runs:
                average = f"{run.average_score:.2f}%" if run.average_score is not None else "N/A"
                typer.echo(
                    f"  {run.id}  {names.get(run.model_id, run.model_id)}  "
                    f"{run.benchmark_version}  {run.status.value}  "
                    f"{run.responses_completed}/{run.total_pairs}  avg {average}  "
                    f"started {run.started_at:%Y-%m-%d %H:%M}"
                )
        finally:
            store.close()

    asyncio.run(_load())


@app.command()
def report(
    run_id: Annotated[str, typer.Argument(help="Evaluation run id")],
    db: DbOption = DEFAULT_DB_PATH,
    output_dir: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Directory to write JSON, markdown and YAML reports"),
    ] = None,
    worst: Annotated[
        int,
        typer.Option("--worst", "-w", help="Number of lowest-scoring responses to list"),
    ] = 5,
) -> None:
    """Render the report for one evaluation run.

    Example:
        cadre-eval report 3f1c... --output results/
    """
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        raise typer.Exit(1)

    store = SQLiteStore(db)
    reporter = ResultsReporter(store)
    try:
        report_obj = asyncio.run(reporter.generate_report(run_id))
    except CadreEvalError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    finally:
        store.close()

    typer.echo(reporter.format_summary_table(report_obj, worst=worst))

    if output_dir is not None:
        outputs = reporter.export_report(report_obj, output_dir)
        typer.echo("Report generated:")
        for fmt, path in outputs.items():
            typer.echo(f"  {fmt}: {path}")


@app.command()
def compare(
    run_a: Annotated[str, typer.Argument(help="First evaluation run id")],
    run_b: Annotated[str, typer.Argument(help="Second evaluation run id")],
    db: DbOption = DEFAULT_DB_PATH,
) -> None:
    """Compare two evaluation runs with Welch's t-test.

    The p-value uses a normal approximation of the t distribution.
    """
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        raise typer.Exit(1)

    store = SQLiteStore(db)
    reporter = ResultsReporter(store)
    try:
        comparison = asyncio.run(reporter.compare_runs(run_a, run_b))
    except CadreEvalError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    finally:
        store.close()

    typer.echo(reporter.format_comparison(comparison))


if __name__ == "__main__":
    app()
