"""Tests for the CLI main module.

Tests for the cadre-eval CLI commands including:
- run: mock evaluations against a temporary database, option validation
- list-models: registry listing
- list-runs: stored models and runs
- report: markdown summary and file exports
- compare: Welch t-test between two runs
"""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from cadre_eval.cli import main as cli_main
from cadre_eval.cli.main import app


@pytest.fixture
def runner() -> CliRunner:
    """Create a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's .env file out of the tests."""
    monkeypatch.setattr(cli_main, "load_dotenv", lambda *args, **kwargs: False)


@pytest.fixture
def questions_file(
    write_questions: Callable[..., Path],
    question_data_factory: Callable[..., dict[str, Any]],
) -> Path:
    return write_questions([question_data_factory("q_001"), question_data_factory("q_002", 2)])


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "db" / "cadre.db"


def run_mock(runner: CliRunner, questions_file: Path, db_path: Path, *extra: str) -> str:
    """Run a mock evaluation and return the new run id."""
    result = runner.invoke(
        app,
        [
            "run",
            "--model",
            "gpt-4",
            "--mock",
            "--questions",
            str(questions_file),
            "--db",
            str(db_path),
            "--seed",
            "1",
            *extra,
        ],
    )
    assert result.exit_code == 0, result.output
    match = re.search(r"Evaluation complete: (\S+)", result.output)
    assert match is not None
    return match.group(1)


class TestRunCommand:
    """Tests for the run command."""

    def test_mock_run(self, runner: CliRunner, questions_file: Path, db_path: Path) -> None:
        """A mock run completes and prints the summary."""
        result = runner.invoke(
            app,
            [
                "run",
                "-m",
                "gpt-4",
                "--mock",
                "-q",
                str(questions_file),
                "--db",
                str(db_path),
                "-n",
                "2",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Starting evaluation: GPT-4" in result.output
        assert "Loaded 2 questions" in result.output
        assert "[1/4]" in result.output
        assert "Overall score: 50.00%" in result.output
        assert "Consistency score: 100.0/100" in result.output
        assert "Question-variants: 4" in result.output
        assert "Pillar 2: 50.0%" in result.output
        assert db_path.exists()

    def test_quiet_hides_progress(
        self, runner: CliRunner, questions_file: Path, db_path: Path
    ) -> None:
        result = runner.invoke(
            app,
            [
                "run",
                "-m",
                "gpt-4",
                "--mock",
                "--quiet",
                "-q",
                str(questions_file),
                "--db",
                str(db_path),
            ],
        )

        assert result.exit_code == 0, result.output
        assert "[1/4]" not in result.output
        assert "Evaluation complete" in result.output

    def test_unknown_model(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["run", "--model", "gpt-99", "--mock"])

        assert result.exit_code == 1
        assert "Unknown model: gpt-99" in result.output

    @pytest.mark.parametrize("runs", ["0", "11"])
    def test_runs_out_of_range(self, runner: CliRunner, runs: str) -> None:
        result = runner.invoke(app, ["run", "--model", "gpt-4", "--mock", "--runs", runs])

        assert result.exit_code == 1
        assert "--runs must be between 1 and 10" in result.output

    def test_missing_credentials(
        self, runner: CliRunner, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Real runs need the provider keys before anything else happens."""
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        monkeypatch.delenv("MAGISTERIUM_API_KEY", raising=False)

        result = runner.invoke(app, ["run", "--model", "magisterium-1"])

        assert result.exit_code == 1
        assert "OPENROUTER_API_KEY" in result.output
        assert "MAGISTERIUM_API_KEY" in result.output

    def test_missing_questions_file(
        self, runner: CliRunner, tmp_path: Path, db_path: Path
    ) -> None:
        result = runner.invoke(
            app,
            [
                "run",
                "--model",
                "gpt-4",
                "--mock",
                "--questions",
                str(tmp_path / "absent.yaml"),
                "--db",
                str(db_path),
            ],
        )

        assert result.exit_code == 1
        assert "Question file not found" in result.output

    def test_resume_completed_run(
        self, runner: CliRunner, questions_file: Path, db_path: Path
    ) -> None:
        run_id = run_mock(runner, questions_file, db_path)

        result = runner.invoke(
            app,
            [
                "run",
                "--model",
                "gpt-4",
                "--mock",
                "--questions",
                str(questions_file),
                "--db",
                str(db_path),
                "--resume",
                run_id,
            ],
        )

        assert result.exit_code == 1
        assert "already completed" in result.output


class TestListCommands:
    """Tests for list-models and list-runs."""

    def test_list_models(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["list-models"])

        assert result.exit_code == 0
        assert "claude-sonnet-4.5" in result.output
        assert "magisterium:magisterium-1" in result.output
        assert "openrouter:openai/gpt-4" in result.output

    def test_list_runs(self, runner: CliRunner, questions_file: Path, db_path: Path) -> None:
        run_id = run_mock(runner, questions_file, db_path)

        result = runner.invoke(app, ["list-runs", "--db", str(db_path)])

        assert result.exit_code == 0, result.output
        assert "Models (1):" in result.output
        assert "GPT-4 (gpt-4, openrouter)" in result.output
        assert "Evaluation runs (1):" in result.output
        assert run_id in result.output
        assert "completed  4/4" in result.output

    def test_list_runs_missing_db(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(app, ["list-runs", "--db", str(tmp_path / "none.db")])

        assert result.exit_code == 1
        assert "Database not found" in result.output


class TestReportCommands:
    """Tests for report and compare."""

    def test_report(
        self, runner: CliRunner, questions_file: Path, db_path: Path, tmp_path: Path
    ) -> None:
        run_id = run_mock(runner, questions_file, db_path)
        output_dir = tmp_path / "reports"

        result = runner.invoke(
            app, ["report", run_id, "--db", str(db_path), "--output", str(output_dir)]
        )

        assert result.exit_code == 0, result.output
        assert "# GPT-4 Evaluation Results" in result.output
        assert "## Lowest-Scoring Responses" in result.output
        assert (output_dir / f"{run_id}_report.json").exists()
        assert (output_dir / f"{run_id}_report.md").exists()
        assert (output_dir / f"{run_id}_report.yaml").exists()

    def test_report_unknown_run(
        self, runner: CliRunner, questions_file: Path, db_path: Path
    ) -> None:
        run_mock(runner, questions_file, db_path)

        result = runner.invoke(app, ["report", "missing", "--db", str(db_path)])

        assert result.exit_code == 1
        assert "Evaluation run missing not found" in result.output

    def test_compare(self, runner: CliRunner, questions_file: Path, db_path: Path) -> None:
        first = run_mock(runner, questions_file, db_path)
        second = run_mock(runner, questions_file, db_path, "--runs", "1")

        result = runner.invoke(app, ["compare", first, second, "--db", str(db_path)])

        assert result.exit_code == 0, result.output
        assert "# GPT-4 vs GPT-4" in result.output
        assert "**Difference:** +0.00 points" in result.output
        assert "**Significant (alpha=0.05):** No" in result.output
