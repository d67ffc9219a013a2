"""SQLite evaluation store.

Stores runs in a single local database file. The schema is created on
first connection; there are no migrations. Every public method is a
coroutine that runs its query in a worker thread via ``asyncio.to_thread``,
so the event loop never blocks on disk I/O.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from cadre_eval.questions.models import Variant
from cadre_eval.storage.base import (
    AggregatedResponseRecord,
    EvaluationRunRecord,
    ModelRecord,
    ModelScoreRecord,
    PillarScoreRecord,
    RunStatus,
    TrialRecord,
    new_id,
)

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("data/cadre.db")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS models (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        version TEXT NOT NULL,
        provider TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS evaluation_runs (
        id TEXT PRIMARY KEY,
        model_id TEXT NOT NULL REFERENCES models(id),
        benchmark_version TEXT NOT NULL,
        runs_per_question INTEGER NOT NULL,
        total_questions INTEGER NOT NULL,
        status TEXT NOT NULL,
        current_question INTEGER NOT NULL DEFAULT 0,
        current_question_id TEXT,
        current_variant TEXT,
        responses_completed INTEGER NOT NULL DEFAULT 0,
        average_score REAL,
        estimated_time_remaining REAL,
        started_at TEXT NOT NULL,
        completed_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS aggregated_responses (
        id TEXT PRIMARY KEY,
        run_id TEXT NOT NULL REFERENCES evaluation_runs(id),
        question_id TEXT NOT NULL,
        variant TEXT NOT NULL,
        run_count INTEGER NOT NULL,
        mean_score REAL NOT NULL,
        std_dev REAL NOT NULL,
        min_score REAL NOT NULL,
        max_score REAL NOT NULL,
        coefficient_of_variation REAL NOT NULL,
        rubric_max_score REAL NOT NULL,
        response_text TEXT NOT NULL,
        judge_reasoning TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE (run_id, question_id, variant)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS trials (
        id TEXT PRIMARY KEY,
        response_id TEXT NOT NULL REFERENCES aggregated_responses(id),
        run_number INTEGER NOT NULL,
        response_text TEXT NOT NULL,
        score REAL NOT NULL,
        max_score REAL NOT NULL,
        judge_reasoning TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pillar_scores (
        id TEXT PRIMARY KEY,
        run_id TEXT NOT NULL REFERENCES evaluation_runs(id),
        pillar_id INTEGER NOT NULL,
        score REAL NOT NULL,
        ci_lower REAL NOT NULL,
        ci_upper REAL NOT NULL,
        variance REAL NOT NULL,
        question_count INTEGER NOT NULL,
        confidence_level REAL NOT NULL,
        UNIQUE (run_id, pillar_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS model_scores (
        id TEXT PRIMARY KEY,
        run_id TEXT NOT NULL UNIQUE REFERENCES evaluation_runs(id),
        model_id TEXT NOT NULL REFERENCES models(id),
        overall_score REAL NOT NULL,
        overall_ci_lower REAL NOT NULL,
        overall_ci_upper REAL NOT NULL,
        weighted_score REAL NOT NULL,
        weighted_ci_lower REAL NOT NULL,
        weighted_ci_upper REAL NOT NULL,
        consistency_score REAL NOT NULL,
        variance REAL NOT NULL,
        total_responses INTEGER NOT NULL,
        confidence_level REAL NOT NULL,
        computed_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_runs_model ON evaluation_runs(model_id)",
    "CREATE INDEX IF NOT EXISTS idx_responses_run ON aggregated_responses(run_id)",
    "CREATE INDEX IF NOT EXISTS idx_trials_response ON trials(response_id)",
)


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_model(row: sqlite3.Row) -> ModelRecord:
    return ModelRecord(
        id=row["id"],
        name=row["name"],
        version=row["version"],
        provider=row["provider"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_run(row: sqlite3.Row) -> EvaluationRunRecord:
    return EvaluationRunRecord(
        id=row["id"],
        model_id=row["model_id"],
        benchmark_version=row["benchmark_version"],
        runs_per_question=row["runs_per_question"],
        total_questions=row["total_questions"],
        status=RunStatus(row["status"]),
        current_question=row["current_question"],
        current_question_id=row["current_question_id"],
        current_variant=Variant(row["current_variant"]) if row["current_variant"] else None,
        responses_completed=row["responses_completed"],
        average_score=row["average_score"],
        estimated_time_remaining=row["estimated_time_remaining"],
        started_at=datetime.fromisoformat(row["started_at"]),
        completed_at=_parse_ts(row["completed_at"]),
    )


def _row_to_response(row: sqlite3.Row) -> AggregatedResponseRecord:
    return AggregatedResponseRecord(
        id=row["id"],
        run_id=row["run_id"],
        question_id=row["question_id"],
        variant=Variant(row["variant"]),
        run_count=row["run_count"],
        mean_score=row["mean_score"],
        std_dev=row["std_dev"],
        min_score=row["min_score"],
        max_score=row["max_score"],
        coefficient_of_variation=row["coefficient_of_variation"],
        rubric_max_score=row["rubric_max_score"],
        response_text=row["response_text"],
        judge_reasoning=row["judge_reasoning"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class SQLiteStore:
    """EvaluationStore backed by a local SQLite database.

    Example:
        ```python
        store = SQLiteStore("data/cadre.db")
        runs = await store.list_runs()
        store.close()
        ```
    """

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH) -> None:
        """Initialize the store.

        Args:
            db_path: Database file; ":memory:" keeps everything in memory
        """
        self._db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        # One connection shared by worker threads, serialized here
        self._lock = threading.Lock()
        logger.debug(f"SQLiteStore using database: {self._db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the SQLite connection."""
        if self._conn is None:
            if self._db_path != ":memory:":
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._init_schema()
        return self._conn

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        conn = self._conn
        if conn is None:
            return
        cursor = conn.cursor()
        for statement in _SCHEMA:
            cursor.execute(statement)
        conn.commit()

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        with self._lock:
            conn = self._get_connection()
            conn.execute(sql, params)
            conn.commit()

    def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._get_connection().execute(sql, params).fetchall()

    def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        with self._lock:
            row: sqlite3.Row | None = self._get_connection().execute(sql, params).fetchone()
            return row

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # Models

    def _get_or_create_model(self, name: str, version: str, provider: str) -> ModelRecord:
        with self._lock:
            conn = self._get_connection()
            row = conn.execute("SELECT * FROM models WHERE name = ?", (name,)).fetchone()
            if row is not None:
                return _row_to_model(row)
            model = ModelRecord(id=new_id(), name=name, version=version, provider=provider)
            conn.execute(
                "INSERT INTO models (id, name, version, provider, created_at) VALUES (?, ?, ?, ?, ?)",
                (model.id, model.name, model.version, model.provider, _ts(model.created_at)),
            )
            conn.commit()
            logger.info(f"Created model record {model.name} ({model.id})")
            return model

    async def get_or_create_model(self, name: str, version: str, provider: str) -> ModelRecord:
        return await asyncio.to_thread(self._get_or_create_model, name, version, provider)

    async def get_model(self, model_id: str) -> ModelRecord | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM models WHERE id = ?", (model_id,)
        )
        return _row_to_model(row) if row is not None else None

    async def list_models(self) -> list[ModelRecord]:
        rows = await asyncio.to_thread(self._fetchall, "SELECT * FROM models ORDER BY name")
        return [_row_to_model(r) for r in rows]

    # Runs

    @staticmethod
    def _run_params(run: EvaluationRunRecord) -> tuple[Any, ...]:
        return (
            run.model_id,
            run.benchmark_version,
            run.runs_per_question,
            run.total_questions,
            run.status.value,
            run.current_question,
            run.current_question_id,
            run.current_variant.value if run.current_variant else None,
            run.responses_completed,
            run.average_score,
            run.estimated_time_remaining,
            _ts(run.started_at),
            _ts(run.completed_at),
        )

    async def create_run(self, run: EvaluationRunRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO evaluation_runs (
                model_id, benchmark_version, runs_per_question, total_questions, status,
                current_question, current_question_id, current_variant, responses_completed,
                average_score, estimated_time_remaining, started_at, completed_at, id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (*self._run_params(run), run.id),
        )

    async def get_run(self, run_id: str) -> EvaluationRunRecord | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM evaluation_runs WHERE id = ?", (run_id,)
        )
        return _row_to_run(row) if row is not None else None

    async def update_run(self, run: EvaluationRunRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE evaluation_runs SET
                model_id = ?, benchmark_version = ?, runs_per_question = ?, total_questions = ?,
                status = ?, current_question = ?, current_question_id = ?, current_variant = ?,
                responses_completed = ?, average_score = ?, estimated_time_remaining = ?,
                started_at = ?, completed_at = ?
            WHERE id = ?
            """,
            (*self._run_params(run), run.id),
        )

    async def list_runs(self, model_id: str | None = None) -> list[EvaluationRunRecord]:
        if model_id is None:
            rows = await asyncio.to_thread(
                self._fetchall, "SELECT * FROM evaluation_runs ORDER BY started_at DESC"
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT * FROM evaluation_runs WHERE model_id = ? ORDER BY started_at DESC",
                (model_id,),
            )
        return [_row_to_run(r) for r in rows]

    # Responses and trials

    def _insert_pair(
        self, record: AggregatedResponseRecord, trials: Sequence[TrialRecord]
    ) -> None:
        with self._lock:
            conn = self._get_connection()
            # One transaction: rolled back as a whole if any insert fails
            with conn:
                conn.execute(
                    """
                    INSERT INTO aggregated_responses (
                        id, run_id, question_id, variant, run_count, mean_score, std_dev,
                        min_score, max_score, coefficient_of_variation, rubric_max_score,
                        response_text, judge_reasoning, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.run_id,
                        record.question_id,
                        record.variant.value,
                        record.run_count,
                        record.mean_score,
                        record.std_dev,
                        record.min_score,
                        record.max_score,
                        record.coefficient_of_variation,
                        record.rubric_max_score,
                        record.response_text,
                        record.judge_reasoning,
                        _ts(record.created_at),
                    ),
                )
                conn.executemany(
                    """
                    INSERT INTO trials (
                        id, response_id, run_number, response_text, score, max_score,
                        judge_reasoning
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            t.id,
                            t.response_id,
                            t.run_number,
                            t.response_text,
                            t.score,
                            t.max_score,
                            t.judge_reasoning,
                        )
                        for t in trials
                    ],
                )

    async def create_aggregated_response(
        self, record: AggregatedResponseRecord, trials: Sequence[TrialRecord]
    ) -> None:
        if any(t.response_id != record.id for t in trials):
            raise ValueError(f"Trials do not belong to response {record.id}")
        await asyncio.to_thread(self._insert_pair, record, trials)

    async def list_aggregated_responses(self, run_id: str) -> list[AggregatedResponseRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM aggregated_responses WHERE run_id = ? ORDER BY rowid",
            (run_id,),
        )
        return [_row_to_response(r) for r in rows]

    async def list_trials(self, response_id: str) -> list[TrialRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM trials WHERE response_id = ? ORDER BY run_number",
            (response_id,),
        )
        return [TrialRecord(**dict(r)) for r in rows]

    # Aggregates, replaced when a run is finalized again

    async def save_pillar_score(self, record: PillarScoreRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT OR REPLACE INTO pillar_scores (
                id, run_id, pillar_id, score, ci_lower, ci_upper, variance,
                question_count, confidence_level
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.run_id,
                record.pillar_id,
                record.score,
                record.ci_lower,
                record.ci_upper,
                record.variance,
                record.question_count,
                record.confidence_level,
            ),
        )

    async def list_pillar_scores(self, run_id: str) -> list[PillarScoreRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM pillar_scores WHERE run_id = ? ORDER BY pillar_id",
            (run_id,),
        )
        return [PillarScoreRecord(**dict(r)) for r in rows]

    async def save_model_score(self, record: ModelScoreRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT OR REPLACE INTO model_scores (
                id, run_id, model_id, overall_score, overall_ci_lower, overall_ci_upper,
                weighted_score, weighted_ci_lower, weighted_ci_upper, consistency_score,
                variance, total_responses, confidence_level, computed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.run_id,
                record.model_id,
                record.overall_score,
                record.overall_ci_lower,
                record.overall_ci_upper,
                record.weighted_score,
                record.weighted_ci_lower,
                record.weighted_ci_upper,
                record.consistency_score,
                record.variance,
                record.total_responses,
                record.confidence_level,
                _ts(record.computed_at),
            ),
        )

    async def get_model_score(self, run_id: str) -> ModelScoreRecord | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM model_scores WHERE run_id = ?", (run_id,)
        )
        if row is None:
            return None
        data = dict(row)
        data["computed_at"] = datetime.fromisoformat(data["computed_at"])
        return ModelScoreRecord(**data)
