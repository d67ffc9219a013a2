"""Persistence for evaluation runs."""

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
)
from cadre_eval.storage.memory import InMemoryStore
from cadre_eval.storage.sqlite import DEFAULT_DB_PATH, SQLiteStore

__all__ = [
    "AggregatedResponseRecord",
    "DEFAULT_DB_PATH",
    "EvaluationRunRecord",
    "EvaluationStore",
    "InMemoryStore",
    "ModelRecord",
    "ModelScoreRecord",
    "PillarScoreRecord",
    "RunStatus",
    "SQLiteStore",
    "TrialRecord",
    "new_id",
]
