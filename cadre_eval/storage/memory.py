"""In-memory evaluation store for tests and mock runs."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

from cadre_eval.storage.base import (
    AggregatedResponseRecord,
    EvaluationRunRecord,
    ModelRecord,
    ModelScoreRecord,
    PillarScoreRecord,
    TrialRecord,
    new_id,
)


class InMemoryStore:
    """EvaluationStore backed by dictionaries.

    Run records are copied on the way in and out, so a caller mutating its
    own EvaluationRunRecord changes nothing until ``update_run`` is called.

    Example:
        ```python
        store = InMemoryStore()
        model = await store.get_or_create_model("GPT-4", "gpt-4", "openrouter")
        ```
    """

    def __init__(self) -> None:
        self.models: dict[str, ModelRecord] = {}
        self.runs: dict[str, EvaluationRunRecord] = {}
        self.responses: dict[str, AggregatedResponseRecord] = {}
        self.trials: dict[str, list[TrialRecord]] = {}
        self.pillar_scores: dict[str, list[PillarScoreRecord]] = {}
        self.model_scores: dict[str, ModelScoreRecord] = {}
        self.update_count = 0

    async def get_or_create_model(self, name: str, version: str, provider: str) -> ModelRecord:
        for model in self.models.values():
            if model.name == name:
                return model
        model = ModelRecord(id=new_id(), name=name, version=version, provider=provider)
        self.models[model.id] = model
        return model

    async def get_model(self, model_id: str) -> ModelRecord | None:
        return self.models.get(model_id)

    async def list_models(self) -> list[ModelRecord]:
        return sorted(self.models.values(), key=lambda m: m.name)

    async def create_run(self, run: EvaluationRunRecord) -> None:
        if run.id in self.runs:
            raise ValueError(f"Run {run.id} already exists")
        self.runs[run.id] = replace(run)

    async def get_run(self, run_id: str) -> EvaluationRunRecord | None:
        run = self.runs.get(run_id)
        return replace(run) if run is not None else None

    async def update_run(self, run: EvaluationRunRecord) -> None:
        if run.id not in self.runs:
            raise KeyError(run.id)
        self.runs[run.id] = replace(run)
        self.update_count += 1

    async def list_runs(self, model_id: str | None = None) -> list[EvaluationRunRecord]:
        runs = [
            replace(r) for r in self.runs.values() if model_id is None or r.model_id == model_id
        ]
        return sorted(runs, key=lambda r: r.started_at, reverse=True)

    async def create_aggregated_response(
        self, record: AggregatedResponseRecord, trials: Sequence[TrialRecord]
    ) -> None:
        if any(t.response_id != record.id for t in trials):
            raise ValueError(f"Trials do not belong to response {record.id}")
        self.responses[record.id] = record
        self.trials[record.id] = list(trials)

    async def list_aggregated_responses(self, run_id: str) -> list[AggregatedResponseRecord]:
        return [r for r in self.responses.values() if r.run_id == run_id]

    async def list_trials(self, response_id: str) -> list[TrialRecord]:
        return sorted(self.trials.get(response_id, []), key=lambda t: t.run_number)

    async def save_pillar_score(self, record: PillarScoreRecord) -> None:
        scores = [
            p for p in self.pillar_scores.get(record.run_id, []) if p.pillar_id != record.pillar_id
        ]
        scores.append(record)
        self.pillar_scores[record.run_id] = scores

    async def list_pillar_scores(self, run_id: str) -> list[PillarScoreRecord]:
        return sorted(self.pillar_scores.get(run_id, []), key=lambda p: p.pillar_id)

    async def save_model_score(self, record: ModelScoreRecord) -> None:
        self.model_scores[record.run_id] = record

    async def get_model_score(self, run_id: str) -> ModelScoreRecord | None:
        return self.model_scores.get(run_id)
