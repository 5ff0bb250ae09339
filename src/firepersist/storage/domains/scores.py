from __future__ import annotations

from dataclasses import replace
from typing import Any

from firepersist.config.storage import StorageSettings
from firepersist.contracts.services.persistence import ScoresStorage
from firepersist.contracts.storage.document_backend import DocumentBackend, Filter
from firepersist.core.records import PaginatedResult, Score, SortDirection, StoragePagination
from firepersist.storage.codec import utc_now
from firepersist.storage.collection import CollectionSpec, repository_for

SCORES = CollectionSpec(
    name="scores",
    kind="Score",
    fields={
        "id": "id",
        "scorer_id": "scorerId",
        "entity_id": "entityId",
        "entity_type": "entityType",
        "source": "source",
        "run_id": "runId",
        "trace_id": "traceId",
        "span_id": "spanId",
        "created_at": "createdAt",
    },
    order_direction=SortDirection.DESC,
)


def _score_to_doc(score: Score) -> dict[str, Any]:
    return {
        "id": score.id,
        "scorerId": score.scorer_id,
        "entityId": score.entity_id,
        "entityType": score.entity_type,
        "source": score.source,
        "score": score.score,
        "runId": score.run_id,
        "traceId": score.trace_id,
        "spanId": score.span_id,
        "reason": score.reason,
        "metadata": score.metadata or {},
        "input": score.input,
        "output": score.output,
        "entity": score.entity or {},
        "scorer": score.scorer or {},
        "createdAt": score.created_at,
        "updatedAt": score.updated_at,
    }


def _doc_to_score(doc: dict[str, Any]) -> Score:
    return Score(
        id=doc.get("id"),
        scorer_id=doc.get("scorerId"),
        entity_id=doc.get("entityId"),
        entity_type=doc.get("entityType"),
        source=doc.get("source"),
        score=doc.get("score"),
        run_id=doc.get("runId"),
        trace_id=doc.get("traceId"),
        span_id=doc.get("spanId"),
        reason=doc.get("reason"),
        metadata=dict(doc.get("metadata") or {}),
        input=doc.get("input"),
        output=doc.get("output"),
        entity=dict(doc.get("entity") or {}),
        scorer=dict(doc.get("scorer") or {}),
        created_at=doc.get("createdAt"),
        updated_at=doc.get("updatedAt"),
    )


class DocScoresStorage(ScoresStorage):
    """Evaluation scores, newest first on every listing."""

    def __init__(self, backend: DocumentBackend, settings: StorageSettings | None = None) -> None:
        cfg = settings or StorageSettings()
        self._scores = repository_for(backend, SCORES, cfg, name=cfg.collections.scores)

    async def _page(self, filters: list[Filter], pagination: StoragePagination | None) -> PaginatedResult[Score]:
        result = await self._scores.paginate(filters, pagination=pagination)
        return PaginatedResult(items=[_doc_to_score(d) for d in result.items], pagination=result.pagination)

    async def get_score_by_id(self, score_id: str) -> Score | None:
        doc = await self._scores.get(score_id)
        return _doc_to_score(doc) if doc else None

    async def save_score(self, score: Score) -> Score:
        now = utc_now()
        score_id = self._scores.backend.new_id(self._scores.name)
        saved = replace(score, id=score_id, created_at=now, updated_at=now)
        written = await self._scores.put(score_id, _score_to_doc(saved), now=now)
        return _doc_to_score(self._scores.decode(written))

    async def get_scores_by_scorer_id(
        self,
        scorer_id: str,
        *,
        entity_id: str | None = None,
        entity_type: str | None = None,
        source: str | None = None,
        pagination: StoragePagination | None = None,
    ) -> PaginatedResult[Score]:
        filters = self._scores.where(
            scorer_id=scorer_id,
            entity_id=entity_id,
            entity_type=entity_type,
            source=source,
        )
        return await self._page(filters, pagination)

    async def get_scores_by_run_id(
        self, run_id: str, *, pagination: StoragePagination | None = None
    ) -> PaginatedResult[Score]:
        return await self._page(self._scores.where(run_id=run_id), pagination)

    async def get_scores_by_entity_id(
        self, entity_id: str, entity_type: str | None = None, *, pagination: StoragePagination | None = None
    ) -> PaginatedResult[Score]:
        return await self._page(self._scores.where(entity_id=entity_id, entity_type=entity_type), pagination)

    async def get_scores_by_span(
        self, trace_id: str, span_id: str, *, pagination: StoragePagination | None = None
    ) -> PaginatedResult[Score]:
        return await self._page(self._scores.where(trace_id=trace_id, span_id=span_id), pagination)
