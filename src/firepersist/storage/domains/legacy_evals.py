from __future__ import annotations

from dataclasses import replace
from typing import Any

from firepersist.config.storage import StorageSettings
from firepersist.contracts.services.persistence import LegacyEvalsStorage
from firepersist.contracts.storage.document_backend import DocumentBackend
from firepersist.core.records import EvalRow, PaginatedResult, SortDirection
from firepersist.storage.collection import CollectionSpec, repository_for

EVALS = CollectionSpec(
    name="evals",
    kind="Eval",
    fields={
        "agent_name": "agentName",
        "type": "type",
        "run_id": "runId",
        "created_at": "createdAt",
    },
    order_direction=SortDirection.DESC,
)


def _eval_to_doc(row: EvalRow) -> dict[str, Any]:
    return {
        "id": row.id,
        "agentName": row.agent_name,
        "input": row.input,
        "output": row.output,
        "result": row.result or {},
        "metricName": row.metric_name,
        "instructions": row.instructions,
        "runId": row.run_id,
        "globalRunId": row.global_run_id,
        "testInfo": row.test_info,
        "type": row.type,
        "createdAt": row.created_at,
    }


def _doc_to_eval(doc: dict[str, Any]) -> EvalRow:
    # older rows carry the metric outcome under "score"
    return EvalRow(
        id=doc.get("id"),
        agent_name=doc.get("agentName"),
        input=doc.get("input"),
        output=doc.get("output"),
        result=dict(doc.get("result") or doc.get("score") or {}),
        metric_name=doc.get("metricName") or "unknown",
        instructions=doc.get("instructions") or "",
        run_id=doc.get("runId") or "",
        global_run_id=doc.get("globalRunId") or "",
        test_info=doc.get("testInfo"),
        type=doc.get("type"),
        created_at=doc.get("createdAt"),
    )


class DocLegacyEvalsStorage(LegacyEvalsStorage):
    def __init__(self, backend: DocumentBackend, settings: StorageSettings | None = None) -> None:
        cfg = settings or StorageSettings()
        self._evals = repository_for(backend, EVALS, cfg, name=cfg.collections.evals)

    async def get_evals_by_agent_name(self, agent_name: str, type: str | None = None) -> list[EvalRow]:
        docs = await self._evals.list(self._evals.where(agent_name=agent_name, type=type))
        return [_doc_to_eval(d) for d in docs]

    async def get_evals(
        self,
        *,
        agent_name: str | None = None,
        type: str | None = None,
        page: int = 1,
        per_page: int | None = None,
    ) -> PaginatedResult[EvalRow]:
        result = await self._evals.paginate(
            self._evals.where(agent_name=agent_name, type=type),
            pagination=self._evals.page_of(page, per_page),
        )
        return PaginatedResult(items=[_doc_to_eval(d) for d in result.items], pagination=result.pagination)

    async def save_eval(self, row: EvalRow) -> EvalRow:
        eval_id = row.id or self._evals.backend.new_id(self._evals.name)
        written = await self._evals.put(eval_id, _eval_to_doc(replace(row, id=eval_id)))
        return _doc_to_eval(self._evals.decode(written))
