from __future__ import annotations

from datetime import datetime
from typing import Any

from firepersist.config.storage import StorageSettings
from firepersist.contracts.services.persistence import WorkflowsStorage
from firepersist.contracts.storage.document_backend import DocumentBackend
from firepersist.core.errors import RecordDataUndefinedError
from firepersist.core.records import SortDirection, WorkflowRun, WorkflowRuns, WorkflowRunState
from firepersist.storage.codec import drop_none, encode_document, utc_now
from firepersist.storage.collection import CollectionSpec, repository_for

SNAPSHOTS = CollectionSpec(
    name="workflow_snapshots",
    kind="WorkflowRun",
    fields={
        "workflow_name": "workflowName",
        "run_id": "runId",
        "resource_id": "resourceId",
        "created_at": "createdAt",
    },
    order_direction=SortDirection.DESC,
    date_fields=("timestamp", "createdAt", "updatedAt"),
)


def run_doc_id(workflow_name: str, run_id: str) -> str:
    return f"{workflow_name}_{run_id}"


def _state_to_doc(state: WorkflowRunState) -> dict[str, Any]:
    return {
        "runId": state.run_id,
        "status": state.status,
        "value": state.value or {},
        "context": state.context or {},
        "results": state.results or {},
        "activePaths": state.active_paths or [],
        "serializedStepGraph": state.serialized_step_graph or [],
        "suspendedPaths": state.suspended_paths or {},
        "waitingPaths": state.waiting_paths or {},
        "runtimeContext": state.runtime_context or {},
        "result": state.result,
        "error": state.error,
        "timestamp": state.timestamp or utc_now(),
    }


def _doc_to_state(doc: dict[str, Any] | None) -> WorkflowRunState:
    if not doc:
        raise RecordDataUndefinedError("Workflow run state")
    return WorkflowRunState(
        run_id=doc.get("runId"),
        status=doc.get("status"),
        value=dict(doc.get("value") or {}),
        context=dict(doc.get("context") or {}),
        results=dict(doc.get("results") or {}),
        active_paths=list(doc.get("activePaths") or []),
        serialized_step_graph=list(doc.get("serializedStepGraph") or []),
        suspended_paths=dict(doc.get("suspendedPaths") or {}),
        waiting_paths=dict(doc.get("waitingPaths") or {}),
        runtime_context=dict(doc.get("runtimeContext") or {}),
        result=doc.get("result"),
        error=doc.get("error"),
        timestamp=doc.get("timestamp"),
    )


def _doc_to_run(doc: dict[str, Any]) -> WorkflowRun:
    return WorkflowRun(
        workflow_name=doc.get("workflowName"),
        run_id=doc.get("runId"),
        resource_id=doc.get("resourceId"),
        snapshot=_doc_to_state(doc),
        created_at=doc.get("createdAt"),
        updated_at=doc.get("updatedAt"),
    )


class DocWorkflowsStorage(WorkflowsStorage):
    """
    One document per run, keyed `{workflowName}_{runId}`. Snapshot fields are
    stored at the top level next to `workflowName` / `resourceId`, so merge
    writes accumulate step results instead of replacing the map.
    """

    def __init__(self, backend: DocumentBackend, settings: StorageSettings | None = None) -> None:
        cfg = settings or StorageSettings()
        self._runs = repository_for(backend, SNAPSHOTS, cfg, name=cfg.collections.workflow_snapshots)

    async def _merge(self, doc_id: str, fields: dict[str, Any], *, existed: bool) -> None:
        now = utc_now()
        data = encode_document(fields)
        data["updatedAt"] = now
        if not existed:
            data["createdAt"] = now
        await self._runs.backend.set(self._runs.name, doc_id, data, merge=True)

    async def update_workflow_results(
        self,
        workflow_name: str,
        run_id: str,
        step_id: str,
        result: Any,
        runtime_context: dict[str, Any],
    ) -> dict[str, Any]:
        doc_id = run_doc_id(workflow_name, run_id)
        existing = await self._runs.get(doc_id)
        results = dict((existing or {}).get("results") or {})
        results[step_id] = result
        await self._merge(
            doc_id,
            {
                "workflowName": workflow_name,
                "runId": run_id,
                "results": results,
                "runtimeContext": runtime_context,
            },
            existed=existing is not None,
        )
        return results

    async def update_workflow_state(
        self,
        workflow_name: str,
        run_id: str,
        *,
        status: str,
        result: Any = None,
        error: str | None = None,
        suspended_paths: dict[str, list[int]] | None = None,
        waiting_paths: dict[str, list[int]] | None = None,
    ) -> WorkflowRunState:
        changes = drop_none(
            {
                "status": status,
                "result": result,
                "error": error,
                "suspendedPaths": suspended_paths,
                "waitingPaths": waiting_paths,
            }
        )
        doc = await self._runs.update(run_doc_id(workflow_name, run_id), changes)
        return _doc_to_state(doc)

    async def persist_workflow_snapshot(
        self,
        workflow_name: str,
        run_id: str,
        snapshot: WorkflowRunState,
        *,
        resource_id: str | None = None,
    ) -> None:
        doc_id = run_doc_id(workflow_name, run_id)
        fields = {"workflowName": workflow_name, "resourceId": resource_id, **_state_to_doc(snapshot)}
        fields["runId"] = run_id
        await self._merge(doc_id, fields, existed=await self._runs.exists(doc_id))

    async def load_workflow_snapshot(self, workflow_name: str, run_id: str) -> WorkflowRunState | None:
        doc = await self._runs.get(run_doc_id(workflow_name, run_id))
        return _doc_to_state(doc) if doc else None

    async def get_workflow_runs(
        self,
        *,
        workflow_name: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
        resource_id: str | None = None,
    ) -> WorkflowRuns:
        filters = [
            *self._runs.where(workflow_name=workflow_name, resource_id=resource_id),
            *self._runs.between("created_at", from_date, to_date),
        ]
        docs, total = await self._runs.window(filters, offset=offset, limit=limit)
        return WorkflowRuns(runs=[_doc_to_run(d) for d in docs], total=total)

    async def get_workflow_run_by_id(self, run_id: str, workflow_name: str | None = None) -> WorkflowRun | None:
        if workflow_name:
            doc = await self._runs.get(run_doc_id(workflow_name, run_id))
        else:
            doc = await self._runs.find_one(self._runs.where(run_id=run_id))
        return _doc_to_run(doc) if doc else None
