from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
import logging
from typing import Any

from firepersist.config.storage import StorageSettings
from firepersist.contracts.storage.document_backend import DocumentBackend
from firepersist.core.records import (
    AISpan,
    AITrace,
    AITracesFilters,
    EvalRow,
    Message,
    MessageFormat,
    PaginatedResult,
    Resource,
    Score,
    SelectBy,
    SortDirection,
    StoragePagination,
    Thread,
    Trace,
    WorkflowRun,
    WorkflowRuns,
    WorkflowRunState,
)
from firepersist.services.logger.base import LoggerService
from firepersist.storage.domains.legacy_evals import DocLegacyEvalsStorage
from firepersist.storage.domains.memory import DocMemoryStorage
from firepersist.storage.domains.observability import DocObservabilityStorage
from firepersist.storage.domains.operations import DocStoreOperations
from firepersist.storage.domains.scores import DocScoresStorage
from firepersist.storage.domains.traces import DocTracesStorage
from firepersist.storage.domains.workflows import DocWorkflowsStorage

logger = logging.getLogger(__name__)


class DocumentStore:
    """
    Host-facing persistence facade over one document backend.

    Each domain is reachable as an attribute (`store.memory`, `store.scores`,
    ...) and through the flat methods below, which only delegate. All domains
    share the injected backend handle; `close()` releases it, and shuts down
    the logger service when the store was given one.
    """

    def __init__(
        self,
        backend: DocumentBackend,
        settings: StorageSettings | None = None,
        *,
        logger_service: LoggerService | None = None,
    ) -> None:
        self.backend = backend
        self.settings = settings or StorageSettings()
        self.logger_service = logger_service
        self.log = logger_service.for_storage() if logger_service is not None else logger

        self.operations = DocStoreOperations(backend, self.settings)
        self.memory = DocMemoryStorage(backend, self.settings)
        self.scores = DocScoresStorage(backend, self.settings)
        self.traces = DocTracesStorage(backend, self.settings)
        self.workflows = DocWorkflowsStorage(backend, self.settings)
        self.legacy_evals = DocLegacyEvalsStorage(backend, self.settings)
        self.observability = DocObservabilityStorage(backend, self.settings)

    @property
    def supports(self) -> dict[str, bool]:
        return {
            "select_by_include_resource_scope": True,
            "resource_working_memory": True,
            "has_column": True,
            "create_table": True,
            "delete_messages": True,
            "ai_tracing": True,
            "get_scores_by_span": True,
        }

    async def close(self) -> None:
        await self.backend.close()
        self.log.info("document store closed")
        if self.logger_service is not None:
            self.logger_service.shutdown()

    # --------- operations ---------
    async def create_table(self, table_name: str, schema: Mapping[str, Any]) -> None:
        await self.operations.create_table(table_name, schema)

    async def alter_table(self, table_name: str, schema: Mapping[str, Any], if_not_exists: Sequence[str]) -> None:
        await self.operations.alter_table(table_name, schema, if_not_exists)

    async def has_column(self, table_name: str, column: str) -> bool:
        return await self.operations.has_column(table_name, column)

    async def clear_table(self, table_name: str) -> None:
        await self.operations.clear_table(table_name)

    async def drop_table(self, table_name: str) -> None:
        await self.operations.drop_table(table_name)

    async def insert(self, table_name: str, record: Mapping[str, Any]) -> None:
        await self.operations.insert(table_name, record)

    async def batch_insert(self, table_name: str, records: Sequence[Mapping[str, Any]]) -> None:
        await self.operations.batch_insert(table_name, records)

    async def load(self, table_name: str, keys: Mapping[str, Any]) -> dict[str, Any] | None:
        return await self.operations.load(table_name, keys)

    # --------- memory ---------
    async def get_thread_by_id(self, thread_id: str) -> Thread | None:
        return await self.memory.get_thread_by_id(thread_id)

    async def get_threads_by_resource_id(
        self,
        resource_id: str,
        *,
        order_by: str = "created_at",
        sort_direction: SortDirection = SortDirection.ASC,
    ) -> list[Thread]:
        return await self.memory.get_threads_by_resource_id(
            resource_id, order_by=order_by, sort_direction=sort_direction
        )

    async def get_threads_by_resource_id_paginated(
        self,
        resource_id: str,
        *,
        page: int = 1,
        per_page: int | None = None,
        order_by: str = "created_at",
        sort_direction: SortDirection = SortDirection.ASC,
    ) -> PaginatedResult[Thread]:
        return await self.memory.get_threads_by_resource_id_paginated(
            resource_id, page=page, per_page=per_page, order_by=order_by, sort_direction=sort_direction
        )

    async def save_thread(self, thread: Thread) -> Thread:
        return await self.memory.save_thread(thread)

    async def update_thread(self, thread_id: str, *, title: str, metadata: dict[str, Any]) -> Thread:
        return await self.memory.update_thread(thread_id, title=title, metadata=metadata)

    async def delete_thread(self, thread_id: str) -> None:
        await self.memory.delete_thread(thread_id)

    async def get_messages(
        self, thread_id: str, *, select_by: SelectBy | None = None, format: MessageFormat = "v2"
    ) -> list[Message]:
        return await self.memory.get_messages(thread_id, select_by=select_by, format=format)

    async def get_messages_by_id(self, message_ids: Sequence[str], *, format: MessageFormat = "v2") -> list[Message]:
        return await self.memory.get_messages_by_id(message_ids, format=format)

    async def get_messages_paginated(
        self, thread_id: str, *, select_by: SelectBy | None = None, format: MessageFormat = "v2"
    ) -> PaginatedResult[Message]:
        return await self.memory.get_messages_paginated(thread_id, select_by=select_by, format=format)

    async def save_messages(self, messages: Sequence[Message], *, format: MessageFormat | None = None) -> list[Message]:
        return await self.memory.save_messages(messages, format=format)

    async def update_messages(self, updates: Sequence[Mapping[str, Any]]) -> list[Message]:
        return await self.memory.update_messages(updates)

    async def delete_messages(self, message_ids: Sequence[str]) -> None:
        await self.memory.delete_messages(message_ids)

    async def get_resource_by_id(self, resource_id: str) -> Resource | None:
        return await self.memory.get_resource_by_id(resource_id)

    async def save_resource(self, resource: Resource) -> Resource:
        return await self.memory.save_resource(resource)

    async def update_resource(
        self,
        resource_id: str,
        *,
        working_memory: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Resource:
        return await self.memory.update_resource(resource_id, working_memory=working_memory, metadata=metadata)

    # --------- legacy evals ---------
    async def get_evals_by_agent_name(self, agent_name: str, type: str | None = None) -> list[EvalRow]:
        return await self.legacy_evals.get_evals_by_agent_name(agent_name, type)

    async def get_evals(
        self,
        *,
        agent_name: str | None = None,
        type: str | None = None,
        page: int = 1,
        per_page: int | None = None,
    ) -> PaginatedResult[EvalRow]:
        return await self.legacy_evals.get_evals(agent_name=agent_name, type=type, page=page, per_page=per_page)

    async def save_eval(self, row: EvalRow) -> EvalRow:
        return await self.legacy_evals.save_eval(row)

    # --------- scores ---------
    async def get_score_by_id(self, score_id: str) -> Score | None:
        return await self.scores.get_score_by_id(score_id)

    async def save_score(self, score: Score) -> Score:
        return await self.scores.save_score(score)

    async def get_scores_by_scorer_id(
        self,
        scorer_id: str,
        *,
        entity_id: str | None = None,
        entity_type: str | None = None,
        source: str | None = None,
        pagination: StoragePagination | None = None,
    ) -> PaginatedResult[Score]:
        return await self.scores.get_scores_by_scorer_id(
            scorer_id, entity_id=entity_id, entity_type=entity_type, source=source, pagination=pagination
        )

    async def get_scores_by_run_id(
        self, run_id: str, *, pagination: StoragePagination | None = None
    ) -> PaginatedResult[Score]:
        return await self.scores.get_scores_by_run_id(run_id, pagination=pagination)

    async def get_scores_by_entity_id(
        self, entity_id: str, entity_type: str | None = None, *, pagination: StoragePagination | None = None
    ) -> PaginatedResult[Score]:
        return await self.scores.get_scores_by_entity_id(entity_id, entity_type, pagination=pagination)

    async def get_scores_by_span(
        self, trace_id: str, span_id: str, *, pagination: StoragePagination | None = None
    ) -> PaginatedResult[Score]:
        return await self.scores.get_scores_by_span(trace_id, span_id, pagination=pagination)

    # --------- traces ---------
    async def get_traces(
        self,
        *,
        name: str | None = None,
        scope: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> list[Trace]:
        return await self.traces.get_traces(name=name, scope=scope, from_date=from_date, to_date=to_date)

    async def get_traces_paginated(
        self,
        *,
        page: int = 1,
        per_page: int | None = None,
        name: str | None = None,
        scope: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> PaginatedResult[Trace]:
        return await self.traces.get_traces_paginated(
            page=page, per_page=per_page, name=name, scope=scope, from_date=from_date, to_date=to_date
        )

    async def batch_trace_insert(self, records: Sequence[Mapping[str, Any]]) -> None:
        await self.traces.batch_trace_insert(records)

    # --------- workflows ---------
    async def update_workflow_results(
        self,
        workflow_name: str,
        run_id: str,
        step_id: str,
        result: Any,
        runtime_context: dict[str, Any],
    ) -> dict[str, Any]:
        return await self.workflows.update_workflow_results(workflow_name, run_id, step_id, result, runtime_context)

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
        return await self.workflows.update_workflow_state(
            workflow_name,
            run_id,
            status=status,
            result=result,
            error=error,
            suspended_paths=suspended_paths,
            waiting_paths=waiting_paths,
        )

    async def persist_workflow_snapshot(
        self,
        workflow_name: str,
        run_id: str,
        snapshot: WorkflowRunState,
        *,
        resource_id: str | None = None,
    ) -> None:
        await self.workflows.persist_workflow_snapshot(workflow_name, run_id, snapshot, resource_id=resource_id)

    async def load_workflow_snapshot(self, workflow_name: str, run_id: str) -> WorkflowRunState | None:
        return await self.workflows.load_workflow_snapshot(workflow_name, run_id)

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
        return await self.workflows.get_workflow_runs(
            workflow_name=workflow_name,
            from_date=from_date,
            to_date=to_date,
            limit=limit,
            offset=offset,
            resource_id=resource_id,
        )

    async def get_workflow_run_by_id(self, run_id: str, workflow_name: str | None = None) -> WorkflowRun | None:
        return await self.workflows.get_workflow_run_by_id(run_id, workflow_name)

    # --------- observability ---------
    async def create_ai_span(self, span: AISpan) -> None:
        await self.observability.create_ai_span(span)

    async def update_ai_span(self, trace_id: str, span_id: str, updates: Mapping[str, Any]) -> None:
        await self.observability.update_ai_span(trace_id, span_id, updates)

    async def get_ai_trace(self, trace_id: str) -> AITrace | None:
        return await self.observability.get_ai_trace(trace_id)

    async def get_ai_traces_paginated(
        self,
        filters: AITracesFilters | None = None,
        pagination: StoragePagination | None = None,
    ) -> PaginatedResult[AISpan]:
        return await self.observability.get_ai_traces_paginated(filters, pagination)

    async def batch_create_ai_spans(self, spans: Sequence[AISpan]) -> None:
        await self.observability.batch_create_ai_spans(spans)

    async def batch_update_ai_spans(self, updates: Sequence[tuple[str, str, Mapping[str, Any]]]) -> None:
        await self.observability.batch_update_ai_spans(updates)
