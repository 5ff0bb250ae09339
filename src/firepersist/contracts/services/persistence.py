from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Protocol

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

# Host-facing persistence interface, one protocol per domain.
# Implementations can be backed by any document store.


class MemoryStorage(Protocol):
    async def get_thread_by_id(self, thread_id: str) -> Thread | None: ...
    async def get_threads_by_resource_id(
        self,
        resource_id: str,
        *,
        order_by: str = "created_at",
        sort_direction: SortDirection = SortDirection.ASC,
    ) -> list[Thread]: ...
    async def get_threads_by_resource_id_paginated(
        self,
        resource_id: str,
        *,
        page: int = 1,
        per_page: int | None = None,
        order_by: str = "created_at",
        sort_direction: SortDirection = SortDirection.ASC,
    ) -> PaginatedResult[Thread]: ...
    async def save_thread(self, thread: Thread) -> Thread: ...
    async def update_thread(self, thread_id: str, *, title: str, metadata: dict[str, Any]) -> Thread: ...
    async def delete_thread(self, thread_id: str) -> None: ...

    async def get_messages(
        self, thread_id: str, *, select_by: SelectBy | None = None, format: MessageFormat = "v2"
    ) -> list[Message]: ...
    async def get_messages_by_id(self, message_ids: Sequence[str], *, format: MessageFormat = "v2") -> list[Message]: ...
    async def get_messages_paginated(
        self, thread_id: str, *, select_by: SelectBy | None = None, format: MessageFormat = "v2"
    ) -> PaginatedResult[Message]: ...
    async def save_messages(self, messages: Sequence[Message], *, format: MessageFormat | None = None) -> list[Message]: ...
    async def update_messages(self, updates: Sequence[Mapping[str, Any]]) -> list[Message]: ...
    async def delete_messages(self, message_ids: Sequence[str]) -> None: ...

    async def get_resource_by_id(self, resource_id: str) -> Resource | None: ...
    async def save_resource(self, resource: Resource) -> Resource: ...
    async def update_resource(
        self,
        resource_id: str,
        *,
        working_memory: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Resource: ...


class ScoresStorage(Protocol):
    async def get_score_by_id(self, score_id: str) -> Score | None: ...
    async def save_score(self, score: Score) -> Score: ...
    async def get_scores_by_scorer_id(
        self,
        scorer_id: str,
        *,
        entity_id: str | None = None,
        entity_type: str | None = None,
        source: str | None = None,
        pagination: StoragePagination | None = None,
    ) -> PaginatedResult[Score]: ...
    async def get_scores_by_run_id(
        self, run_id: str, *, pagination: StoragePagination | None = None
    ) -> PaginatedResult[Score]: ...
    async def get_scores_by_entity_id(
        self, entity_id: str, entity_type: str | None = None, *, pagination: StoragePagination | None = None
    ) -> PaginatedResult[Score]: ...
    async def get_scores_by_span(
        self, trace_id: str, span_id: str, *, pagination: StoragePagination | None = None
    ) -> PaginatedResult[Score]: ...


class TracesStorage(Protocol):
    async def get_traces(
        self,
        *,
        name: str | None = None,
        scope: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> list[Trace]: ...
    async def get_traces_paginated(
        self,
        *,
        page: int = 1,
        per_page: int | None = None,
        name: str | None = None,
        scope: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> PaginatedResult[Trace]: ...
    async def batch_trace_insert(self, records: Sequence[Mapping[str, Any]]) -> None: ...


class WorkflowsStorage(Protocol):
    async def update_workflow_results(
        self,
        workflow_name: str,
        run_id: str,
        step_id: str,
        result: Any,
        runtime_context: dict[str, Any],
    ) -> dict[str, Any]: ...
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
    ) -> WorkflowRunState: ...
    async def persist_workflow_snapshot(
        self,
        workflow_name: str,
        run_id: str,
        snapshot: WorkflowRunState,
        *,
        resource_id: str | None = None,
    ) -> None: ...
    async def load_workflow_snapshot(self, workflow_name: str, run_id: str) -> WorkflowRunState | None: ...
    async def get_workflow_runs(
        self,
        *,
        workflow_name: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
        resource_id: str | None = None,
    ) -> WorkflowRuns: ...
    async def get_workflow_run_by_id(self, run_id: str, workflow_name: str | None = None) -> WorkflowRun | None: ...


class LegacyEvalsStorage(Protocol):
    async def get_evals_by_agent_name(self, agent_name: str, type: str | None = None) -> list[EvalRow]: ...
    async def get_evals(
        self,
        *,
        agent_name: str | None = None,
        type: str | None = None,
        page: int = 1,
        per_page: int | None = None,
    ) -> PaginatedResult[EvalRow]: ...
    async def save_eval(self, row: EvalRow) -> EvalRow: ...


class ObservabilityStorage(Protocol):
    async def create_ai_span(self, span: AISpan) -> None: ...
    async def update_ai_span(self, trace_id: str, span_id: str, updates: Mapping[str, Any]) -> None: ...
    async def get_ai_trace(self, trace_id: str) -> AITrace | None: ...
    async def get_ai_traces_paginated(
        self,
        filters: AITracesFilters | None = None,
        pagination: StoragePagination | None = None,
    ) -> PaginatedResult[AISpan]: ...
    async def batch_create_ai_spans(self, spans: Sequence[AISpan]) -> None: ...
    async def batch_update_ai_spans(self, updates: Sequence[tuple[str, str, Mapping[str, Any]]]) -> None: ...


class StoreOperations(Protocol):
    async def create_table(self, table_name: str, schema: Mapping[str, Any]) -> None: ...
    async def alter_table(self, table_name: str, schema: Mapping[str, Any], if_not_exists: Sequence[str]) -> None: ...
    async def has_column(self, table_name: str, column: str) -> bool: ...
    async def clear_table(self, table_name: str) -> None: ...
    async def drop_table(self, table_name: str) -> None: ...
    async def insert(self, table_name: str, record: Mapping[str, Any]) -> None: ...
    async def batch_insert(self, table_name: str, records: Sequence[Mapping[str, Any]]) -> None: ...
    async def load(self, table_name: str, keys: Mapping[str, Any]) -> dict[str, Any] | None: ...
