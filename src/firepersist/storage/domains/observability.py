from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import fields, replace
import logging
from typing import Any

from firepersist.config.storage import StorageSettings
from firepersist.contracts.services.persistence import ObservabilityStorage
from firepersist.contracts.storage.document_backend import DocumentBackend, Filter
from firepersist.core.errors import RecordNotFoundError
from firepersist.core.records import (
    AISpan,
    AITrace,
    AITracesFilters,
    PaginatedResult,
    SortDirection,
    StoragePagination,
)
from firepersist.storage.codec import utc_now
from firepersist.storage.collection import CollectionSpec, repository_for

logger = logging.getLogger(__name__)

AI_SPANS = CollectionSpec(
    name="ai_spans",
    kind="AISpan",
    fields={
        "trace_id": "traceId",
        "span_id": "spanId",
        "parent_span_id": "parentSpanId",
        "name": "name",
        "span_type": "spanType",
        "entity_id": "entityId",
        "entity_type": "entityType",
        "started_at": "startedAt",
        "created_at": "createdAt",
    },
    order_field="started_at",
    order_direction=SortDirection.DESC,
    date_fields=("startedAt", "endedAt", "createdAt", "updatedAt"),
)

_IMMUTABLE = {"trace_id", "span_id"}
UPDATABLE_FIELDS = frozenset(f.name for f in fields(AISpan)) - _IMMUTABLE


def span_doc_id(trace_id: str, span_id: str) -> str:
    return f"{trace_id}_{span_id}"


def _span_to_doc(span: AISpan) -> dict[str, Any]:
    return {
        "id": span_doc_id(span.trace_id, span.span_id),
        "traceId": span.trace_id,
        "spanId": span.span_id,
        "parentSpanId": span.parent_span_id,
        "name": span.name,
        "spanType": span.span_type,
        "scope": span.scope,
        "entityId": span.entity_id,
        "entityType": span.entity_type,
        "attributes": span.attributes,
        "metadata": span.metadata,
        "links": span.links,
        "input": span.input,
        "output": span.output,
        "error": span.error,
        "isEvent": span.is_event,
        "startedAt": span.started_at,
        "endedAt": span.ended_at,
        "createdAt": span.created_at,
        "updatedAt": span.updated_at,
    }


def _doc_to_span(doc: dict[str, Any]) -> AISpan:
    return AISpan(
        trace_id=doc.get("traceId"),
        span_id=doc.get("spanId"),
        parent_span_id=doc.get("parentSpanId"),
        name=doc.get("name"),
        span_type=doc.get("spanType"),
        scope=doc.get("scope"),
        entity_id=doc.get("entityId"),
        entity_type=doc.get("entityType"),
        attributes=doc.get("attributes"),
        metadata=doc.get("metadata"),
        links=doc.get("links"),
        input=doc.get("input"),
        output=doc.get("output"),
        error=doc.get("error"),
        is_event=bool(doc.get("isEvent", False)),
        started_at=doc.get("startedAt"),
        ended_at=doc.get("endedAt"),
        created_at=doc.get("createdAt"),
        updated_at=doc.get("updatedAt"),
    )


def _started_key(span: AISpan) -> tuple[bool, float]:
    if span.started_at is None:
        return False, 0.0
    return True, span.started_at.timestamp()


class DocObservabilityStorage(ObservabilityStorage):
    """
    AI spans, one document per span keyed `{traceId}_{spanId}`.

    A trace is the set of spans sharing a traceId; root spans have a null
    parentSpanId. Span updates are read-modify-write without a transaction.
    """

    def __init__(self, backend: DocumentBackend, settings: StorageSettings | None = None) -> None:
        cfg = settings or StorageSettings()
        self._spans = repository_for(backend, AI_SPANS, cfg, name=cfg.collections.ai_spans)

    async def create_ai_span(self, span: AISpan) -> None:
        doc = _span_to_doc(replace(span, created_at=span.created_at or utc_now()))
        await self._spans.put(doc["id"], doc)

    async def update_ai_span(self, trace_id: str, span_id: str, updates: Mapping[str, Any]) -> None:
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"AISpan fields cannot be updated: {sorted(unknown)}")

        doc_id = span_doc_id(trace_id, span_id)
        existing = await self._spans.get(doc_id)
        if existing is None:
            raise RecordNotFoundError("AISpan", span_id, f"trace {trace_id}")

        merged = replace(_doc_to_span(existing), **dict(updates))
        await self._spans.put(doc_id, _span_to_doc(merged))

    async def get_ai_trace(self, trace_id: str) -> AITrace | None:
        # unordered fetch so spans without startedAt are kept; sorted locally
        docs = await self._spans.list(self._spans.where(trace_id=trace_id), order_by=[])
        if not docs:
            return None
        spans = sorted((_doc_to_span(d) for d in docs), key=_started_key)
        return AITrace(trace_id=trace_id, spans=spans)

    async def get_ai_traces_paginated(
        self,
        filters: AITracesFilters | None = None,
        pagination: StoragePagination | None = None,
    ) -> PaginatedResult[AISpan]:
        filters = filters or AITracesFilters()
        query = [
            # root spans only; where() skips None values, so build this one directly
            Filter(AI_SPANS.stored("parent_span_id"), "==", None),
            *self._spans.where(
                name=filters.name,
                span_type=filters.span_type,
                entity_id=filters.entity_id,
                entity_type=filters.entity_type,
            ),
            *self._spans.between("started_at", filters.started_after, filters.started_before),
        ]
        result = await self._spans.paginate(query, pagination=pagination)
        return PaginatedResult(items=[_doc_to_span(d) for d in result.items], pagination=result.pagination)

    async def batch_create_ai_spans(self, spans: Sequence[AISpan]) -> None:
        if not spans:
            return
        now = utc_now()
        docs = [_span_to_doc(replace(s, created_at=s.created_at or now)) for s in spans]
        await self._spans.batch_insert(docs)
        logger.debug("created %d spans in %s", len(docs), self._spans.name)

    async def batch_update_ai_spans(self, updates: Sequence[tuple[str, str, Mapping[str, Any]]]) -> None:
        # sequential: each update reads the span it patches
        for trace_id, span_id, patch in updates:
            await self.update_ai_span(trace_id, span_id, patch)
