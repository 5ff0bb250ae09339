from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
import logging
from typing import Any

from firepersist.config.storage import StorageSettings
from firepersist.contracts.services.persistence import TracesStorage
from firepersist.contracts.storage.document_backend import DocumentBackend, Filter
from firepersist.core.records import PaginatedResult, SortDirection, Trace
from firepersist.storage.codec import utc_now
from firepersist.storage.collection import CollectionSpec, repository_for

logger = logging.getLogger(__name__)

TRACES = CollectionSpec(
    name="traces",
    kind="Trace",
    fields={
        "id": "id",
        "name": "name",
        "scope": "scope",
        "trace_id": "traceId",
        "timestamp": "timestamp",
        "created_at": "createdAt",
    },
    order_field="timestamp",
    order_direction=SortDirection.DESC,
    date_fields=("timestamp", "startTime", "endTime", "createdAt", "updatedAt"),
)


def _doc_to_trace(doc: dict[str, Any]) -> Trace:
    return Trace(
        id=doc.get("id"),
        name=doc.get("name"),
        trace_id=doc.get("traceId"),
        parent_span_id=doc.get("parentSpanId"),
        scope=doc.get("scope"),
        kind=doc.get("kind"),
        status=doc.get("status"),
        attributes=doc.get("attributes"),
        links=doc.get("links"),
        events=list(doc.get("events") or []),
        other=doc.get("other") if doc.get("other") is not None else [],
        start_time=doc.get("startTime"),
        end_time=doc.get("endTime"),
        timestamp=doc.get("timestamp"),
        created_at=doc.get("createdAt"),
    )


class DocTracesStorage(TracesStorage):
    """
    Legacy telemetry traces. Records arrive as raw mappings from the exporter
    (camelCase keys) and are stored as given, plus `timestamp` when absent.
    """

    def __init__(self, backend: DocumentBackend, settings: StorageSettings | None = None) -> None:
        cfg = settings or StorageSettings()
        self._traces = repository_for(backend, TRACES, cfg, name=cfg.collections.traces)

    def _filters(
        self,
        name: str | None,
        scope: str | None,
        from_date: datetime | None,
        to_date: datetime | None,
    ) -> list[Filter]:
        return [
            *self._traces.where(name=name, scope=scope),
            *self._traces.between("timestamp", from_date, to_date),
        ]

    async def get_traces(
        self,
        *,
        name: str | None = None,
        scope: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> list[Trace]:
        docs = await self._traces.list(self._filters(name, scope, from_date, to_date))
        return [_doc_to_trace(d) for d in docs]

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
        result = await self._traces.paginate(
            self._filters(name, scope, from_date, to_date),
            pagination=self._traces.page_of(page, per_page),
        )
        return PaginatedResult(items=[_doc_to_trace(d) for d in result.items], pagination=result.pagination)

    async def batch_trace_insert(self, records: Sequence[Mapping[str, Any]]) -> None:
        if not records:
            return
        now = utc_now()
        docs = []
        for record in records:
            doc = dict(record)
            if not isinstance(doc.get("id"), str) or not doc["id"]:
                doc["id"] = self._traces.backend.new_id(self._traces.name)
            if doc.get("timestamp") is None:
                doc["timestamp"] = now
            docs.append(doc)
        ids = await self._traces.batch_insert(docs)
        logger.debug("inserted %d traces into %s", len(ids), self._traces.name)
