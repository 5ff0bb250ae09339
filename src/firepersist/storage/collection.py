from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
import logging
from typing import Any

from firepersist.config.storage import StorageSettings
from firepersist.contracts.storage.document_backend import (
    MAX_BATCH_OPS,
    MAX_IN_VALUES,
    DocumentBackend,
    Filter,
    OrderBy,
)
from firepersist.core.errors import RecordNotFoundError
from firepersist.core.records import PaginatedResult, SortDirection, StoragePagination
from firepersist.services.logger.base import ContextAdapter, LogContext
from firepersist.storage.batch import ChunkedBatchWriter
from firepersist.storage.codec import decode_document, encode_document, stamp, utc_now
from firepersist.storage.query import PaginatedQueryExecutor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectionSpec:
    """
    Declarative binding of one record kind to a collection.

    - fields: attribute name -> stored field name, for everything callers may
      filter or order on.
    - order_field / order_direction: default ordering (attribute names).
    - date_fields: stored fields decoded to datetimes.
    """

    name: str
    kind: str
    fields: Mapping[str, str] = field(default_factory=dict)
    order_field: str = "created_at"
    order_direction: SortDirection = SortDirection.ASC
    date_fields: tuple[str, ...] = ("createdAt", "updatedAt")

    def stored(self, attr: str) -> str:
        try:
            return self.fields[attr]
        except KeyError:
            raise ValueError(f"{self.kind}: unsupported filter/order field {attr!r}") from None


def _direction(direction: SortDirection | str) -> str:
    if isinstance(direction, SortDirection):
        direction = direction.value
    return "desc" if str(direction).upper() == "DESC" else "asc"


class CollectionRepository:
    """
    Generic document access for one collection: get, list, paginate,
    insert / batch insert, partial update, delete. Record-specific behaviour
    lives in the domain modules; this class only knows documents.
    """

    def __init__(
        self,
        backend: DocumentBackend,
        spec: CollectionSpec,
        *,
        max_batch_size: int = MAX_BATCH_OPS,
        in_filter_limit: int = MAX_IN_VALUES,
        default_per_page: int = 20,
    ) -> None:
        self.backend = backend
        self.spec = spec
        self.default_per_page = default_per_page
        self.writer = ChunkedBatchWriter(backend, max_batch_size=max_batch_size)
        self.executor = PaginatedQueryExecutor(backend, in_filter_limit=in_filter_limit)
        self.log = ContextAdapter(logger, dict(LogContext(collection=spec.name).as_extra()))

    @property
    def name(self) -> str:
        return self.spec.name

    # --------- filter helpers ---------
    def where(self, **values: Any) -> list[Filter]:
        """Equality filters on attribute names; None values are skipped (optional filters)."""
        return [Filter(self.spec.stored(k), "==", v) for k, v in values.items() if v is not None]

    def between(self, attr: str, lower: Any = None, upper: Any = None) -> list[Filter]:
        stored = self.spec.stored(attr)
        out: list[Filter] = []
        if lower is not None:
            out.append(Filter(stored, ">=", lower))
        if upper is not None:
            out.append(Filter(stored, "<=", upper))
        return out

    def order(self, attr: str | None = None, direction: SortDirection | str | None = None) -> list[OrderBy]:
        attr = attr or self.spec.order_field
        return [OrderBy(self.spec.stored(attr), _direction(direction or self.spec.order_direction))]

    def page_of(self, page: int = 1, per_page: int | None = None) -> StoragePagination:
        return StoragePagination(page=page, per_page=self.default_per_page if per_page is None else per_page)

    def decode(self, data: Mapping[str, Any] | None) -> dict[str, Any]:
        return decode_document(data, kind=self.spec.kind, date_fields=self.spec.date_fields)

    # --------- reads ---------
    async def get(self, doc_id: str) -> dict[str, Any] | None:
        data = await self.backend.get(self.name, doc_id)
        if data is None:
            return None
        return self.decode(data)

    async def find_one(self, filters: Sequence[Filter]) -> dict[str, Any] | None:
        docs = await self.backend.query(self.name, filters, limit=1)
        if not docs:
            return None
        return self.decode(docs[0].data)

    async def list(
        self,
        filters: Sequence[Filter] = (),
        *,
        order_by: Sequence[OrderBy] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        order = self.order() if order_by is None else order_by
        docs = await self.backend.query(self.name, filters, order_by=order, limit=limit)
        return [self.decode(d.data) for d in docs]

    async def paginate(
        self,
        filters: Sequence[Filter] = (),
        *,
        pagination: StoragePagination | None = None,
        order_by: Sequence[OrderBy] | None = None,
    ) -> PaginatedResult[dict[str, Any]]:
        pagination = pagination or self.page_of()
        page = await self.executor.query(
            self.name,
            filters,
            self.order() if order_by is None else order_by,
            page=pagination.page,
            per_page=pagination.per_page,
        )
        return PaginatedResult(items=[self.decode(d.data) for d in page.docs], pagination=page.pagination)

    async def window(
        self,
        filters: Sequence[Filter] = (),
        *,
        offset: int = 0,
        limit: int = 50,
        order_by: Sequence[OrderBy] | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        docs, total = await self.executor.window(
            self.name, filters, self.order() if order_by is None else order_by, offset=offset, limit=limit
        )
        return [self.decode(d.data) for d in docs], total

    async def get_many(self, attr: str, values: Sequence[Any], filters: Sequence[Filter] = ()) -> list[dict[str, Any]]:
        if not values:
            return []
        docs = await self.executor.fetch_in(self.name, self.spec.stored(attr), values, filters)
        return [self.decode(d.data) for d in docs]

    async def get_by_ids(self, doc_ids: Sequence[str]) -> list[dict[str, Any]]:
        if not doc_ids:
            return []
        docs = await self.executor.fetch_ids(self.name, doc_ids)
        return [self.decode(d.data) for d in docs]

    async def exists(self, doc_id: str) -> bool:
        return await self.backend.get(self.name, doc_id) is not None

    # --------- writes ---------
    async def put(
        self, doc_id: str, doc: Mapping[str, Any], *, merge: bool = False, now: datetime | None = None
    ) -> dict[str, Any]:
        """Stamp + encode + write one document; returns what was written."""
        data = encode_document(stamp(dict(doc), now=now))
        await self.backend.set(self.name, doc_id, data, merge=merge)
        return data

    async def insert(self, doc: Mapping[str, Any], *, id_field: str = "id") -> str:
        doc_id = doc.get(id_field)
        if not isinstance(doc_id, str) or not doc_id:
            doc_id = self.backend.new_id(self.name)
        await self.put(doc_id, doc)
        return doc_id

    async def batch_insert(self, docs: Sequence[Mapping[str, Any]], *, id_field: str = "id") -> list[str]:
        now = utc_now()
        encoded = [encode_document(stamp(dict(d), now=now)) for d in docs]
        return await self.writer.upsert(self.name, encoded, id_field=id_field)

    async def update(self, doc_id: str, changes: Mapping[str, Any]) -> dict[str, Any]:
        """
        Partial update of an existing document; re-reads and returns it.
        Keys may be dotted paths into nested maps.
        """
        if not await self.exists(doc_id):
            raise RecordNotFoundError(self.spec.kind, doc_id)
        patch = encode_document(changes)
        patch["updatedAt"] = utc_now()
        await self.backend.update(self.name, doc_id, patch)
        return self.decode(await self.backend.get(self.name, doc_id))

    async def delete(self, doc_id: str) -> None:
        await self.backend.delete(self.name, doc_id)

    async def delete_many(self, doc_ids: Sequence[str]) -> int:
        return await self.writer.delete(self.name, list(doc_ids))

    async def delete_where(self, filters: Sequence[Filter]) -> int:
        """Resolve matching ids first, then delete them in windows; returns the count."""
        docs = await self.backend.query(self.name, filters)
        if docs:
            await self.writer.delete(self.name, [d.id for d in docs])
        return len(docs)

    async def clear(self) -> int:
        removed = 0
        while True:
            docs = await self.backend.query(self.name, limit=self.writer.max_batch_size)
            if not docs:
                break
            await self.writer.delete(self.name, [d.id for d in docs])
            removed += len(docs)
            if len(docs) < self.writer.max_batch_size:
                break
        self.log.info("cleared %s (%d documents)", self.name, removed, extra={"operation": "clear"})
        return removed


def repository_for(
    backend: DocumentBackend,
    spec: CollectionSpec,
    settings: StorageSettings | None = None,
    *,
    name: str | None = None,
) -> CollectionRepository:
    """Bind a spec to a backend with the configured collection name and backend limits."""
    cfg = settings or StorageSettings()
    if name:
        spec = replace(spec, name=name)
    return CollectionRepository(
        backend,
        spec,
        max_batch_size=cfg.max_batch_size,
        in_filter_limit=cfg.in_filter_limit,
        default_per_page=cfg.default_per_page,
    )
