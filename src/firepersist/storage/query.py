from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import logging
from typing import Any

from firepersist.contracts.storage.document_backend import (
    MAX_IN_VALUES,
    DocumentBackend,
    Filter,
    OrderBy,
    StoredDocument,
)
from firepersist.core.errors import InvalidPaginationError
from firepersist.core.records import PaginationInfo
from firepersist.storage.batch import chunked

logger = logging.getLogger(__name__)


@dataclass
class QueryPage:
    docs: list[StoredDocument]
    pagination: PaginationInfo


def page_offset(page: int, per_page: int) -> int:
    """1-indexed page to offset; page <= 0 or per_page <= 0 are rejected."""
    if page < 1 or per_page < 1:
        raise InvalidPaginationError(page, per_page)
    return (page - 1) * per_page


class PaginatedQueryExecutor:
    """
    Offset pagination over a filtered, ordered query.

    Two round trips per page: an aggregate count over the filter set and a
    windowed fetch over the ordered query. The count is not derived from the
    page, so under concurrent writes `total` may briefly disagree with the
    page contents.

    Offset pagination costs grow with offset depth on most document stores;
    the page/per_page contract is kept regardless.
    """

    def __init__(self, backend: DocumentBackend, *, in_filter_limit: int = MAX_IN_VALUES) -> None:
        self._backend = backend
        self.in_filter_limit = in_filter_limit

    async def window(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: Sequence[OrderBy],
        *,
        offset: int,
        limit: int,
    ) -> tuple[list[StoredDocument], int]:
        if not order_by:
            raise ValueError("an ordering is required before applying an offset window")
        if offset < 0 or limit < 1:
            raise ValueError(f"invalid window offset={offset} limit={limit}")
        total = await self._backend.count(collection, filters)
        docs = await self._backend.query(collection, filters, order_by=order_by, offset=offset, limit=limit)
        logger.debug(
            "query %s filters=%d offset=%d limit=%d -> %d/%d",
            collection,
            len(filters),
            offset,
            limit,
            len(docs),
            total,
        )
        return docs, total

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: Sequence[OrderBy],
        *,
        page: int = 1,
        per_page: int = 20,
    ) -> QueryPage:
        offset = page_offset(page, per_page)
        docs, total = await self.window(collection, filters, order_by, offset=offset, limit=per_page)
        return QueryPage(
            docs=docs,
            pagination=PaginationInfo(
                page=page,
                per_page=per_page,
                total=total,
                has_more=total > offset + per_page,
            ),
        )

    async def fetch_in(
        self,
        collection: str,
        field: str,
        values: Sequence[Any],
        filters: Sequence[Filter] = (),
    ) -> list[StoredDocument]:
        """
        Match `field` against any of `values`, one query per chunk of at most
        `in_filter_limit` values. Results are concatenated chunk by chunk and
        are not globally ordered; callers re-sort when order matters.
        """
        out: list[StoredDocument] = []
        for chunk in chunked(list(values), self.in_filter_limit):
            out.extend(await self._backend.query(collection, [*filters, Filter(field, "in", list(chunk))]))
        return out

    async def fetch_ids(self, collection: str, doc_ids: Sequence[str]) -> list[StoredDocument]:
        """Direct lookups by document id, at most `in_filter_limit` ids per call; missing ids are skipped."""
        out: list[StoredDocument] = []
        for chunk in chunked(list(doc_ids), self.in_filter_limit):
            out.extend(await self._backend.get_many(collection, list(chunk)))
        return out
