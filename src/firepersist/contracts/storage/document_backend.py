from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

"""
Document backend interface: the subset of a managed document database the
storage core consumes.

Typical implementations include:
- FirestoreDocumentBackend: Google Cloud Firestore via the async client
- InMemoryDocumentBackend: process-local store with the same query semantics, for tests/dev

All repositories share one backend handle; its lifecycle is owned by the host
process. The backend owns connection pooling and deadlines.
"""

FilterOp = Literal["==", ">=", "<=", "in"]
Direction = Literal["asc", "desc"]

# Backend limits (Firestore): ops per atomic batch, values per "in" filter.
MAX_BATCH_OPS = 500
MAX_IN_VALUES = 10


@dataclass(frozen=True)
class Filter:
    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: Direction = "asc"


@dataclass
class StoredDocument:
    id: str
    data: dict[str, Any]


@dataclass
class WriteOp:
    """
    One write inside an atomic batch.

    - set:    replace the document (or merge when merge=True)
    - update: patch existing fields; keys may be dotted paths into nested maps
    - delete: remove the document (no-op if absent)
    """

    kind: Literal["set", "update", "delete"]
    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)
    merge: bool = False


class DocumentBackend(Protocol):
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...
    async def get_many(self, collection: str, doc_ids: Sequence[str]) -> list[StoredDocument]: ...

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: Sequence[OrderBy] = (),
        offset: int = 0,
        limit: int | None = None,
    ) -> list[StoredDocument]: ...

    async def count(self, collection: str, filters: Sequence[Filter] = ()) -> int: ...

    def new_id(self, collection: str) -> str: ...

    async def set(
        self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False
    ) -> None: ...
    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...
    async def delete(self, collection: str, doc_id: str) -> None: ...

    async def commit(self, ops: Sequence[WriteOp]) -> None: ...

    async def close(self) -> None: ...
