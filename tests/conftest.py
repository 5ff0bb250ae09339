from collections.abc import Sequence
from typing import Any

import pytest

from firepersist.config.storage import StorageSettings
from firepersist.contracts.storage.document_backend import Filter, OrderBy, StoredDocument, WriteOp
from firepersist.storage.backends.inmem_backend import InMemoryDocumentBackend
from firepersist.storage.store import DocumentStore


class RecordingBackend(InMemoryDocumentBackend):
    """
    In-memory backend that records commit sizes, query calls and id lookups, and can be
    told to fail a given commit (1-based) to exercise partial batch failure.
    """

    def __init__(self, *, fail_on_commit: int | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.commits: list[int] = []
        self.queries: list[tuple[str, list[Filter]]] = []
        self.lookups: list[tuple[str, list[str]]] = []
        self.counts = 0
        self.fail_on_commit = fail_on_commit

    async def commit(self, ops: Sequence[WriteOp]) -> None:
        attempt = len(self.commits) + 1
        if self.fail_on_commit is not None and attempt == self.fail_on_commit:
            self.fail_on_commit = None
            raise RuntimeError("deadline exceeded")
        await super().commit(ops)
        self.commits.append(len(ops))

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: Sequence[OrderBy] = (),
        offset: int = 0,
        limit: int | None = None,
    ) -> list[StoredDocument]:
        self.queries.append((collection, list(filters)))
        return await super().query(collection, filters, order_by=order_by, offset=offset, limit=limit)

    async def get_many(self, collection: str, doc_ids: Sequence[str]) -> list[StoredDocument]:
        self.lookups.append((collection, list(doc_ids)))
        return await super().get_many(collection, doc_ids)

    async def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        self.counts += 1
        return await super().count(collection, filters)

    def reset(self) -> None:
        self.commits.clear()
        self.queries.clear()
        self.lookups.clear()
        self.counts = 0


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def settings() -> StorageSettings:
    return StorageSettings(backend="memory")


@pytest.fixture
def store(backend, settings) -> DocumentStore:
    return DocumentStore(backend, settings)
