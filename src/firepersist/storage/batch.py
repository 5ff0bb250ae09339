from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
import logging
from typing import Any, TypeVar

from firepersist.contracts.storage.document_backend import MAX_BATCH_OPS, DocumentBackend, WriteOp

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    for start in range(0, len(items), size):
        yield items[start : start + size]


class ChunkedBatchWriter:
    """
    Writes or deletes many documents in windows of at most `max_batch_size`.

    Each window is one atomic backend commit. Windows are committed one after
    another, never concurrently, so earlier windows are durable before later
    ones start. The operation as a whole is NOT all-or-nothing: if window k
    fails, windows 1..k-1 stay applied and k..n are not applied. The backend
    error propagates unchanged; the failing window and prior progress are
    logged first.
    """

    def __init__(self, backend: DocumentBackend, *, max_batch_size: int = MAX_BATCH_OPS) -> None:
        if not 1 <= max_batch_size <= MAX_BATCH_OPS:
            raise ValueError(f"max_batch_size must be within 1..{MAX_BATCH_OPS}, got {max_batch_size}")
        self._backend = backend
        self.max_batch_size = max_batch_size

    async def commit_ops(self, ops: Sequence[WriteOp]) -> int:
        """Commit prepared ops window by window; returns the number of commits issued."""
        commits = 0
        applied = 0
        for index, window in enumerate(chunked(ops, self.max_batch_size)):
            try:
                await self._backend.commit(window)
            except Exception:
                logger.error(
                    "batch window %d failed (%d ops); %d windows / %d ops already committed",
                    index,
                    len(window),
                    commits,
                    applied,
                )
                raise
            commits += 1
            applied += len(window)
            logger.debug("batch window %d committed (%d ops)", index, len(window))
        return commits

    async def upsert(
        self,
        collection: str,
        docs: Sequence[Mapping[str, Any]],
        *,
        id_field: str = "id",
        merge: bool = False,
    ) -> list[str]:
        """
        Upsert documents; a string value under `id_field` targets that document,
        otherwise the backend generates an id. Returns the ids in input order.
        """
        ops: list[WriteOp] = []
        ids: list[str] = []
        for doc in docs:
            doc_id = doc.get(id_field)
            if not isinstance(doc_id, str) or not doc_id:
                doc_id = self._backend.new_id(collection)
            ids.append(doc_id)
            ops.append(WriteOp("set", collection, doc_id, dict(doc), merge=merge))
        if ops:
            await self.commit_ops(ops)
        return ids

    async def update(self, collection: str, patches: Sequence[tuple[str, Mapping[str, Any]]]) -> int:
        ops = [WriteOp("update", collection, doc_id, dict(patch)) for doc_id, patch in patches]
        if not ops:
            return 0
        return await self.commit_ops(ops)

    async def delete(self, collection: str, doc_ids: Sequence[str]) -> int:
        """Delete by id; callers resolve ids first (e.g. by query for cascades)."""
        ops = [WriteOp("delete", collection, doc_id) for doc_id in doc_ids]
        if not ops:
            return 0
        return await self.commit_ops(ops)
