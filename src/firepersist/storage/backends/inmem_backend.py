from __future__ import annotations

import asyncio
from collections.abc import Sequence
import copy
from typing import Any
import uuid

from firepersist.contracts.storage.document_backend import (
    MAX_BATCH_OPS,
    MAX_IN_VALUES,
    DocumentBackend,
    Filter,
    OrderBy,
    StoredDocument,
    WriteOp,
)

_MISSING = object()


def _get_path(data: dict[str, Any], path: str) -> Any:
    cur: Any = data
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return _MISSING
        cur = cur[part]
    return cur


def _set_path(data: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    cur = data
    for part in parts[:-1]:
        nxt = cur.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[part] = nxt
        cur = nxt
    cur[parts[-1]] = value


def _deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    # an empty map is a leaf value in a merge mask and replaces the stored map
    out = dict(base)
    for k, v in patch.items():
        if isinstance(v, dict) and v and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _matches(data: dict[str, Any], flt: Filter) -> bool:
    value = _get_path(data, flt.field)
    if value is _MISSING:
        return False
    if flt.op == "==":
        return value == flt.value
    if flt.op == "in":
        return value in flt.value
    if value is None or flt.value is None:
        return False
    try:
        if flt.op == ">=":
            return value >= flt.value
        if flt.op == "<=":
            return value <= flt.value
    except TypeError:
        # mixed types never match a range, same as the managed store
        return False
    raise ValueError(f"Unsupported filter op: {flt.op!r}")


class InMemoryDocumentBackend(DocumentBackend):
    """
    Process-local document backend.

    - Not persisted across process restarts.
    - Stores deep copies, so callers never share mutable state with the store.
    - Mirrors managed-store semantics the core relies on: ordered queries skip
      documents missing the order field, batches are atomic and capped at 500
      ops, "in" filters are capped at 10 values, update() on a missing
      document fails.
    """

    def __init__(self, *, max_batch_ops: int = MAX_BATCH_OPS, max_in_values: int = MAX_IN_VALUES) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._max_batch_ops = max_batch_ops
        self._max_in_values = max_in_values
        self._lock = asyncio.Lock()

    def _coll(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def _check_filters(self, filters: Sequence[Filter]) -> None:
        for flt in filters:
            if flt.op == "in" and len(flt.value) > self._max_in_values:
                raise ValueError(
                    f"'in' filter on {flt.field!r} supports at most {self._max_in_values} values, got {len(flt.value)}"
                )

    def _select(self, collection: str, filters: Sequence[Filter]) -> list[tuple[str, dict[str, Any]]]:
        self._check_filters(filters)
        return [
            (doc_id, data)
            for doc_id, data in self._coll(collection).items()
            if all(_matches(data, f) for f in filters)
        ]

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        async with self._lock:
            data = self._coll(collection).get(doc_id)
            return copy.deepcopy(data) if data is not None else None

    async def get_many(self, collection: str, doc_ids: Sequence[str]) -> list[StoredDocument]:
        async with self._lock:
            coll = self._coll(collection)
            return [
                StoredDocument(id=doc_id, data=copy.deepcopy(coll[doc_id]))
                for doc_id in doc_ids
                if doc_id in coll
            ]

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: Sequence[OrderBy] = (),
        offset: int = 0,
        limit: int | None = None,
    ) -> list[StoredDocument]:
        async with self._lock:
            rows = self._select(collection, filters)
            # stable multi-key sort: apply keys last-to-first
            for order in reversed(list(order_by)):
                rows = [r for r in rows if _get_path(r[1], order.field) is not _MISSING]
                rows.sort(
                    key=lambda r, f=order.field: (_get_path(r[1], f) is not None, _get_path(r[1], f)),
                    reverse=order.direction == "desc",
                )
            rows = rows[offset:]
            if limit is not None:
                rows = rows[:limit]
            return [StoredDocument(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in rows]

    async def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        async with self._lock:
            return len(self._select(collection, filters))

    def new_id(self, collection: str) -> str:
        return uuid.uuid4().hex[:20]

    async def set(
        self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False
    ) -> None:
        await self.commit([WriteOp("set", collection, doc_id, data, merge=merge)])

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        await self.commit([WriteOp("update", collection, doc_id, data)])

    async def delete(self, collection: str, doc_id: str) -> None:
        await self.commit([WriteOp("delete", collection, doc_id)])

    async def commit(self, ops: Sequence[WriteOp]) -> None:
        if len(ops) > self._max_batch_ops:
            raise ValueError(f"A batch supports at most {self._max_batch_ops} writes, got {len(ops)}")

        async with self._lock:
            # Apply to a staged copy; swap in only if every op succeeds.
            staged = {name: dict(docs) for name, docs in self._collections.items()}
            for op in ops:
                coll = staged.setdefault(op.collection, {})
                if op.kind == "delete":
                    coll.pop(op.doc_id, None)
                elif op.kind == "set":
                    data = copy.deepcopy(op.data)
                    if op.merge and op.doc_id in coll:
                        data = _deep_merge(coll[op.doc_id], data)
                    coll[op.doc_id] = data
                elif op.kind == "update":
                    if op.doc_id not in coll:
                        raise KeyError(f"No document to update: {op.collection}/{op.doc_id}")
                    doc = copy.deepcopy(coll[op.doc_id])
                    for path, value in op.data.items():
                        _set_path(doc, path, copy.deepcopy(value))
                    coll[op.doc_id] = doc
                else:
                    raise ValueError(f"Unknown write op: {op.kind!r}")
            self._collections = staged

    async def close(self) -> None:
        return None
