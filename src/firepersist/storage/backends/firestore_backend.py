from __future__ import annotations

from collections.abc import Sequence
import inspect
import logging
from typing import Any

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from firepersist.contracts.storage.document_backend import (
    MAX_BATCH_OPS,
    DocumentBackend,
    Filter,
    OrderBy,
    StoredDocument,
    WriteOp,
)

logger = logging.getLogger(__name__)

_DIRECTIONS = {
    "asc": firestore.Query.ASCENDING,
    "desc": firestore.Query.DESCENDING,
}


class FirestoreDocumentBackend(DocumentBackend):
    """
    DocumentBackend over a google-cloud-firestore AsyncClient.

    - The client is injected and owned by the caller; close() closes it only
      when this backend created it (see `from_settings`).
    - No retries or error translation: google.api_core exceptions propagate.
    """

    def __init__(self, client: firestore.AsyncClient, *, owns_client: bool = False) -> None:
        self._client = client
        self._owns_client = owns_client

    @classmethod
    def from_settings(
        cls,
        *,
        project: str | None = None,
        database: str | None = None,
        credentials_path: str | None = None,
    ) -> FirestoreDocumentBackend:
        credentials = None
        if credentials_path:
            from google.oauth2 import service_account

            credentials = service_account.Credentials.from_service_account_file(credentials_path)
        client = firestore.AsyncClient(project=project, database=database, credentials=credentials)
        logger.info("firestore client created project=%s database=%s", client.project, database or "(default)")
        return cls(client, owns_client=True)

    @property
    def client(self) -> firestore.AsyncClient:
        return self._client

    def _ref(self, collection: str, doc_id: str):
        return self._client.collection(collection).document(doc_id)

    def _build_query(self, collection: str, filters: Sequence[Filter]):
        query = self._client.collection(collection)
        for flt in filters:
            query = query.where(filter=FieldFilter(flt.field, flt.op, flt.value))
        return query

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        snap = await self._ref(collection, doc_id).get()
        if not snap.exists:
            return None
        return snap.to_dict()

    async def get_many(self, collection: str, doc_ids: Sequence[str]) -> list[StoredDocument]:
        refs = [self._ref(collection, doc_id) for doc_id in doc_ids]
        out: list[StoredDocument] = []
        async for snap in self._client.get_all(refs):
            if snap.exists:
                out.append(StoredDocument(id=snap.id, data=snap.to_dict() or {}))
        return out

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: Sequence[OrderBy] = (),
        offset: int = 0,
        limit: int | None = None,
    ) -> list[StoredDocument]:
        query = self._build_query(collection, filters)
        for order in order_by:
            query = query.order_by(order.field, direction=_DIRECTIONS[order.direction])
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        snaps = await query.get()
        return [StoredDocument(id=snap.id, data=snap.to_dict() or {}) for snap in snaps]

    async def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        agg = self._build_query(collection, filters).count(alias="total")
        results = await agg.get()
        for row in results:
            for result in row:
                if result.alias == "total":
                    return int(result.value)
        return 0

    def new_id(self, collection: str) -> str:
        # document() without an id generates one client-side
        return self._client.collection(collection).document().id

    async def set(
        self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False
    ) -> None:
        await self._ref(collection, doc_id).set(data, merge=merge)

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        await self._ref(collection, doc_id).update(data)

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._ref(collection, doc_id).delete()

    async def commit(self, ops: Sequence[WriteOp]) -> None:
        if len(ops) > MAX_BATCH_OPS:
            raise ValueError(f"A batch supports at most {MAX_BATCH_OPS} writes, got {len(ops)}")
        batch = self._client.batch()
        for op in ops:
            ref = self._ref(op.collection, op.doc_id)
            if op.kind == "set":
                batch.set(ref, op.data, merge=op.merge)
            elif op.kind == "update":
                batch.update(ref, op.data)
            elif op.kind == "delete":
                batch.delete(ref)
            else:
                raise ValueError(f"Unknown write op: {op.kind!r}")
        await batch.commit()

    async def close(self) -> None:
        if not self._owns_client:
            return
        result = self._client.close()
        # transport close is a coroutine on the grpc-asyncio transport
        if inspect.isawaitable(result):
            await result
