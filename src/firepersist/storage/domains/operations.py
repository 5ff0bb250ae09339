from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import Any

from firepersist.config.storage import StorageSettings
from firepersist.contracts.services.persistence import StoreOperations
from firepersist.contracts.storage.document_backend import DocumentBackend, Filter
from firepersist.storage.codec import encode_document, utc_now
from firepersist.storage.collection import CollectionRepository, CollectionSpec, repository_for

logger = logging.getLogger(__name__)


class DocStoreOperations(StoreOperations):
    """
    Generic table operations over schemaless collections.

    Collections need no creation; `create_table` / `alter_table` only keep the
    declared schema in the metadata collection so `has_column` can answer.
    Records are written as given (codec-encoded, no timestamps added).
    """

    def __init__(self, backend: DocumentBackend, settings: StorageSettings | None = None) -> None:
        self._backend = backend
        self._cfg = settings or StorageSettings()
        self._metadata = self._table(self._cfg.metadata_collection)

    def _table(self, table_name: str) -> CollectionRepository:
        return repository_for(self._backend, CollectionSpec(name=table_name, kind=table_name, date_fields=()), self._cfg)

    async def _schema(self, table_name: str) -> dict[str, Any] | None:
        meta = await self._backend.get(self._metadata.name, table_name)
        if meta is None:
            return None
        return dict(meta.get("schema") or {})

    async def create_table(self, table_name: str, schema: Mapping[str, Any]) -> None:
        await self._backend.set(
            self._metadata.name,
            table_name,
            encode_document({"schema": dict(schema), "createdAt": utc_now()}),
        )

    async def alter_table(self, table_name: str, schema: Mapping[str, Any], if_not_exists: Sequence[str]) -> None:
        existing = await self._schema(table_name)
        if existing is None:
            logger.debug("alter_table: no schema metadata for %s, nothing to alter", table_name)
            return
        updated = dict(existing)
        for column in if_not_exists:
            if column not in existing and column in schema:
                updated[column] = schema[column]
        await self._backend.update(
            self._metadata.name,
            table_name,
            encode_document({"schema": updated, "updatedAt": utc_now()}),
        )

    async def has_column(self, table_name: str, column: str) -> bool:
        schema = await self._schema(table_name)
        return schema is not None and column in schema

    async def clear_table(self, table_name: str) -> None:
        await self._table(table_name).clear()

    async def drop_table(self, table_name: str) -> None:
        await self.clear_table(table_name)
        await self._backend.delete(self._metadata.name, table_name)

    async def insert(self, table_name: str, record: Mapping[str, Any]) -> None:
        table = self._table(table_name)
        await table.writer.upsert(table.name, [encode_document(record)])

    async def batch_insert(self, table_name: str, records: Sequence[Mapping[str, Any]]) -> None:
        if not records:
            return
        table = self._table(table_name)
        await table.writer.upsert(table.name, [encode_document(r) for r in records])

    async def load(self, table_name: str, keys: Mapping[str, Any]) -> dict[str, Any] | None:
        table = self._table(table_name)
        record_id = keys.get("id")
        if record_id:
            data = await self._backend.get(table.name, record_id)
            if data is None:
                return None
        else:
            docs = await self._backend.query(
                table.name, [Filter(key, "==", value) for key, value in keys.items()], limit=1
            )
            if not docs:
                return None
            data = docs[0].data
        # an existing record may be an empty map
        return table.decode(data) if data else {}
