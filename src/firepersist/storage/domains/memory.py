from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import datetime
import logging
from typing import Any

from firepersist.config.storage import StorageSettings
from firepersist.contracts.services.persistence import MemoryStorage
from firepersist.contracts.storage.document_backend import DocumentBackend
from firepersist.core.errors import RecordNotFoundError
from firepersist.core.records import (
    Message,
    MessageFormat,
    PaginatedResult,
    PaginationInfo,
    Resource,
    SelectBy,
    SortDirection,
    Thread,
)
from firepersist.storage.codec import encode_document, utc_now
from firepersist.storage.collection import CollectionSpec, repository_for
from firepersist.storage.query import page_offset

logger = logging.getLogger(__name__)

THREADS = CollectionSpec(
    name="threads",
    kind="Thread",
    fields={
        "id": "id",
        "resource_id": "resourceId",
        "created_at": "createdAt",
        "updated_at": "updatedAt",
    },
)

MESSAGES = CollectionSpec(
    name="messages",
    kind="Message",
    fields={
        "id": "id",
        "thread_id": "threadId",
        "resource_id": "resourceId",
        "created_at": "createdAt",
    },
)

RESOURCES = CollectionSpec(name="resources", kind="Resource", fields={"id": "id"})

# update_messages: attribute -> stored field; other keys are written under their own name
_MESSAGE_PATCHABLE = {
    "role": "role",
    "type": "type",
    "thread_id": "threadId",
    "resource_id": "resourceId",
}


def _check_format(format: str | None) -> None:
    if format is not None and format not in ("v1", "v2"):
        raise ValueError(f"Unknown message format: {format!r}")


def _thread_to_doc(thread: Thread) -> dict[str, Any]:
    return {
        "id": thread.id,
        "resourceId": thread.resource_id,
        "title": thread.title,
        "metadata": thread.metadata or {},
        "createdAt": thread.created_at,
        "updatedAt": thread.updated_at,
    }


def _doc_to_thread(doc: dict[str, Any]) -> Thread:
    return Thread(
        id=doc["id"],
        resource_id=doc.get("resourceId"),
        title=doc.get("title"),
        metadata=dict(doc.get("metadata") or {}),
        created_at=doc.get("createdAt"),
        updated_at=doc.get("updatedAt"),
    )


def _message_to_doc(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "threadId": message.thread_id,
        "resourceId": message.resource_id,
        "role": message.role,
        "type": message.type,
        "content": message.content,
        "createdAt": message.created_at,
    }


def _doc_to_message(doc: dict[str, Any]) -> Message:
    return Message(
        id=doc["id"],
        thread_id=doc.get("threadId"),
        content=doc.get("content"),
        role=doc.get("role") or "user",
        type=doc.get("type"),
        resource_id=doc.get("resourceId"),
        created_at=doc.get("createdAt"),
    )


def _resource_to_doc(resource: Resource) -> dict[str, Any]:
    return {
        "id": resource.id,
        "workingMemory": resource.working_memory or "",
        "metadata": resource.metadata or {},
        "createdAt": resource.created_at,
        "updatedAt": resource.updated_at,
    }


def _doc_to_resource(doc: dict[str, Any]) -> Resource:
    return Resource(
        id=doc["id"],
        working_memory=doc.get("workingMemory") or "",
        metadata=dict(doc.get("metadata") or {}),
        created_at=doc.get("createdAt"),
        updated_at=doc.get("updatedAt"),
    )


def _created_key(doc: dict[str, Any]) -> tuple[bool, float]:
    created = doc.get("createdAt")
    if isinstance(created, datetime):
        return True, created.timestamp()
    return False, 0.0


def _apply_patch(doc: dict[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    out = dict(doc)
    for path, value in patch.items():
        head, _, rest = path.partition(".")
        if rest:
            nested = dict(out.get(head) or {})
            nested[rest] = value
            out[head] = nested
        else:
            out[head] = value
    return out


class DocMemoryStorage(MemoryStorage):
    """
    Threads, messages and resources.

    - Threads and resources are full-replace on save, merge on update.
    - Deleting a thread removes the thread document first, then its messages.
      There is no two-phase guarantee: a failure after the first step leaves
      orphaned messages.
    - update_thread / update_resource are unguarded read-modify-write; two
      concurrent updates race and the later write wins.
    """

    def __init__(self, backend: DocumentBackend, settings: StorageSettings | None = None) -> None:
        cfg = settings or StorageSettings()
        self._threads = repository_for(backend, THREADS, cfg, name=cfg.collections.threads)
        self._messages = repository_for(backend, MESSAGES, cfg, name=cfg.collections.messages)
        self._resources = repository_for(backend, RESOURCES, cfg, name=cfg.collections.resources)

    # --------- threads ---------
    async def get_thread_by_id(self, thread_id: str) -> Thread | None:
        doc = await self._threads.get(thread_id)
        return _doc_to_thread(doc) if doc else None

    async def get_threads_by_resource_id(
        self,
        resource_id: str,
        *,
        order_by: str = "created_at",
        sort_direction: SortDirection = SortDirection.ASC,
    ) -> list[Thread]:
        docs = await self._threads.list(
            self._threads.where(resource_id=resource_id),
            order_by=self._threads.order(order_by, sort_direction),
        )
        return [_doc_to_thread(d) for d in docs]

    async def get_threads_by_resource_id_paginated(
        self,
        resource_id: str,
        *,
        page: int = 1,
        per_page: int | None = None,
        order_by: str = "created_at",
        sort_direction: SortDirection = SortDirection.ASC,
    ) -> PaginatedResult[Thread]:
        result = await self._threads.paginate(
            self._threads.where(resource_id=resource_id),
            pagination=self._threads.page_of(page, per_page),
            order_by=self._threads.order(order_by, sort_direction),
        )
        return PaginatedResult(items=[_doc_to_thread(d) for d in result.items], pagination=result.pagination)

    async def save_thread(self, thread: Thread) -> Thread:
        written = await self._threads.put(thread.id, _thread_to_doc(thread))
        return _doc_to_thread(self._threads.decode(written))

    async def update_thread(self, thread_id: str, *, title: str, metadata: dict[str, Any]) -> Thread:
        doc = await self._threads.update(thread_id, {"title": title, "metadata": metadata})
        return _doc_to_thread(doc)

    async def delete_thread(self, thread_id: str) -> None:
        await self._threads.delete(thread_id)
        removed = await self._messages.delete_where(self._messages.where(thread_id=thread_id))
        logger.info("deleted thread %s and %d messages", thread_id, removed)

    # --------- messages ---------
    async def _thread_message_docs(self, thread_id: str, select_by: SelectBy | None) -> list[dict[str, Any]] | None:
        """
        Restricted message set for include selections; None when no include is given.
        An include without its own thread_id is looked up in the requested thread.
        """
        if not select_by or not select_by.include:
            return None
        by_thread: dict[str, list[str]] = {}
        for inc in select_by.include:
            ids = by_thread.setdefault(inc.thread_id or thread_id, [])
            if inc.id not in ids:
                ids.append(inc.id)
        docs: list[dict[str, Any]] = []
        for tid, ids in by_thread.items():
            docs.extend(await self._messages.get_many("id", ids, self._messages.where(thread_id=tid)))
        # chunked fetches are not globally ordered
        docs.sort(key=_created_key)
        return docs

    async def get_messages(
        self, thread_id: str, *, select_by: SelectBy | None = None, format: MessageFormat = "v2"
    ) -> list[Message]:
        _check_format(format)
        docs = await self._thread_message_docs(thread_id, select_by)
        if docs is None:
            filters = self._messages.where(thread_id=thread_id)
            if select_by and select_by.last:
                docs = await self._messages.list(
                    filters,
                    order_by=self._messages.order("created_at", SortDirection.DESC),
                    limit=select_by.last,
                )
                docs.reverse()
            else:
                docs = await self._messages.list(filters)
        return [_doc_to_message(d) for d in docs]

    async def get_messages_by_id(self, message_ids: Sequence[str], *, format: MessageFormat = "v2") -> list[Message]:
        _check_format(format)
        docs = await self._messages.get_by_ids(list(dict.fromkeys(message_ids)))
        return [_doc_to_message(d) for d in docs]

    async def get_messages_paginated(
        self, thread_id: str, *, select_by: SelectBy | None = None, format: MessageFormat = "v2"
    ) -> PaginatedResult[Message]:
        _check_format(format)
        pagination = (select_by.pagination if select_by else None) or self._messages.page_of()
        docs = await self._thread_message_docs(thread_id, select_by)
        if docs is None:
            result = await self._messages.paginate(self._messages.where(thread_id=thread_id), pagination=pagination)
            return PaginatedResult(items=[_doc_to_message(d) for d in result.items], pagination=result.pagination)

        offset = page_offset(pagination.page, pagination.per_page)
        total = len(docs)
        window = docs[offset : offset + pagination.per_page]
        return PaginatedResult(
            items=[_doc_to_message(d) for d in window],
            pagination=PaginationInfo(
                page=pagination.page,
                per_page=pagination.per_page,
                total=total,
                has_more=total > offset + pagination.per_page,
            ),
        )

    async def save_messages(self, messages: Sequence[Message], *, format: MessageFormat | None = None) -> list[Message]:
        _check_format(format)
        if not messages:
            return []
        now = utc_now()
        saved = [replace(m, created_at=m.created_at or now) for m in messages]
        await self._messages.batch_insert([_message_to_doc(m) for m in saved])
        return saved

    async def update_messages(self, updates: Sequence[Mapping[str, Any]]) -> list[Message]:
        """
        Partial message updates. Each mapping carries `id`; `content` may hold
        `metadata` and/or `content`, written as nested field paths so the rest
        of the stored content is kept. `created_at` is never rewritten.
        """
        patches: list[tuple[str, dict[str, Any]]] = []
        merged: list[Message] = []
        now = utc_now()
        for update in updates:
            message_id = update.get("id")
            if not message_id:
                raise ValueError("message update requires an 'id'")
            existing = await self._messages.get(message_id)
            if existing is None:
                raise RecordNotFoundError("Message", message_id)

            patch: dict[str, Any] = {}
            for key, value in update.items():
                if key == "id":
                    continue
                if key == "content":
                    content = value or {}
                    for sub in ("metadata", "content"):
                        if sub in content:
                            patch[f"content.{sub}"] = content[sub]
                elif key in ("created_at", "createdAt"):
                    continue
                else:
                    patch[_MESSAGE_PATCHABLE.get(key, key)] = value

            patch = encode_document(patch)
            patch["updatedAt"] = now
            patches.append((message_id, patch))
            merged.append(_doc_to_message(_apply_patch(existing, patch)))

        await self._messages.writer.update(self._messages.name, patches)
        return merged

    async def delete_messages(self, message_ids: Sequence[str]) -> None:
        if not message_ids:
            return
        await self._messages.delete_many(message_ids)

    # --------- resources ---------
    async def get_resource_by_id(self, resource_id: str) -> Resource | None:
        doc = await self._resources.get(resource_id)
        return _doc_to_resource(doc) if doc else None

    async def save_resource(self, resource: Resource) -> Resource:
        written = await self._resources.put(resource.id, _resource_to_doc(resource))
        return _doc_to_resource(self._resources.decode(written))

    async def update_resource(
        self,
        resource_id: str,
        *,
        working_memory: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Resource:
        changes: dict[str, Any] = {}
        if working_memory is not None:
            changes["workingMemory"] = working_memory
        if metadata is not None:
            changes["metadata"] = metadata
        doc = await self._resources.update(resource_id, changes)
        return _doc_to_resource(doc)
