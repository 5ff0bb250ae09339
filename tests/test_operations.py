from datetime import datetime, timezone

import pytest

from firepersist.config.storage import StorageSettings
from firepersist.storage.domains.operations import DocStoreOperations

from conftest import RecordingBackend


@pytest.mark.asyncio
async def test_table_schema_metadata(store):
    await store.create_table("widgets", {"id": {"type": "text"}, "name": {"type": "text"}})

    assert await store.has_column("widgets", "name")
    assert not await store.has_column("widgets", "size")
    assert not await store.has_column("unknown", "name")

    await store.alter_table(
        "widgets",
        {"size": {"type": "integer"}, "name": {"type": "jsonb"}, "color": {"type": "text"}},
        ["size", "name", "weight"],
    )

    assert await store.has_column("widgets", "size")
    assert not await store.has_column("widgets", "color")
    assert not await store.has_column("widgets", "weight")
    meta = await store.backend.get("_metadata", "widgets")
    # existing columns are never overwritten
    assert meta["schema"]["name"] == {"type": "text"}
    assert meta["updatedAt"] is not None


@pytest.mark.asyncio
async def test_alter_table_without_metadata_is_noop(store, backend):
    await store.alter_table("ghost", {"a": {}}, ["a"])
    assert await backend.get("_metadata", "ghost") is None


@pytest.mark.asyncio
async def test_insert_and_load(store):
    when = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await store.insert("widgets", {"id": "w1", "name": "bolt", "spec": {"size": 3}, "made": when, "note": None})
    await store.insert("widgets", {"name": "nut"})

    by_id = await store.load("widgets", {"id": "w1"})
    assert by_id == {"id": "w1", "name": "bolt", "spec": {"size": 3}, "made": when, "note": None}

    by_key = await store.load("widgets", {"name": "nut"})
    assert by_key is not None
    assert by_key["name"] == "nut"

    assert await store.load("widgets", {"id": "missing"}) is None
    assert await store.load("widgets", {"name": "washer"}) is None


@pytest.mark.asyncio
async def test_batch_insert_and_clear_table(store, backend):
    await store.batch_insert("widgets", [{"id": f"w{i:04d}", "n": i} for i in range(1100)])
    assert backend.commits == [500, 500, 100]
    backend.reset()

    await store.clear_table("widgets")

    assert await backend.count("widgets") == 0
    assert backend.commits == [500, 500, 100]


@pytest.mark.asyncio
async def test_clear_table_exact_multiple_stops_on_empty_page():
    backend = RecordingBackend()
    ops = DocStoreOperations(backend, StorageSettings(max_batch_size=5))
    await ops.batch_insert("widgets", [{"id": f"w{i}"} for i in range(10)])
    backend.reset()

    await ops.clear_table("widgets")

    assert backend.commits == [5, 5]
    # two full pages, then one empty probe
    assert len(backend.queries) == 3


@pytest.mark.asyncio
async def test_drop_table_removes_documents_and_metadata(store, backend):
    await store.create_table("widgets", {"id": {"type": "text"}})
    await store.insert("widgets", {"id": "w1"})

    await store.drop_table("widgets")

    assert await backend.count("widgets") == 0
    assert await backend.get("_metadata", "widgets") is None
    assert not await store.has_column("widgets", "id")


@pytest.mark.asyncio
async def test_load_empty_record(store):
    await store.insert("blanks", {})
    await store.backend.set("blanks", "b1", {})

    assert await store.load("blanks", {"id": "b1"}) == {}
    assert await store.load("blanks", {}) == {}
    assert await store.load("blanks", {"id": "nope"}) is None
