import logging

import pytest

from firepersist.contracts.storage.document_backend import WriteOp
from firepersist.storage.batch import ChunkedBatchWriter, chunked

from conftest import RecordingBackend


def test_chunked_windows():
    assert [list(c) for c in chunked([1, 2, 3, 4, 5], 2)] == [[1, 2], [3, 4], [5]]
    assert list(chunked([], 3)) == []
    with pytest.raises(ValueError):
        list(chunked([1], 0))


def test_writer_rejects_batch_size_above_backend_limit():
    with pytest.raises(ValueError):
        ChunkedBatchWriter(RecordingBackend(), max_batch_size=501)
    with pytest.raises(ValueError):
        ChunkedBatchWriter(RecordingBackend(), max_batch_size=0)


@pytest.mark.asyncio
async def test_upsert_1200_records_commits_three_windows():
    backend = RecordingBackend()
    writer = ChunkedBatchWriter(backend)

    docs = [{"id": f"r{i:04d}", "n": i} for i in range(1200)]
    ids = await writer.upsert("rows", docs)

    assert backend.commits == [500, 500, 200]
    assert ids == [d["id"] for d in docs]
    assert await backend.count("rows") == 1200


@pytest.mark.asyncio
async def test_upsert_generates_ids_when_absent():
    backend = RecordingBackend()
    writer = ChunkedBatchWriter(backend)

    ids = await writer.upsert("rows", [{"n": 1}, {"id": "", "n": 2}, {"id": "keep", "n": 3}])

    assert len(set(ids)) == 3
    assert ids[2] == "keep"
    for doc_id in ids:
        assert await backend.get("rows", doc_id) is not None


@pytest.mark.asyncio
async def test_delete_seven_ids_is_one_commit():
    backend = RecordingBackend()
    writer = ChunkedBatchWriter(backend)
    await writer.upsert("rows", [{"id": f"d{i}"} for i in range(7)])
    backend.reset()

    commits = await writer.delete("rows", [f"d{i}" for i in range(7)])

    assert commits == 1
    assert backend.commits == [7]
    assert await backend.count("rows") == 0


@pytest.mark.asyncio
async def test_empty_inputs_issue_no_commits():
    backend = RecordingBackend()
    writer = ChunkedBatchWriter(backend)

    assert await writer.upsert("rows", []) == []
    assert await writer.delete("rows", []) == 0
    assert await writer.update("rows", []) == 0
    assert backend.commits == []


@pytest.mark.asyncio
async def test_failed_window_leaves_earlier_windows_applied(caplog):
    backend = RecordingBackend(fail_on_commit=2)
    writer = ChunkedBatchWriter(backend)
    docs = [{"id": f"r{i:04d}"} for i in range(1200)]

    with caplog.at_level(logging.ERROR, logger="firepersist.storage.batch"):
        with pytest.raises(RuntimeError, match="deadline exceeded"):
            await writer.upsert("rows", docs)

    # window 1 durable, windows 2 and 3 never applied
    assert backend.commits == [500]
    assert await backend.count("rows") == 500
    assert await backend.get("rows", "r0499") is not None
    assert await backend.get("rows", "r0500") is None
    assert "batch window 1 failed" in caplog.text


@pytest.mark.asyncio
async def test_update_patches_nested_paths():
    backend = RecordingBackend()
    writer = ChunkedBatchWriter(backend)
    await writer.upsert("rows", [{"id": "a", "content": {"content": "old", "parts": [1]}}])

    await writer.update("rows", [("a", {"content.content": "new"})])

    doc = await backend.get("rows", "a")
    assert doc["content"] == {"content": "new", "parts": [1]}


@pytest.mark.asyncio
async def test_update_of_missing_document_fails_whole_window():
    backend = RecordingBackend()
    writer = ChunkedBatchWriter(backend)
    await writer.upsert("rows", [{"id": "a", "v": 1}])

    with pytest.raises(KeyError):
        await writer.update("rows", [("a", {"v": 2}), ("ghost", {"v": 2})])

    # commits are atomic: the valid op in the same window was not applied
    assert (await backend.get("rows", "a"))["v"] == 1


@pytest.mark.asyncio
async def test_commit_ops_mixed_kinds():
    backend = RecordingBackend()
    writer = ChunkedBatchWriter(backend, max_batch_size=2)
    ops = [
        WriteOp("set", "rows", "a", {"v": 1}),
        WriteOp("set", "rows", "b", {"v": 1}),
        WriteOp("delete", "rows", "a"),
    ]

    assert await writer.commit_ops(ops) == 2
    assert backend.commits == [2, 1]
    assert await backend.get("rows", "a") is None
