import pytest

from firepersist.contracts.storage.document_backend import Filter, OrderBy
from firepersist.core.errors import InvalidPaginationError
from firepersist.storage.batch import ChunkedBatchWriter
from firepersist.storage.query import PaginatedQueryExecutor, page_offset

from conftest import RecordingBackend


async def _seed(backend, n, **extra):
    writer = ChunkedBatchWriter(backend)
    await writer.upsert("items", [{"id": f"i{k:03d}", "rank": k, **extra} for k in range(n)])
    backend.reset()


def test_page_offset():
    assert page_offset(1, 20) == 0
    assert page_offset(3, 10) == 20
    for page, per_page in [(0, 10), (-1, 10), (1, 0)]:
        with pytest.raises(InvalidPaginationError):
            page_offset(page, per_page)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "total,page,per_page,expected_len,expected_more",
    [
        (45, 1, 20, 20, True),
        (45, 2, 20, 20, True),
        (45, 3, 20, 5, False),
        (40, 2, 20, 20, False),
        (3, 5, 20, 0, False),
        (0, 1, 20, 0, False),
    ],
)
async def test_pagination_invariant(total, page, per_page, expected_len, expected_more):
    backend = RecordingBackend()
    await _seed(backend, total)
    executor = PaginatedQueryExecutor(backend)

    result = await executor.query("items", [], [OrderBy("rank")], page=page, per_page=per_page)

    offset = (page - 1) * per_page
    assert len(result.docs) == expected_len
    assert result.pagination.total == total
    assert result.pagination.has_more is expected_more
    assert result.pagination.has_more == (total > offset + per_page)
    assert [d.data["rank"] for d in result.docs] == list(range(offset, min(offset + per_page, total)))


@pytest.mark.asyncio
async def test_count_and_window_are_separate_round_trips():
    backend = RecordingBackend()
    await _seed(backend, 5)
    executor = PaginatedQueryExecutor(backend)

    await executor.query("items", [], [OrderBy("rank", "desc")], page=1, per_page=2)

    assert backend.counts == 1
    assert len(backend.queries) == 1


@pytest.mark.asyncio
async def test_rejects_non_positive_page_before_touching_backend():
    backend = RecordingBackend()
    executor = PaginatedQueryExecutor(backend)

    with pytest.raises(InvalidPaginationError):
        await executor.query("items", [], [OrderBy("rank")], page=0, per_page=20)

    assert backend.counts == 0
    assert backend.queries == []


@pytest.mark.asyncio
async def test_window_requires_ordering():
    executor = PaginatedQueryExecutor(RecordingBackend())
    with pytest.raises(ValueError):
        await executor.window("items", [], [], offset=0, limit=10)


@pytest.mark.asyncio
async def test_fetch_in_chunks_25_ids_into_three_queries():
    backend = RecordingBackend()
    await _seed(backend, 30, group="g")
    executor = PaginatedQueryExecutor(backend)
    wanted = [f"i{k:03d}" for k in range(25)]

    docs = await executor.fetch_in("items", "id", wanted, [Filter("group", "==", "g")])

    assert len(backend.queries) == 3
    in_sizes = [len(f.value) for _, filters in backend.queries for f in filters if f.op == "in"]
    assert in_sizes == [10, 10, 5]
    assert sorted(d.id for d in docs) == wanted


@pytest.mark.asyncio
async def test_fetch_ids_looks_up_in_chunks():
    backend = RecordingBackend()
    await _seed(backend, 30, group="g")
    executor = PaginatedQueryExecutor(backend)
    wanted = [f"i{k:03d}" for k in range(25)] + ["missing"]

    docs = await executor.fetch_ids("items", wanted)

    assert [len(ids) for _, ids in backend.lookups] == [10, 10, 6]
    assert backend.queries == []
    assert sorted(d.id for d in docs) == wanted[:25]



@pytest.mark.asyncio
async def test_in_memory_backend_enforces_in_limit():
    backend = RecordingBackend()
    with pytest.raises(ValueError):
        await backend.query("items", [Filter("id", "in", [str(k) for k in range(11)])])
