from datetime import datetime, timedelta, timezone

import pytest

from firepersist.config.storage import StorageSettings
from firepersist.core.errors import InvalidPaginationError
from firepersist.core.records import EvalRow
from firepersist.storage.store import DocumentStore

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _trace(i: int, **kw) -> dict:
    rec = {
        "id": f"tr-{i}",
        "name": "agent.generate",
        "scope": "mastra",
        "traceId": "trace-1",
        "kind": 1,
        "attributes": {"model": "m"},
        "events": [],
        "startTime": BASE + timedelta(seconds=i),
        "timestamp": BASE + timedelta(minutes=i),
    }
    rec.update(kw)
    return rec


@pytest.mark.asyncio
async def test_traces_newest_first_with_filters(store):
    await store.batch_trace_insert([_trace(i) for i in range(4)] + [_trace(9, name="tool.call")])

    traces = await store.get_traces(name="agent.generate")
    assert [t.id for t in traces] == ["tr-3", "tr-2", "tr-1", "tr-0"]
    assert traces[0].attributes == {"model": "m"}
    assert traces[0].start_time == BASE + timedelta(seconds=3)

    ranged = await store.get_traces(from_date=BASE + timedelta(minutes=1), to_date=BASE + timedelta(minutes=2))
    assert [t.id for t in ranged] == ["tr-2", "tr-1"]

    assert await store.get_traces(scope="other") == []


@pytest.mark.asyncio
async def test_traces_paginated(store):
    await store.batch_trace_insert([_trace(i) for i in range(5)])

    page = await store.get_traces_paginated(page=2, per_page=2, scope="mastra")

    assert [t.id for t in page.items] == ["tr-2", "tr-1"]
    assert page.pagination.total == 5
    assert page.pagination.has_more is True

    with pytest.raises(InvalidPaginationError):
        await store.get_traces_paginated(page=0)


@pytest.mark.asyncio
async def test_batch_trace_insert_defaults_id_and_timestamp(store, backend):
    await store.batch_trace_insert([{"name": "bare"}])
    await store.batch_trace_insert([])

    traces = await store.get_traces(name="bare")
    assert len(traces) == 1
    assert traces[0].id
    assert traces[0].timestamp is not None
    assert backend.commits == [1]


@pytest.mark.asyncio
async def test_evals_by_agent_name(store):
    await store.save_eval(EvalRow(agent_name="a1", input="q", output="x", type="live", created_at=BASE))
    await store.save_eval(
        EvalRow(agent_name="a1", input="q", output="y", type="test", created_at=BASE + timedelta(hours=1))
    )
    await store.save_eval(EvalRow(agent_name="a2", input="q", output="z", created_at=BASE))

    rows = await store.get_evals_by_agent_name("a1")
    assert [r.output for r in rows] == ["y", "x"]
    assert rows[0].metric_name == "unknown"
    assert rows[0].id

    live = await store.get_evals_by_agent_name("a1", "live")
    assert [r.output for r in live] == ["x"]


@pytest.mark.asyncio
async def test_get_evals_paginated(store):
    for i in range(3):
        await store.save_eval(
            EvalRow(agent_name="a1", result={"score": i}, created_at=BASE + timedelta(minutes=i))
        )

    page = await store.get_evals(agent_name="a1", page=1, per_page=2)

    assert [r.result for r in page.items] == [{"score": 2}, {"score": 1}]
    assert page.pagination.total == 3
    assert page.pagination.has_more is True


@pytest.mark.asyncio
async def test_legacy_eval_rows_fall_back_to_score_field(store):
    # rows written by older clients: result under "score", no metric name
    await store.insert("evals", {"id": "old", "agentName": "a9", "score": {"score": 1}, "createdAt": BASE})

    rows = await store.get_evals_by_agent_name("a9")

    assert rows[0].result == {"score": 1}
    assert rows[0].metric_name == "unknown"
    assert rows[0].run_id == ""


@pytest.mark.asyncio
async def test_configured_page_size_applies_when_none_given(backend):
    store = DocumentStore(backend, StorageSettings(backend="memory", default_per_page=3))
    await store.batch_trace_insert([_trace(i) for i in range(5)])
    for i in range(4):
        await store.save_eval(EvalRow(agent_name="a1", created_at=BASE + timedelta(minutes=i)))

    traces = await store.get_traces_paginated()
    assert traces.pagination.per_page == 3
    assert [t.id for t in traces.items] == ["tr-4", "tr-3", "tr-2"]
    assert traces.pagination.has_more is True

    evals = await store.get_evals(agent_name="a1", page=2)
    assert evals.pagination.per_page == 3
    assert len(evals.items) == 1

    with pytest.raises(InvalidPaginationError):
        await store.get_evals(per_page=0)
