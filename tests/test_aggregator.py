from __future__ import annotations

import anyio
import pytest
from cachetools import TTLCache

from grantflow.domain.models import RawHit
from grantflow.observability.context import get_search_id
from grantflow.pipeline.search.aggregator import Aggregator, SearchOptions, SearchPager
from grantflow.pipeline.search.source_base import AdapterResult, SourceAdapter, UpstreamStatus
from grantflow.settings import Settings


class FakeAdapter(SourceAdapter):
    """Serves pages out of a fixed list of ids; `total` overrides the reported total."""

    def __init__(self, name: str, ids: list[str], *, total: int | None = None, fail: Exception | None = None, delay: float = 0.0):
        super().__init__()
        self.source_name = name
        self.display_name = name.upper()
        self.ids = ids
        self.total = total
        self.fail = fail
        self.delay = delay
        self.calls: list[tuple[str, int, int]] = []
        self.search_ids: list[str | None] = []

    async def fetch(self, term: str, *, limit: int, offset: int) -> AdapterResult:
        self.calls.append((term, limit, offset))
        self.search_ids.append(get_search_id())
        if self.delay:
            await anyio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        page = self.ids[offset : offset + limit]
        hits = [RawHit(source=self.source_name, external_id=i, title=f"{self.source_name} {i}") for i in page]
        return AdapterResult(hits=hits, total_count=self.total if self.total is not None else len(self.ids))


class CrashingAdapter(FakeAdapter):
    async def query(self, term: str, *, limit: int, offset: int = 0) -> AdapterResult:
        raise RuntimeError("adapter bug")


@pytest.fixture
def settings(clean_settings) -> Settings:
    return clean_settings.model_copy(update={"adapter_timeout_s": 0.2, "search_page_size": 2})


def _keys(hits: list[RawHit]) -> list[tuple[str, str]]:
    return [h.key for h in hits]


def test_merges_in_adapter_order_and_dedups_per_source(settings):
    a = FakeAdapter("a", ["1", "2", "1"], total=10)
    b = FakeAdapter("b", ["1", "9"], total=5)
    agg = Aggregator([a, b], settings=settings)

    res = anyio.run(agg.search, "broadband", SearchOptions(limit=3))

    assert _keys(res.hits) == [("a", "1"), ("a", "2"), ("b", "1"), ("b", "9")]
    assert res.total_count == 15
    assert res.partial_errors == []


def test_partial_failure_keeps_healthy_hits(settings):
    good = FakeAdapter("good", ["1", "2"])
    down = FakeAdapter("down", ["x"], fail=UpstreamStatus(502, "HTTP 502"))
    slow = FakeAdapter("slow", ["y"], delay=1.0)
    agg = Aggregator([down, good, slow], settings=settings)

    res = anyio.run(agg.search, "q")

    assert _keys(res.hits) == [("good", "1"), ("good", "2")]
    assert res.total_count == 2
    assert res.partial_errors == ["DOWN: HTTP 502", "SLOW: timed out after 0.2s"]


def test_raising_adapter_is_isolated(settings):
    agg = Aggregator([CrashingAdapter("boom", []), FakeAdapter("ok", ["1"])], settings=settings)
    res = anyio.run(agg.search, "q")
    assert _keys(res.hits) == [("ok", "1")]
    assert res.partial_errors == ["BOOM: adapter bug"]


def test_blank_query_calls_nobody(settings):
    a = FakeAdapter("a", ["1"])
    res = anyio.run(Aggregator([a], settings=settings).search, "   ")
    assert res.hits == [] and res.total_count == 0
    assert a.calls == []


def test_exclude_keys_and_source_subset(settings):
    a = FakeAdapter("a", ["1", "2"])
    b = FakeAdapter("b", ["1"])
    agg = Aggregator([a, b], settings=settings)

    res = anyio.run(agg.search, "q", SearchOptions(exclude_keys={("a", "1")}, sources=["a"]))
    assert _keys(res.hits) == [("a", "2")]
    assert b.calls == []


def test_successful_pages_are_cached_failures_are_not(settings):
    ok = FakeAdapter("ok", ["1"])
    bad = FakeAdapter("bad", [], fail=UpstreamStatus(500, "HTTP 500"))
    agg = Aggregator([ok, bad], settings=settings, cache=TTLCache(maxsize=8, ttl=60))

    anyio.run(agg.search, "Rural")
    anyio.run(agg.search, "rural")

    assert len(ok.calls) == 1
    assert len(bad.calls) == 2


def test_search_id_is_bound_per_search(settings):
    a = FakeAdapter("a", ["1"])
    agg = Aggregator([a], settings=settings)
    anyio.run(agg.search, "one")
    anyio.run(agg.search, "two")

    assert all(a.search_ids)
    assert a.search_ids[0] != a.search_ids[1]
    assert get_search_id() is None


def test_pager_walks_pages_without_repeats(settings):
    a = FakeAdapter("a", ["1", "2", "3", "4", "5"])
    pager = SearchPager(Aggregator([a], settings=settings), "q")

    async def run():
        pages = [await pager.first()]
        while pager.has_more:
            pages.append(await pager.next())
        return pages

    pages = anyio.run(run)
    assert [[h.external_id for h in p] for p in pages] == [["1", "2"], ["3", "4"], ["5"]]
    assert [c[2] for c in a.calls] == [0, 2, 4]
    assert pager.total_count == 5


def test_pager_total_never_decreases(settings):
    a = FakeAdapter("a", ["1", "2", "3", "4"], total=40)
    pager = SearchPager(Aggregator([a], settings=settings), "q")

    async def run():
        await pager.first()
        a.total = 3
        await pager.next()

    anyio.run(run)
    assert pager.total_count == 40
    assert pager.has_more


def test_pager_first_resets_state(settings):
    a = FakeAdapter("a", ["1", "2", "3"])
    pager = SearchPager(Aggregator([a], settings=settings), "q")

    async def run():
        await pager.first()
        await pager.next()
        return await pager.first()

    again = anyio.run(run)
    assert [h.external_id for h in again] == ["1", "2"]
    assert pager.offset == 2


def test_pager_drops_superseded_page(settings):
    a = FakeAdapter("a", ["1", "2", "3"], delay=0.05)
    pager = SearchPager(Aggregator([a], settings=settings), "q")
    out: dict[str, list[RawHit]] = {}

    async def run():
        async def stale():
            out["stale"] = await pager.first()

        async with anyio.create_task_group() as tg:
            tg.start_soon(stale)
            await anyio.sleep(0.01)
            out["fresh"] = await pager.first()

    anyio.run(run)
    assert out["stale"] == []
    assert [h.external_id for h in out["fresh"]] == ["1", "2"]


class FlakyAdapter(FakeAdapter):
    """Fails exactly once, on the `fail_on`-th call (1-based)."""

    def __init__(self, name: str, ids: list[str], *, fail_on: int):
        super().__init__(name, ids)
        self.fail_on = fail_on

    async def fetch(self, term: str, *, limit: int, offset: int) -> AdapterResult:
        if len(self.calls) + 1 == self.fail_on:
            self.calls.append((term, limit, offset))
            raise UpstreamStatus(503, "HTTP 503")
        return await super().fetch(term, limit=limit, offset=offset)


def test_pager_retries_failed_page(settings):
    f = FlakyAdapter("f", [str(i) for i in range(6)], fail_on=2)
    pager = SearchPager(Aggregator([f], settings=settings), "q")

    async def run():
        ids = [h.external_id for h in await pager.first()]
        failed = await pager.next()
        assert failed == []
        assert pager.partial_errors == ["F: HTTP 503"]
        assert pager.offset == 2
        while pager.has_more:
            ids.extend(h.external_id for h in await pager.next())
        return ids

    ids = anyio.run(run)
    assert ids == ["0", "1", "2", "3", "4", "5"]
    assert [c[2] for c in f.calls] == [0, 2, 2, 4]


def test_pager_keeps_healthy_sources_moving(settings):
    a = FakeAdapter("a", ["1", "2", "3", "4"])
    b = FlakyAdapter("b", ["x1", "x2", "x3", "x4"], fail_on=2)
    pager = SearchPager(Aggregator([a, b], settings=settings), "q")

    async def run():
        pages = [await pager.first()]
        pages.append(await pager.next())
        pages.append(await pager.next())
        return [[h.external_id for h in p] for p in pages]

    pages = anyio.run(run)
    assert pages == [["1", "2", "x1", "x2"], ["3", "4"], ["x3", "x4"]]
    assert [c[2] for c in a.calls] == [0, 2, 4]
    assert [c[2] for c in b.calls] == [0, 2, 2]
    assert pager.source_offsets == {"a": 6, "b": 4}
