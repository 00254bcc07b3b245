"""
Multi-source opportunity search.

`Aggregator.search` runs every configured adapter concurrently, each under its own
timeout, and merges the pages:

- a failing or slow adapter contributes no hits and one `partial_errors` entry;
  the hits from healthy adapters are still returned
- dedup is per source on (source, external_id); two sources describing the same
  program are both kept
- merge order is adapter order, then each adapter's own order

`SearchPager` layers "load more" on top: it remembers which identities it has
already handed out, never lets the running total shrink, and retries a failed
source at the same offset on the next page.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Iterable

from cachetools import TTLCache
from pydantic import BaseModel, Field

from ...domain.models import RawHit
from ...errors import UpstreamUnavailable
from ...observability.context import search_id_var
from ...observability.logging import get_logger
from ...settings import Settings, settings as default_settings
from .source_base import AdapterResult, SourceAdapter

log = get_logger("aggregator")


class SearchOptions(BaseModel):
    limit: int | None = None
    offset: int = 0
    # Per-source overrides of `offset`, keyed by source name.
    source_offsets: dict[str, int] = Field(default_factory=dict)
    exclude_keys: set[tuple[str, str]] = Field(default_factory=set)
    sources: list[str] | None = None


class SearchResult(BaseModel):
    hits: list[RawHit] = Field(default_factory=list)
    total_count: int = 0
    partial_errors: list[str] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    failed_sources: list[str] = Field(default_factory=list)


class Aggregator:
    def __init__(
        self,
        adapters: Iterable[SourceAdapter],
        *,
        settings: Settings | None = None,
        cache: TTLCache | None = None,
    ):
        s = settings or default_settings
        self.adapters: list[SourceAdapter] = list(adapters)
        self.timeout_s = float(s.adapter_timeout_s)
        self.page_size = max(1, int(s.search_page_size))
        self._cache: TTLCache = (
            cache
            if cache is not None
            else TTLCache(maxsize=max(1, int(s.adapter_cache_max_entries)), ttl=max(1, int(s.adapter_cache_ttl_s)))
        )

    async def _query_one(self, adapter: SourceAdapter, term: str, limit: int, offset: int) -> AdapterResult:
        cache_key = (adapter.source_name, term.casefold(), limit, offset)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached
        try:
            res = await asyncio.wait_for(adapter.query(term, limit=limit, offset=offset), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            log.warning("adapter_timed_out", source=adapter.source_name, timeout_s=self.timeout_s)
            return AdapterResult.failed(
                UpstreamUnavailable(adapter.source_label, f"timed out after {self.timeout_s:g}s")
            )
        except Exception as e:  # adapters should not raise; a buggy one must not sink the search
            log.exception("adapter_crashed", source=adapter.source_name, error=str(e))
            return AdapterResult.failed(UpstreamUnavailable(adapter.source_label, str(e) or e.__class__.__name__))
        if res.error is None:
            self._cache[cache_key] = res
        return res

    async def search(self, query: str, options: SearchOptions | None = None) -> SearchResult:
        opts = options or SearchOptions()
        term = str(query or "").strip()
        if not term:
            return SearchResult()

        limit = max(1, int(opts.limit or self.page_size))
        offset = max(0, int(opts.offset or 0))
        adapters = self.adapters
        if opts.sources is not None:
            wanted = set(opts.sources)
            adapters = [a for a in adapters if a.source_name in wanted]

        token = search_id_var.set(uuid.uuid4().hex[:12])
        try:
            log.info("search_started", query=term, adapters=len(adapters), limit=limit, offset=offset)
            offsets = [max(0, int(opts.source_offsets.get(a.source_name, offset))) for a in adapters]
            results = await asyncio.gather(
                *(self._query_one(a, term, limit, off) for a, off in zip(adapters, offsets))
            )

            hits: list[RawHit] = []
            seen: set[tuple[str, str]] = set(opts.exclude_keys)
            errors: list[str] = []
            failed: list[str] = []
            total = 0
            for adapter, res in zip(adapters, results):
                if res.error is not None:
                    errors.append(str(res.error))
                    failed.append(adapter.source_name)
                    continue
                total += int(res.total_count if res.total_count is not None else len(res.hits))
                for h in res.hits:
                    if h.key in seen:
                        continue
                    seen.add(h.key)
                    hits.append(h)

            log.info(
                "search_completed",
                query=term,
                hits=len(hits),
                total_count=total,
                partial_errors=len(errors),
            )
            return SearchResult(
                hits=hits,
                total_count=total,
                partial_errors=errors,
                sources=[a.source_name for a in adapters],
                failed_sources=failed,
            )
        finally:
            search_id_var.reset(token)


class SearchPager:
    """
    Stateful "load more" over one query.

    `first()` starts over (and supersedes any in-flight page); `next()` fetches the
    following page, skipping identities already returned. `total_count` never
    decreases while the query stays the same.

    Each source keeps its own cursor. A source whose page failed stays where it
    was, so the next page asks it for the same rows again.
    """

    def __init__(self, aggregator: Aggregator, query: str, *, page_size: int | None = None, sources: list[str] | None = None):
        self.aggregator = aggregator
        self.query = query
        self.page_size = max(1, int(page_size or aggregator.page_size))
        self.sources = sources
        self.source_offsets: dict[str, int] = {}
        self.total_count = 0
        self.seen: set[tuple[str, str]] = set()
        self.partial_errors: list[str] = []
        self._generation = 0

    @property
    def offset(self) -> int:
        """The cursor of the source furthest behind."""
        return min(self.source_offsets.values(), default=0)

    @property
    def has_more(self) -> bool:
        return self.total_count > 0 and self.offset < self.total_count

    async def first(self) -> list[RawHit]:
        self.source_offsets = {}
        self.total_count = 0
        self.seen = set()
        self.partial_errors = []
        return await self._page()

    async def next(self) -> list[RawHit]:
        return await self._page()

    async def _page(self) -> list[RawHit]:
        self._generation += 1
        gen = self._generation
        res = await self.aggregator.search(
            self.query,
            SearchOptions(
                limit=self.page_size,
                source_offsets=dict(self.source_offsets),
                exclude_keys=set(self.seen),
                sources=self.sources,
            ),
        )
        if gen != self._generation:
            # A newer page request started while this one was in flight.
            return []
        failed = set(res.failed_sources)
        for name in res.sources:
            cur = self.source_offsets.get(name, 0)
            self.source_offsets[name] = cur if name in failed else cur + self.page_size
        if failed:
            log.info("pager_holding_sources", query=self.query, sources=sorted(failed), offset=self.offset)
        self.total_count = max(self.total_count, res.total_count)
        self.partial_errors = list(res.partial_errors)
        self.seen.update(h.key for h in res.hits)
        return res.hits
