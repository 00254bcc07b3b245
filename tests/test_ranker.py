from __future__ import annotations

from datetime import date

import pytest

from grantflow.domain.models import MatchResult, RawHit, ScoredHit
from grantflow.matching.ranker import HitFilters, SortKey, rank

TODAY = date(2025, 6, 1)


def _sh(ext: str, *, score: int = 0, **hit_fields) -> ScoredHit:
    hit = RawHit(source="grants_gov", external_id=ext, title=f"Grant {ext}", **hit_fields)
    return ScoredHit(hit=hit, match=MatchResult(score=score, reasons=[]))


def _ids(hits: list[ScoredHit]) -> list[str]:
    return [sh.hit.external_id for sh in hits]


@pytest.fixture
def hits() -> list[ScoredHit]:
    return [
        _sh("a", score=30, amount=50_000, close_date=date(2025, 9, 1), open_date=date(2025, 1, 1), category="Energy", status="posted", issuer="Department of Energy"),
        _sh("b", score=60, amount=None, close_date=None, open_date=date(2025, 3, 1), category="", status="forecasted", issuer="USDA Rural Development"),
        _sh("c", score=60, amount=250_000, close_date=date(2025, 7, 1), open_date=None, category="agriculture", status="Posted", issuer="USDA Forest Service", funding_instrument="Cooperative Agreement"),
        _sh("d", score=10, amount=50_000, close_date=date(2025, 5, 1), open_date=date(2024, 12, 1), category="Health", status="closed", issuer="HHS", doc_type="synopsis", eligibility="Nonprofits and small businesses"),
    ]


def test_relevance_keeps_input_order(hits):
    assert _ids(rank(hits, SortKey.RELEVANCE, today=TODAY)) == ["a", "b", "c", "d"]


def test_match_sort_is_stable_for_ties(hits):
    assert _ids(rank(hits, "match", today=TODAY)) == ["b", "c", "a", "d"]


def test_amount_sorts_treat_missing_as_zero(hits):
    assert _ids(rank(hits, SortKey.AMOUNT_HIGH, today=TODAY)) == ["c", "a", "d", "b"]
    assert _ids(rank(hits, SortKey.AMOUNT_LOW, today=TODAY)) == ["b", "a", "d", "c"]


def test_deadline_and_newest_put_missing_dates_last(hits):
    assert _ids(rank(hits, SortKey.DEADLINE, today=TODAY)) == ["d", "c", "a", "b"]
    assert _ids(rank(hits, SortKey.NEWEST, today=TODAY)) == ["b", "a", "d", "c"]


def test_category_and_status_sorts(hits):
    assert _ids(rank(hits, SortKey.CATEGORY, today=TODAY)) == ["c", "a", "d", "b"]
    assert _ids(rank(hits, SortKey.STATUS, today=TODAY)) == ["d", "b", "a", "c"]


def test_filters_combine_with_and(hits):
    f = HitFilters(issuer="usda", open_only=True, min_match=50)
    assert _ids(rank(hits, SortKey.RELEVANCE, f, today=TODAY)) == ["b", "c"]

    f = HitFilters(min_amount=60_000)
    assert _ids(rank(hits, filters=f, today=TODAY)) == ["c"]

    f = HitFilters(max_amount=60_000, status="POSTED")
    assert _ids(rank(hits, filters=f, today=TODAY)) == ["a"]


def test_facet_filters(hits):
    assert _ids(rank(hits, filters=HitFilters(funding_instrument="cooperative"), today=TODAY)) == ["c"]
    assert _ids(rank(hits, filters=HitFilters(category="agri"), today=TODAY)) == ["c"]
    assert _ids(rank(hits, filters=HitFilters(doc_type="Synopsis"), today=TODAY)) == ["d"]
    assert _ids(rank(hits, filters=HitFilters(eligibility="small business"), today=TODAY)) == ["d"]


def test_zero_amount_bounds_mean_unset(hits):
    assert len(rank(hits, filters=HitFilters(min_amount=0, max_amount=0), today=TODAY)) == 4
    assert HitFilters(min_amount=0, max_amount=0).active_count() == 0
    assert HitFilters(issuer="x", open_only=True).active_count() == 2


def test_rank_does_not_mutate_input(hits):
    before = list(hits)
    rank(hits, SortKey.AMOUNT_HIGH, HitFilters(open_only=True), today=TODAY)
    assert hits == before
