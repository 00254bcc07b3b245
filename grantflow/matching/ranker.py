from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Callable, Iterable

from pydantic import BaseModel

from ..domain.models import ScoredHit


class SortKey(str, Enum):
    RELEVANCE = "relevance"
    MATCH = "match"
    AMOUNT_HIGH = "amount_high"
    AMOUNT_LOW = "amount_low"
    DEADLINE = "deadline"
    NEWEST = "newest"
    CATEGORY = "category"
    STATUS = "status"


class HitFilters(BaseModel):
    """Independent predicates, combined with AND. Unset fields do not filter."""

    issuer: str | None = None
    min_amount: float | None = None
    max_amount: float | None = None
    open_only: bool = False
    status: str | None = None
    funding_instrument: str | None = None
    category: str | None = None
    doc_type: str | None = None
    eligibility: str | None = None
    min_match: int | None = None

    def active_count(self) -> int:
        n = 0
        for name, value in self:
            if name == "open_only":
                n += 1 if value else 0
            elif name in ("min_amount", "max_amount", "min_match"):
                n += 1 if value else 0
            elif value and str(value).strip():
                n += 1
        return n


def _amount(sh: ScoredHit) -> float:
    return float(sh.hit.amount or 0)


def _norm(s: str | None) -> str:
    return str(s or "").strip().casefold()


def _predicates(filters: HitFilters, today: date) -> list[Callable[[ScoredHit], bool]]:
    preds: list[Callable[[ScoredHit], bool]] = []
    f = filters
    if _norm(f.issuer):
        # Issuer names are long ("Department of Agriculture - Rural Housing Service").
        preds.append(lambda sh: _norm(f.issuer) in _norm(sh.hit.issuer))
    if f.min_amount:
        preds.append(lambda sh: _amount(sh) >= float(f.min_amount or 0))
    if f.max_amount:
        preds.append(lambda sh: _amount(sh) <= float(f.max_amount or 0))
    if f.open_only:
        preds.append(lambda sh: sh.hit.close_date is None or sh.hit.close_date >= today)
    if _norm(f.status):
        preds.append(lambda sh: _norm(sh.hit.status) == _norm(f.status))
    if _norm(f.funding_instrument):
        preds.append(lambda sh: _norm(f.funding_instrument) in _norm(sh.hit.funding_instrument))
    if _norm(f.category):
        preds.append(lambda sh: _norm(f.category) in _norm(sh.hit.category))
    if _norm(f.doc_type):
        preds.append(lambda sh: _norm(sh.hit.doc_type) == _norm(f.doc_type))
    if _norm(f.eligibility):
        preds.append(lambda sh: _norm(f.eligibility) in _norm(sh.hit.eligibility))
    if f.min_match:
        preds.append(lambda sh: sh.match.score >= int(f.min_match or 0))
    return preds


def _sorted(hits: list[ScoredHit], key: SortKey) -> list[ScoredHit]:
    # sorted() is stable, so equal keys keep their input order.
    if key == SortKey.MATCH:
        return sorted(hits, key=lambda sh: -sh.match.score)
    if key == SortKey.AMOUNT_HIGH:
        return sorted(hits, key=lambda sh: -_amount(sh))
    if key == SortKey.AMOUNT_LOW:
        return sorted(hits, key=_amount)
    if key == SortKey.DEADLINE:
        return sorted(
            hits,
            key=lambda sh: (sh.hit.close_date is None, sh.hit.close_date or date.max),
        )
    if key == SortKey.NEWEST:
        return sorted(
            hits,
            key=lambda sh: (sh.hit.open_date is None, -(sh.hit.open_date or date.min).toordinal()),
        )
    if key == SortKey.CATEGORY:
        return sorted(hits, key=lambda sh: (not _norm(sh.hit.category), _norm(sh.hit.category)))
    if key == SortKey.STATUS:
        return sorted(hits, key=lambda sh: _norm(sh.hit.status))
    return list(hits)


def rank(
    hits: Iterable[ScoredHit],
    sort_key: SortKey | str = SortKey.RELEVANCE,
    filters: HitFilters | None = None,
    *,
    today: date | None = None,
) -> list[ScoredHit]:
    """
    Filter then sort scored hits. Pure: the input is not modified and identical
    arguments always give identical ordering.
    """
    key = SortKey(sort_key)
    preds = _predicates(filters or HitFilters(), today or date.today())
    kept = [sh for sh in hits if all(p(sh) for p in preds)]
    return _sorted(kept, key)
