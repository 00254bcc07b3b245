from __future__ import annotations

from typing import Iterable

from pydantic import BaseModel, Field

from ..domain.models import Profile, RawHit


class SearchStats(BaseModel):
    total: int = 0
    issuers: int = 0
    avg_amount: float = 0.0
    max_amount: float = 0.0
    with_deadlines: int = 0
    top_issuers: list[str] = Field(default_factory=list)


class FacetValues(BaseModel):
    issuers: list[str] = Field(default_factory=list)
    statuses: list[str] = Field(default_factory=list)
    instruments: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    doc_types: list[str] = Field(default_factory=list)


class QuerySuggestion(BaseModel):
    query: str
    category: str


def _distinct(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(v for v in values if v))


def summarize_hits(hits: list[RawHit]) -> SearchStats:
    issuers = _distinct(h.issuer for h in hits)
    amounts = [float(h.amount) for h in hits if h.amount and h.amount > 0]
    return SearchStats(
        total=len(hits),
        issuers=len(issuers),
        avg_amount=(sum(amounts) / len(amounts)) if amounts else 0.0,
        max_amount=max(amounts) if amounts else 0.0,
        with_deadlines=sum(1 for h in hits if h.close_date is not None),
        top_issuers=issuers[:5],
    )


def facet_values(hits: list[RawHit]) -> FacetValues:
    return FacetValues(
        issuers=_distinct(h.issuer for h in hits),
        statuses=_distinct(h.status for h in hits),
        instruments=_distinct(h.funding_instrument for h in hits),
        categories=_distinct(h.category for h in hits),
        doc_types=_distinct(h.doc_type for h in hits),
    )


def suggest_queries(profile: Profile) -> list[QuerySuggestion]:
    """Quick searches derived from the profile flags, active businesses and state."""
    out: list[QuerySuggestion] = []
    if profile.rural:
        out.append(QuerySuggestion(query="rural development grants", category="Location"))
    if profile.disabled:
        out.append(QuerySuggestion(query="disability entrepreneurship grants", category="Demographic"))
    if profile.self_employed:
        out.append(QuerySuggestion(query="small business innovation research", category="Business"))
    if profile.poverty:
        out.append(QuerySuggestion(query="economically disadvantaged business grants", category="Demographic"))
    active = [b for b in profile.businesses if (b.status or "").strip().lower() == "active" and b.sector]
    for b in active[:3]:
        out.append(QuerySuggestion(query=f"{b.sector.lower()} federal grants", category=b.name or b.sector))
    state = str(profile.location or "").split(",")[-1].strip()
    if state:
        out.append(QuerySuggestion(query=f"{state} economic development grants", category="Location"))
    return out
