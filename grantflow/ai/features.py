"""
AI-assisted features built on `Dispatcher.dispatch_json`.

Each helper assembles a prompt from local data, asks for a JSON reply, and returns
the `DispatchResult`; on success `result.data` holds the validated model.
"""

from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field

from ..domain.models import ChatMessage, Grant, Profile, RawHit
from ..matching.scorer import score
from ..modules.pursuits.pursuit_store import PursuitStore
from .context import build_portfolio_context, normalize_ws
from .dispatch import DispatchResult, Dispatcher


class SearchRecommendation(BaseModel):
    query: str
    reason: str = ""
    priority: Literal["high", "medium", "low"] = "medium"
    category: str = ""


class SearchRecommendations(BaseModel):
    searches: list[SearchRecommendation] = Field(default_factory=list)


class FitAnalysis(BaseModel):
    fit_score: int = Field(default=0, ge=0, le=100)
    strengths: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    recommendation: str = ""


class StrategicBrief(BaseModel):
    insights: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    recommendation: str = ""


RECOMMEND_SYSTEM = (
    "You are an expert grant strategist. Based on the applicant profile, generate 8 highly specific "
    "grant search queries that would find the best matching federal grants. Consider location, "
    "demographics, businesses and sectors.\n\n"
    'RESPOND ONLY IN JSON: {"searches":[{"query":"...","reason":"...","priority":"high|medium","category":"..."}]}'
)

FIT_SYSTEM = (
    "You are a grant fit reviewer. Compare the opportunity with the applicant profile and judge eligibility "
    "and competitiveness honestly.\n\n"
    'RESPOND ONLY IN JSON: {"fit_score":0-100,"strengths":["..."],"gaps":["..."],"recommendation":"..."}'
)

BRIEF_SYSTEM = "You are a Chief Strategy Officer advising an executive board on a grant portfolio."


def profile_summary(profile: Profile) -> str:
    businesses = "; ".join(
        f"{b.name or 'Unnamed'} ({b.sector or 'n/a'}: {normalize_ws(b.description, max_chars=160)})"
        for b in profile.businesses
    )
    return "\n".join(
        [
            f"Name: {profile.name}",
            f"Location: {profile.location}",
            f"Rural: {profile.rural}, Disabled: {profile.disabled}, "
            f"Poverty: {profile.poverty}, Self-Employed: {profile.self_employed}",
            f"Tags: {', '.join(profile.tags)}",
            f"Businesses: {businesses}",
            f"Narrative: {normalize_ws(profile.narratives.get('founder', ''), max_chars=1200)}",
        ]
    )


async def recommend_searches(dispatcher: Dispatcher, profile: Profile) -> DispatchResult:
    return await dispatcher.dispatch_json(
        SearchRecommendations,
        [ChatMessage(role="user", content=profile_summary(profile))],
        system_prompt=RECOMMEND_SYSTEM,
    )


def _opportunity_summary(item: Grant | RawHit) -> str:
    if isinstance(item, RawHit):
        amount = item.amount
        deadline = item.close_date
        extra = f"\nEligibility: {normalize_ws(item.eligibility, max_chars=800)}" if item.eligibility else ""
    else:
        amount = item.amount
        deadline = item.deadline
        extra = ""
    return (
        f"Title: {item.title}\n"
        f"Issuer: {item.issuer}\n"
        f"Amount: {f'${amount:,.0f}' if amount else 'n/a'}\n"
        f"Deadline: {deadline.isoformat() if deadline else 'n/a'}\n"
        f"Description: {normalize_ws(item.description, max_chars=2400)}"
        f"{extra}"
    )


async def analyze_fit(dispatcher: Dispatcher, profile: Profile, item: Grant | RawHit) -> DispatchResult:
    """Ask the model for a fit review; the keyword match score is included as a prior."""
    prior = ""
    if isinstance(item, RawHit):
        m = score(profile, item)
        prior = f"\n\nKeyword match score: {m.score}/100 ({', '.join(m.reasons) or 'no signals'})"
    content = f"APPLICANT\n{profile_summary(profile)}\n\nOPPORTUNITY\n{_opportunity_summary(item)}{prior}"
    return await dispatcher.dispatch_json(
        FitAnalysis,
        [ChatMessage(role="user", content=content)],
        system_prompt=FIT_SYSTEM,
    )


async def strategic_brief(
    dispatcher: Dispatcher,
    store: PursuitStore,
    profile: Profile,
    *,
    documents: int = 0,
    contacts: int = 0,
    today: date | None = None,
) -> DispatchResult:
    context = build_portfolio_context(
        store.list_grants(), profile, documents=documents, contacts=contacts, today=today
    )
    prompt = (
        f"{context}\n\n"
        "Analyze this grant portfolio for an executive board. Identify:\n"
        "1. Three specific strategic wins or trends.\n"
        "2. Two portfolio risks (e.g. agency concentration, funding cliffs).\n"
        "3. One recommendation.\n"
        "Format as a JSON object with keys: insights (array of strings), risks (array of strings), "
        "recommendation (string)."
    )
    return await dispatcher.dispatch_json(
        StrategicBrief,
        [ChatMessage(role="user", content=prompt)],
        system_prompt=BRIEF_SYSTEM,
    )
