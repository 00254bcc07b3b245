"""
Keyword match scoring between an applicant profile and a search hit.

Additive point system: each signal that fires adds a fixed number of points and
records a reason code. The total is clamped to [0, 100]. Pure and total; the same
inputs always produce the same MatchResult.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from ..domain.models import MatchResult, Profile, RawHit, ScoredHit


@dataclass(frozen=True)
class Signal:
    reason: str
    points: int
    keywords: tuple[str, ...]
    gate: Callable[[Profile], bool] | None = None


# Evaluation order is also the order reasons are reported in.
SIGNALS: tuple[Signal, ...] = (
    Signal("rural", 18, ("rural", "underserved"), lambda p: p.rural),
    Signal("disability", 18, ("disab",), lambda p: p.disabled),
    Signal("small_business", 15, ("small business", "entrepreneur", "sbir"), lambda p: p.self_employed),
    Signal("technology", 12, ("technology", " ai ", "artificial intelligence", "innovation")),
    Signal("low_income", 14, ("poverty", "low-income", "economically disadvantaged"), lambda p: p.poverty),
)
STATE_POINTS = 10
WORKFORCE = Signal("workforce", 8, ("workforce", "training"))
COMMUNITY = Signal("community", 6, ("communit",))
TAG_POINTS = 5
SECTOR_POINTS = 7


def hit_text(hit: RawHit) -> str:
    # Padded so word-bounded keywords like " ai " match at the edges too.
    return f" {hit.title or ''} {hit.description or ''} {hit.issuer or ''} ".casefold()


def _fires(signal: Signal, profile: Profile, text: str) -> bool:
    if signal.gate is not None and not signal.gate(profile):
        return False
    return any(k in text for k in signal.keywords)


def score(profile: Profile, hit: RawHit) -> MatchResult:
    text = hit_text(hit)
    if not text.strip():
        return MatchResult(score=0, reasons=[])

    total = 0
    reasons: list[str] = []

    for sig in SIGNALS:
        if _fires(sig, profile, text):
            total += sig.points
            reasons.append(sig.reason)

    state = profile.state_token()
    if state and state.casefold() in text:
        total += STATE_POINTS
        reasons.append("state_match")

    for sig in (WORKFORCE, COMMUNITY):
        if _fires(sig, profile, text):
            total += sig.points
            reasons.append(sig.reason)

    for tag in profile.tags or []:
        needle = str(tag or "").replace("-", " ").strip().casefold()
        if needle and needle in text:
            total += TAG_POINTS
            reasons.append(needle)

    for biz in profile.businesses or []:
        sector = str(biz.sector or "").strip()
        if sector and sector.casefold() in text:
            total += SECTOR_POINTS
            reasons.append(sector)

    return MatchResult(score=max(0, min(total, 100)), reasons=list(dict.fromkeys(reasons)))


def score_hits(profile: Profile, hits: list[RawHit]) -> list[ScoredHit]:
    return [ScoredHit(hit=h, match=score(profile, h)) for h in hits]
