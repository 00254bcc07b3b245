from __future__ import annotations

import re
from datetime import date
from typing import Iterable

from ..domain.models import Grant, Profile
from ..domain.pipeline.stages import AWARDED_STAGES, INACTIVE_STAGES, Stage
from ..modules.workflow.stage_machine import stage_counts

NEAREST_DEADLINES = 5

# Anything shaped like a provider credential or bearer token. Prefixes only count
# at the start of a token, so words like "Risk-Assessment" pass through.
_SECRET_RE = re.compile(
    r"(?<![A-Za-z0-9])(sk-(?:or-|ant-)?[A-Za-z0-9_\-]{8,}|nvapi-[A-Za-z0-9_\-]{8,}|AIza[A-Za-z0-9_\-]{20,}"
    r"|\b[Bb]earer\s+[A-Za-z0-9._\-]{8,}|\b[A-Za-z0-9_\-]{40,}\b)"
)


def clip_text(text: str, *, max_chars: int) -> str:
    s = str(text or "")
    if max_chars <= 0:
        return ""
    return s if len(s) <= max_chars else s[:max_chars]


def normalize_ws(text: str, *, max_chars: int) -> str:
    s = re.sub(r"\s+", " ", str(text or "")).strip()
    return clip_text(s, max_chars=max_chars)


def redact_secrets(text: str) -> str:
    return _SECRET_RE.sub("[redacted]", str(text or ""))


def _money(v: float) -> str:
    return f"${v:,.0f}"


def build_portfolio_context(
    grants: Iterable[Grant],
    profile: Profile,
    *,
    documents: int = 0,
    contacts: int = 0,
    today: date | None = None,
    max_chars: int = 4000,
) -> str:
    """
    Plain-text portfolio summary used to prime AI prompts.

    Deterministic for the same inputs and `today`. Values that look like API keys
    are redacted; the result is clipped to `max_chars`.
    """
    items = list(grants)
    ref = today or date.today()

    active = [g for g in items if g.stage not in INACTIVE_STAGES]
    awarded = [g for g in items if g.stage in AWARDED_STAGES]
    sought = sum(float(g.amount or 0) for g in active)
    won = sum(float(g.amount or 0) for g in awarded)

    lines: list[str] = ["PORTFOLIO"]
    lines.append(f"Active pursuits: {len(active)} ({_money(sought)} sought)")
    lines.append(f"Awarded: {len(awarded)} ({_money(won)})")

    counts = stage_counts(items)
    by_stage = [f"{s.label}: {counts[s]}" for s in Stage if counts.get(s)]
    if by_stage:
        lines.append("By stage: " + ", ".join(by_stage))
    lines.append(f"Documents: {int(documents)} | Contacts: {int(contacts)}")

    lines.append("")
    lines.append("APPLICANT")
    if profile.name:
        lines.append(f"Name: {normalize_ws(profile.name, max_chars=200)}")
    if profile.location:
        lines.append(f"Location: {normalize_ws(profile.location, max_chars=200)}")
    flags = [
        label
        for label, on in (
            ("rural", profile.rural),
            ("disabled", profile.disabled),
            ("low income", profile.poverty),
            ("self-employed", profile.self_employed),
        )
        if on
    ]
    if flags:
        lines.append("Attributes: " + ", ".join(flags))
    if profile.tags:
        lines.append("Tags: " + ", ".join(sorted({t for t in profile.tags if t})))
    for b in profile.businesses:
        desc = f" - {normalize_ws(b.description, max_chars=160)}" if b.description else ""
        lines.append(f"Business: {b.name or 'Unnamed'} ({b.sector or 'n/a'}, {b.status or 'n/a'}){desc}")

    upcoming = sorted(
        (g for g in active if g.deadline is not None and g.deadline >= ref),
        key=lambda g: (g.deadline, g.title, g.id),
    )[:NEAREST_DEADLINES]
    if upcoming:
        lines.append("")
        lines.append("UPCOMING DEADLINES")
        for g in upcoming:
            days = (g.deadline - ref).days  # type: ignore[operator]
            lines.append(f"- {normalize_ws(g.title, max_chars=120)} ({g.stage.label}): {g.deadline.isoformat()}, {days} days left")  # type: ignore[union-attr]

    narratives = [(k, v) for k, v in sorted(profile.narratives.items()) if str(v or "").strip()]
    if narratives:
        lines.append("")
        lines.append("NARRATIVES")
        for k, v in narratives:
            lines.append(f"{k}: {normalize_ws(v, max_chars=600)}")

    return clip_text(redact_secrets("\n".join(lines)), max_chars=max_chars)
