from __future__ import annotations

import json
from datetime import date

import anyio

from grantflow.ai.context import build_portfolio_context, redact_secrets
from grantflow.ai.dispatch import Dispatcher
from grantflow.ai.features import (
    FitAnalysis,
    SearchRecommendations,
    StrategicBrief,
    analyze_fit,
    recommend_searches,
    strategic_brief,
)
from grantflow.ai.providers.base import AiProvider, ProviderReply
from grantflow.ai.providers.openai_compat import OPENROUTER
from grantflow.db.kv_store import InMemoryKeyValueStore
from grantflow.domain.models import Business, Grant, Profile, RawHit
from grantflow.domain.pipeline.stages import Stage
from grantflow.modules.pursuits.pursuit_store import PursuitStore

TODAY = date(2025, 6, 1)

PROFILE = Profile(
    name="Dana Reyes",
    location="Hayfork, California",
    rural=True,
    self_employed=True,
    tags=["broadband"],
    businesses=[Business(name="Ridge Net", sector="Telecommunications", description="Fixed wireless ISP")],
    narratives={"founder": "Built a wireless network for the valley.", "need": ""},
)


def _grants() -> list[Grant]:
    return [
        Grant(id="g1", title="ReConnect", amount=500_000, stage=Stage.DRAFTING, deadline=date(2025, 6, 11)),
        Grant(id="g2", title="BEAD Subgrant", amount=250_000, stage=Stage.AWARDED),
        Grant(id="g3", title="Old Ask", amount=90_000, stage=Stage.DECLINED, deadline=date(2025, 6, 5)),
        Grant(id="g4", title="Past Deadline", amount=10_000, stage=Stage.RESEARCHING, deadline=date(2025, 5, 1)),
    ]


class ScriptedProvider(AiProvider):
    config = OPENROUTER

    def __init__(self, text: str):
        super().__init__()
        self.text = text
        self.prompts: list[str] = []
        self.system_prompts: list[str | None] = []

    async def call(self, credential, model_id, messages, system_prompt=None):
        self.prompts.append(messages[-1].content)
        self.system_prompts.append(system_prompt)
        return ProviderReply(text=self.text, provider="openrouter", model=model_id)


def _dispatcher(clean_settings, text: str) -> tuple[Dispatcher, ScriptedProvider]:
    provider = ScriptedProvider(text)
    s = clean_settings.model_copy(update={"openrouter_api_key": "sk-or-test-credential"})
    return Dispatcher(settings=s, providers={"openrouter": provider}), provider


def test_portfolio_context_summarizes_portfolio():
    ctx = build_portfolio_context(_grants(), PROFILE, documents=3, contacts=2, today=TODAY)

    assert "Active pursuits: 3 ($760,000 sought)" in ctx
    assert "Awarded: 1 ($250,000)" in ctx
    assert "By stage: Researching: 1, Drafting: 1, Awarded: 1, Declined: 1" in ctx
    assert "Documents: 3 | Contacts: 2" in ctx
    assert "Business: Ridge Net (Telecommunications, active) - Fixed wireless ISP" in ctx
    assert "- ReConnect (Drafting): 2025-06-11, 10 days left" in ctx
    # Declined and past-deadline pursuits are not upcoming.
    assert "Old Ask" not in ctx
    assert "Past Deadline" not in ctx
    assert "founder: Built a wireless network for the valley." in ctx
    assert "need:" not in ctx


def test_portfolio_context_is_deterministic_and_clipped():
    a = build_portfolio_context(_grants(), PROFILE, today=TODAY)
    b = build_portfolio_context(list(reversed(_grants())), PROFILE, today=TODAY)
    assert a == b
    assert len(build_portfolio_context(_grants(), PROFILE, today=TODAY, max_chars=50)) == 50


def test_portfolio_context_redacts_key_like_values():
    leaky = PROFILE.model_copy(update={"narratives": {"founder": "my key is sk-or-v1-abcdef0123456789 ok"}})
    ctx = build_portfolio_context([], leaky, today=TODAY)
    assert "sk-or-v1" not in ctx
    assert "[redacted]" in ctx
    assert redact_secrets("nvapi-AAAAAAAAAAAA and AIzaSyA1234567890123456789012") == "[redacted] and [redacted]"
    assert redact_secrets("plain words stay") == "plain words stay"


def test_portfolio_context_keeps_hyphenated_words():
    grants = [Grant(title="Risk-Assessment Capacity Program", deadline=date(2025, 7, 1))]
    profile = Profile(name="Desk-Operations Collective", tags=["Kiosk-Deployment"])

    ctx = build_portfolio_context(grants, profile, today=TODAY)

    assert "Name: Desk-Operations Collective" in ctx
    assert "- Risk-Assessment Capacity Program (Discovered)" in ctx
    assert "Kiosk-Deployment" in ctx
    assert "[redacted]" not in ctx
    assert redact_secrets("Risk-Assessment key sk-or-v1-abcdef0123456789") == "Risk-Assessment key [redacted]"


def test_recommend_searches(clean_settings):
    payload = {"searches": [{"query": "rural broadband grants", "reason": "rural ISP", "priority": "high", "category": "Telecom"}]}
    d, provider = _dispatcher(clean_settings, json.dumps(payload))

    res = anyio.run(recommend_searches, d, PROFILE)

    assert isinstance(res.data, SearchRecommendations)
    assert res.data.searches[0].query == "rural broadband grants"
    assert "Location: Hayfork, California" in provider.prompts[0]
    assert "RESPOND ONLY IN JSON" in provider.system_prompts[0]


def test_analyze_fit_includes_keyword_prior(clean_settings):
    d, provider = _dispatcher(
        clean_settings, '```json\n{"fit_score": 82, "strengths": ["rural"], "gaps": [], "recommendation": "Apply"}\n```'
    )
    hit = RawHit(source="grants_gov", external_id="1", title="Rural Broadband Technology Grant", amount=1_000_000)

    res = anyio.run(analyze_fit, d, PROFILE, hit)

    assert res.data == FitAnalysis(fit_score=82, strengths=["rural"], gaps=[], recommendation="Apply")
    assert "Keyword match score: 35/100 (rural, technology, broadband)" in provider.prompts[0]
    assert "Amount: $1,000,000" in provider.prompts[0]


def test_strategic_brief_uses_store_without_leaking_credentials(clean_settings):
    store = PursuitStore(InMemoryKeyValueStore())
    for g in _grants():
        store.add_grant(g)
    d, provider = _dispatcher(clean_settings, '{"insights": ["a"], "risks": ["b"], "recommendation": "c"}')

    res = anyio.run(strategic_brief, d, store, PROFILE)

    assert res.data == StrategicBrief(insights=["a"], risks=["b"], recommendation="c")
    assert "Active pursuits: 3" in provider.prompts[0]
    assert "sk-or-test-credential" not in provider.prompts[0]


def test_features_surface_configuration_errors(clean_settings):
    res = anyio.run(recommend_searches, Dispatcher(settings=clean_settings), PROFILE)
    assert res.data is None
    assert res.error.startswith("No OpenRouter API key configured")
