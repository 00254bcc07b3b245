from __future__ import annotations

from typing import Any, Callable

import httpx

from ..db.kv_store import KeyValueStore
from ..domain.models import ProviderConfig
from ..settings import Settings
from .providers.anthropic import ANTHROPIC, AnthropicProvider
from .providers.base import AiProvider
from .providers.gemini import GEMINI, GeminiProvider
from .providers.openai_compat import (
    NVIDIA,
    OPENAI,
    OPENROUTER,
    NvidiaProvider,
    OpenAIProvider,
    OpenRouterProvider,
)

ProviderFactory = Callable[[Settings, httpx.AsyncClient | None], AiProvider]

# Priority order: auto-selection picks the first provider with a usable credential.
PROVIDERS: dict[str, ProviderConfig] = {
    OPENROUTER.id: OPENROUTER,
    ANTHROPIC.id: ANTHROPIC,
    OPENAI.id: OPENAI,
    GEMINI.id: GEMINI,
    NVIDIA.id: NVIDIA,
}
PRIORITY: tuple[str, ...] = tuple(PROVIDERS)
DEFAULT_PROVIDER = OPENROUTER.id

# Persisted selections in the key/value store.
PROVIDER_SETTING_KEY = "ai_provider"
MODEL_SETTING_KEY = "ai_model"


def _common(s: Settings, c: httpx.AsyncClient | None) -> dict[str, Any]:
    return {"client": c, "timeout_s": s.ai_timeout_s, "max_output_tokens": s.ai_max_output_tokens}


_FACTORIES: dict[str, ProviderFactory] = {
    "openrouter": lambda s, c: OpenRouterProvider(
        app_title=s.ai_app_title, app_referer=s.ai_app_referer, **_common(s, c)
    ),
    "anthropic": lambda s, c: AnthropicProvider(**_common(s, c)),
    "openai": lambda s, c: OpenAIProvider(**_common(s, c)),
    "gemini": lambda s, c: GeminiProvider(**_common(s, c)),
    "nvidia": lambda s, c: NvidiaProvider(**_common(s, c)),
}


def get_provider_config(provider_id: str | None) -> ProviderConfig | None:
    return PROVIDERS.get(str(provider_id or "").strip().lower())


def build_provider(provider_id: str, *, settings: Settings, client: httpx.AsyncClient | None = None) -> AiProvider:
    factory = _FACTORIES.get(provider_id)
    if not factory:
        raise KeyError(f"unknown provider: {provider_id}")
    return factory(settings, client)


def build_providers(*, settings: Settings, client: httpx.AsyncClient | None = None) -> dict[str, AiProvider]:
    return {pid: build_provider(pid, settings=settings, client=client) for pid in PRIORITY}


def _stored_str(kv: KeyValueStore | None, key: str) -> str | None:
    if kv is None:
        return None
    v = kv.get(key)
    s = str(v).strip() if isinstance(v, str) else ""
    return s or None


def resolve_credential(config: ProviderConfig, settings: Settings, kv: KeyValueStore | None = None) -> str | None:
    """Environment/settings first, then the locally saved key."""
    return settings.provider_key(config.credential_key) or _stored_str(kv, config.local_key)


def resolve_active_provider(
    settings: Settings,
    kv: KeyValueStore | None = None,
    *,
    override: str | None = None,
) -> ProviderConfig | None:
    """
    Provider selection:

    1. explicit non-blank `override` (None if it names no known provider)
    2. persisted `ai_provider`, then `AI_PROVIDER`, when it names a known provider
    3. first provider in priority order with a resolvable credential
    4. OpenRouter, so the caller can surface a "configure a key" error
    """
    override = str(override or "").strip()
    if override:
        return get_provider_config(override)

    for pinned in (_stored_str(kv, PROVIDER_SETTING_KEY), settings.ai_provider):
        cfg = get_provider_config(pinned)
        if cfg is not None:
            return cfg

    for pid in PRIORITY:
        cfg = PROVIDERS[pid]
        if resolve_credential(cfg, settings, kv):
            return cfg
    return PROVIDERS[DEFAULT_PROVIDER]


def resolve_model(config: ProviderConfig, settings: Settings, kv: KeyValueStore | None = None) -> str:
    """The pinned model when the provider's catalog carries it, else the catalog's first entry."""
    known = config.model_ids()
    for pinned in (_stored_str(kv, MODEL_SETTING_KEY), settings.ai_model):
        if pinned and pinned in known:
            return pinned
    return known[0]


def available_providers(settings: Settings, kv: KeyValueStore | None = None) -> list[dict[str, Any]]:
    """Provider catalog with a `configured` flag; never includes the credential itself."""
    out: list[dict[str, Any]] = []
    for pid in PRIORITY:
        cfg = PROVIDERS[pid]
        out.append(
            {
                "id": cfg.id,
                "name": cfg.display_name,
                "description": cfg.description,
                "keyUrl": cfg.key_url,
                "models": [m.model_dump() for m in cfg.models],
                "configured": resolve_credential(cfg, settings, kv) is not None,
            }
        )
    return out
