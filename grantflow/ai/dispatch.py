from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..db.kv_store import KeyValueStore
from ..domain.models import ChatMessage
from ..errors import ErrorKind, MalformedResponse
from ..observability.logging import get_logger
from ..settings import Settings, settings as default_settings
from .providers.base import AiProvider, ProviderError
from .registry import build_provider, resolve_active_provider, resolve_credential, resolve_model

log = get_logger("ai")

T = TypeVar("T", bound=BaseModel)

CONNECTION_TEST_PROMPT = "Reply with exactly one word: connected"
MAX_PROMPT_CHARS = 120_000


@dataclass(frozen=True)
class DispatchResult:
    text: str = ""
    provider: str | None = None
    model: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    # Validated model instance from `dispatch_json`.
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(
        cls,
        error: str,
        kind: ErrorKind,
        *,
        provider: str | None = None,
        model: str | None = None,
        text: str = "",
    ) -> "DispatchResult":
        return cls(text=text, provider=provider, model=model, error=error, error_kind=kind)


MessageLike = ChatMessage | Mapping[str, Any]


def _clip(s: str, max_len: int) -> str:
    s = str(s or "")
    return s if len(s) <= max_len else s[:max_len]


def _normalize_messages(messages: Iterable[MessageLike], max_chars: int) -> list[ChatMessage]:
    # Guard against accidentally sending huge prompts.
    out: list[ChatMessage] = []
    for m in messages or []:
        if isinstance(m, ChatMessage):
            role, content = m.role, m.content
        else:
            role = str(m.get("role") or "user")
            content = str(m.get("content") or "")
        if role not in ("user", "assistant", "system"):
            role = "user"
        out.append(ChatMessage(role=role, content=_clip(content, max_chars)))
    return out


_FENCE_RE = re.compile(r"^\s*```(?:json|JSON)?\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    s = str(text or "").strip()
    m = _FENCE_RE.match(s)
    return m.group(1).strip() if m else s


def _extract_first_json_value(text: str) -> str | None:
    m = re.search(r"[\{\[][\s\S]*[\}\]]", text or "")
    return m.group(0) if m else None


class Dispatcher:
    """
    Single entry point for every AI call.

    Resolves the provider (override, pinned setting, first configured), the credential
    (environment before local store) and the model, then makes exactly one call.
    Failures come back as `DispatchResult.error`; nothing raises to the caller.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        kv: KeyValueStore | None = None,
        providers: Mapping[str, AiProvider] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or default_settings
        self.kv = kv
        self._providers: dict[str, AiProvider] = dict(providers or {})
        self._client = client

    def provider(self, provider_id: str) -> AiProvider:
        p = self._providers.get(provider_id)
        if p is None:
            p = build_provider(provider_id, settings=self.settings, client=self._client)
            self._providers[provider_id] = p
        return p

    async def dispatch(
        self,
        messages: Iterable[MessageLike],
        system_prompt: str | None = None,
        provider_override: str | None = None,
    ) -> DispatchResult:
        cfg = resolve_active_provider(self.settings, self.kv, override=provider_override)
        if cfg is None:
            return DispatchResult.failure(f"Unknown AI provider: {provider_override}", ErrorKind.NOT_CONFIGURED)

        credential = resolve_credential(cfg, self.settings, self.kv)
        if not credential:
            return DispatchResult.failure(
                f"No {cfg.display_name} API key configured. Add one in Settings -> AI Config.",
                ErrorKind.NOT_CONFIGURED,
                provider=cfg.id,
            )

        model = resolve_model(cfg, self.settings, self.kv)
        msgs = _normalize_messages(messages, MAX_PROMPT_CHARS)
        started = time.monotonic()
        try:
            outcome = await self.provider(cfg.id).call(credential, model, msgs, system_prompt)
        except Exception as e:  # a provider bug must surface as an error result, not a crash
            log.exception("ai_dispatch_crashed", provider=cfg.id, model=model, error_type=e.__class__.__name__)
            return DispatchResult.failure(
                f"{cfg.display_name}: {str(e) or e.__class__.__name__}",
                ErrorKind.UPSTREAM_UNAVAILABLE,
                provider=cfg.id,
                model=model,
            )
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if isinstance(outcome, ProviderError):
            log.warning(
                "ai_dispatch_failed",
                provider=cfg.id,
                model=model,
                status_code=outcome.status_code,
                elapsed_ms=elapsed_ms,
            )
            return DispatchResult.failure(
                outcome.error, ErrorKind.UPSTREAM_UNAVAILABLE, provider=cfg.id, model=model
            )

        log.info("ai_dispatch_completed", provider=cfg.id, model=model, chars=len(outcome.text), elapsed_ms=elapsed_ms)
        return DispatchResult(text=outcome.text, provider=outcome.provider, model=outcome.model)

    async def dispatch_json(
        self,
        response_model: type[T],
        messages: Iterable[MessageLike],
        system_prompt: str | None = None,
        provider_override: str | None = None,
    ) -> DispatchResult:
        """
        Dispatch and validate the reply into `response_model`.

        Accepts a bare JSON document, one wrapped in a markdown fence, or prose with
        one embedded JSON value. Anything else is a MalformedResponse result carrying
        the raw text; partial data is never returned.
        """
        res = await self.dispatch(messages, system_prompt=system_prompt, provider_override=provider_override)
        if not res.ok:
            return res

        raw = strip_code_fences(res.text)
        data: Any = None
        try:
            data = json.loads(raw)
        except ValueError:
            candidate = _extract_first_json_value(raw)
            if candidate:
                try:
                    data = json.loads(candidate)
                except ValueError:
                    data = None

        if data is None:
            return self._malformed(res, "reply was not valid JSON")
        try:
            parsed = response_model.model_validate(data)
        except ValidationError as e:
            return self._malformed(res, f"reply did not match {response_model.__name__}: {e.error_count()} error(s)")
        return DispatchResult(text=res.text, provider=res.provider, model=res.model, data=parsed)

    def _malformed(self, res: DispatchResult, message: str) -> DispatchResult:
        err = MalformedResponse(str(res.provider or "ai"), message)
        log.warning("ai_dispatch_malformed", provider=res.provider, model=res.model, reason=message)
        return DispatchResult.failure(
            str(err), ErrorKind.MALFORMED_RESPONSE, provider=res.provider, model=res.model, text=res.text
        )

    async def test_connection(self, provider_override: str | None = None) -> DispatchResult:
        return await self.dispatch(
            [ChatMessage(role="user", content=CONNECTION_TEST_PROMPT)],
            provider_override=provider_override,
        )
