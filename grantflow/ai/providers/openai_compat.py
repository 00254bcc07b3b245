from __future__ import annotations

from typing import Any

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from ...domain.models import ChatMessage, ModelInfo, ProviderConfig
from ...observability.logging import get_logger
from .base import AiProvider, ProviderError, ProviderOutcome, ProviderReply, upstream_error_message

log = get_logger("ai_provider")


class OpenAICompatibleProvider(AiProvider):
    """
    Chat-completions backends reached through the `openai` SDK with a `base_url`.

    The SDK's own retries are disabled; the dispatcher never retries either.
    """

    base_url: str = "https://api.openai.com/v1"

    def __init__(self, *, default_headers: dict[str, str] | None = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.default_headers = dict(default_headers or {})

    def _sdk(self, credential: str) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=credential,
            base_url=self.base_url,
            max_retries=0,
            timeout=self.timeout_s,
            default_headers=self.default_headers or None,
            http_client=self._client,
        )

    async def call(
        self,
        credential: str,
        model_id: str,
        messages: list[ChatMessage],
        system_prompt: str | None = None,
    ) -> ProviderOutcome:
        msgs: list[dict[str, str]] = []
        if system_prompt:
            msgs.append({"role": "system", "content": system_prompt})
        msgs.extend({"role": m.role, "content": m.content} for m in messages)

        try:
            resp = await self._sdk(credential).chat.completions.create(
                model=model_id,
                messages=msgs,  # type: ignore[arg-type]
                max_tokens=self.max_output_tokens,
            )
        except APIStatusError as e:
            log.warning("ai_provider_status", provider=self.id, status_code=e.status_code)
            return ProviderError(
                upstream_error_message(_status_body(e), display_name=self.display_name, status_code=e.status_code),
                status_code=e.status_code,
            )
        except APITimeoutError:
            return ProviderError(f"{self.display_name} request timed out")
        except APIConnectionError as e:
            return ProviderError(f"{self.display_name} connection failed: {e}")

        text = ""
        if resp.choices:
            text = resp.choices[0].message.content or ""
        return ProviderReply(text=text, provider=self.id, model=model_id)


def _status_body(e: APIStatusError) -> Any:
    # The SDK already unwraps `{"error": {...}}` into `e.body` on most versions.
    body = e.body
    if isinstance(body, dict) and "error" not in body and "message" in body:
        return {"error": body}
    if body is None:
        try:
            return e.response.json()
        except (ValueError, httpx.ResponseNotRead):
            return None
    return body


OPENROUTER = ProviderConfig(
    id="openrouter",
    display_name="OpenRouter",
    credential_key="openrouter_api_key",
    local_key="openrouter_key",
    description="Meta-router with access to all major models. Recommended primary.",
    key_url="https://openrouter.ai/keys",
    key_prefix="sk-or-",
    models=(
        ModelInfo(id="anthropic/claude-3.5-sonnet", label="Claude 3.5 Sonnet", tier="flagship"),
        ModelInfo(id="openai/gpt-4o", label="GPT-4o", tier="flagship"),
        ModelInfo(id="google/gemini-pro-1.5", label="Gemini 1.5 Pro", tier="flagship"),
        ModelInfo(id="openai/o1-mini", label="OpenAI o1-mini", tier="reasoning"),
        ModelInfo(id="meta-llama/llama-3.1-405b-instruct", label="Llama 3.1 405B", tier="standard"),
        ModelInfo(id="google/gemini-flash-1.5", label="Gemini 1.5 Flash", tier="fast"),
        ModelInfo(id="openrouter/auto", label="Auto-router", tier="standard"),
    ),
)

OPENAI = ProviderConfig(
    id="openai",
    display_name="OpenAI",
    credential_key="openai_api_key",
    local_key="openai_key",
    description="GPT models with strong general-purpose reasoning and code.",
    key_url="https://platform.openai.com/api-keys",
    key_prefix="sk-",
    models=(
        ModelInfo(id="gpt-4o", label="GPT-4o", tier="flagship"),
        ModelInfo(id="gpt-4o-mini", label="GPT-4o Mini", tier="fast"),
        ModelInfo(id="o1-mini", label="o1-mini (reasoning)", tier="reasoning"),
        ModelInfo(id="gpt-4-turbo", label="GPT-4 Turbo", tier="standard"),
    ),
)

NVIDIA = ProviderConfig(
    id="nvidia",
    display_name="NVIDIA NIM",
    credential_key="nvidia_api_key",
    local_key="nvidia_key",
    description="NVIDIA-hosted open models on enterprise GPUs.",
    key_url="https://build.nvidia.com/explore/discover",
    key_prefix="nvapi-",
    models=(
        ModelInfo(id="meta/llama-3.1-405b-instruct", label="Llama 3.1 405B", tier="flagship"),
        ModelInfo(id="meta/llama-3.1-70b-instruct", label="Llama 3.1 70B", tier="standard"),
        ModelInfo(id="nvidia/llama-3.1-nemotron-70b-instruct", label="Nemotron 70B", tier="custom"),
    ),
)


class OpenRouterProvider(OpenAICompatibleProvider):
    config = OPENROUTER
    base_url = "https://openrouter.ai/api/v1"

    def __init__(self, *, app_title: str = "Grantflow", app_referer: str = "http://localhost", **kwargs: Any):
        headers = {"HTTP-Referer": app_referer, "X-Title": app_title}
        super().__init__(default_headers=headers, **kwargs)


class OpenAIProvider(OpenAICompatibleProvider):
    config = OPENAI
    base_url = "https://api.openai.com/v1"


class NvidiaProvider(OpenAICompatibleProvider):
    config = NVIDIA
    base_url = "https://integrate.api.nvidia.com/v1"
