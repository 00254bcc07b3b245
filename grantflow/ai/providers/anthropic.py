from __future__ import annotations

import httpx

from ...domain.models import ChatMessage, ModelInfo, ProviderConfig
from ...observability.logging import get_logger
from .base import AiProvider, ProviderError, ProviderOutcome, ProviderReply, upstream_error_message

log = get_logger("ai_provider")

ANTHROPIC = ProviderConfig(
    id="anthropic",
    display_name="Anthropic",
    credential_key="anthropic_api_key",
    local_key="anthropic_key",
    description="Claude models for nuanced writing and analysis.",
    key_url="https://console.anthropic.com/settings/keys",
    key_prefix="sk-ant-",
    models=(
        ModelInfo(id="claude-3-5-sonnet-20241022", label="Claude 3.5 Sonnet", tier="flagship"),
        ModelInfo(id="claude-3-5-haiku-20241022", label="Claude 3.5 Haiku", tier="fast"),
        ModelInfo(id="claude-3-opus-20240229", label="Claude 3 Opus", tier="premium"),
    ),
)


class AnthropicProvider(AiProvider):
    config = ANTHROPIC
    url = "https://api.anthropic.com/v1/messages"
    api_version = "2023-06-01"

    async def call(
        self,
        credential: str,
        model_id: str,
        messages: list[ChatMessage],
        system_prompt: str | None = None,
    ) -> ProviderOutcome:
        # The messages API takes the system prompt out of band; system turns in the
        # transcript are folded into it.
        system_parts = [system_prompt] if system_prompt else []
        system_parts.extend(m.content for m in messages if m.role == "system")
        body = {
            "model": model_id,
            "max_tokens": self.max_output_tokens,
            "system": "\n\n".join(system_parts),
            "messages": [{"role": m.role, "content": m.content} for m in messages if m.role != "system"],
        }
        headers = {
            "x-api-key": credential,
            "anthropic-version": self.api_version,
            "content-type": "application/json",
        }
        try:
            status, payload = await self.post_json(self.url, headers=headers, body=body)
        except httpx.TimeoutException:
            return ProviderError(f"{self.display_name} request timed out")
        except httpx.HTTPError as e:
            return ProviderError(f"{self.display_name} connection failed: {e}")

        if not (200 <= status < 300):
            log.warning("ai_provider_status", provider=self.id, status_code=status)
            return ProviderError(
                upstream_error_message(payload, display_name=self.display_name, status_code=status),
                status_code=status,
            )
        blocks = payload.get("content") if isinstance(payload, dict) else None
        text = "".join(
            str(b.get("text") or "") for b in (blocks or []) if isinstance(b, dict)
        )
        return ProviderReply(text=text, provider=self.id, model=model_id)
