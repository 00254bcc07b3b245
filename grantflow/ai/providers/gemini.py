from __future__ import annotations

from typing import Any

import httpx

from ...domain.models import ChatMessage, ModelInfo, ProviderConfig
from ...observability.logging import get_logger
from .base import AiProvider, ProviderError, ProviderOutcome, ProviderReply, upstream_error_message

log = get_logger("ai_provider")

GEMINI = ProviderConfig(
    id="gemini",
    display_name="Google Gemini",
    credential_key="gemini_api_key",
    local_key="gemini_key",
    description="Multimodal Gemini models with large context windows.",
    key_url="https://aistudio.google.com/apikey",
    key_prefix="AIza",
    models=(
        ModelInfo(id="gemini-1.5-pro", label="Gemini 1.5 Pro", tier="flagship"),
        ModelInfo(id="gemini-1.5-flash", label="Gemini 1.5 Flash", tier="fast"),
        ModelInfo(id="gemini-2.0-flash-exp", label="Gemini 2.0 Flash (latest)", tier="standard"),
    ),
)


class GeminiProvider(AiProvider):
    config = GEMINI
    base_url = "https://generativelanguage.googleapis.com/v1beta/models"

    async def call(
        self,
        credential: str,
        model_id: str,
        messages: list[ChatMessage],
        system_prompt: str | None = None,
    ) -> ProviderOutcome:
        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
            for m in messages
        ]
        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {"maxOutputTokens": self.max_output_tokens},
        }
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        # Key goes in a header rather than the query string so it never shows up in URL logs.
        url = f"{self.base_url}/{model_id}:generateContent"
        headers = {"x-goog-api-key": credential, "content-type": "application/json"}
        try:
            status, payload = await self.post_json(url, headers=headers, body=body)
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
        return ProviderReply(text=_candidate_text(payload), provider=self.id, model=model_id)


def _candidate_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    candidates = payload.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))
