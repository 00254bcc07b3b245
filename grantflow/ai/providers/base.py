from __future__ import annotations

import contextlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator

import httpx

from ...domain.models import ChatMessage, ProviderConfig


@dataclass(frozen=True)
class ProviderReply:
    text: str
    provider: str
    model: str


@dataclass(frozen=True)
class ProviderError:
    error: str
    status_code: int | None = None


ProviderOutcome = ProviderReply | ProviderError


def upstream_error_message(payload: Any, *, display_name: str, status_code: int) -> str:
    """`error.message` from an upstream error body, else "<Name> API <status>"."""
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            msg = str(err.get("message") or "").strip()
            if msg:
                return msg
        elif isinstance(err, str) and err.strip():
            return err.strip()
    return f"{display_name} API {status_code}"


class AiProvider(ABC):
    """
    One LLM backend behind a uniform call contract.

    `call` returns a ProviderError for every ordinary failure (non-2xx, transport,
    unreadable body). The dispatcher still guards against anything that escapes.
    """

    config: ProviderConfig

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = 60.0,
        max_output_tokens: int = 4096,
    ):
        self._client = client
        self.timeout_s = float(timeout_s)
        self.max_output_tokens = max(1, int(max_output_tokens))

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def display_name(self) -> str:
        return self.config.display_name

    @contextlib.asynccontextmanager
    async def http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout_s) as c:
            yield c

    @abstractmethod
    async def call(
        self,
        credential: str,
        model_id: str,
        messages: list[ChatMessage],
        system_prompt: str | None = None,
    ) -> ProviderOutcome:
        raise NotImplementedError

    async def post_json(self, url: str, *, headers: dict[str, str], body: dict[str, Any]) -> tuple[int, Any]:
        """POST and return (status, parsed body or None)."""
        async with self.http() as c:
            resp = await c.post(url, headers=headers, json=body)
        try:
            payload = resp.json() if resp.content else None
        except ValueError:
            payload = None
        return resp.status_code, payload
