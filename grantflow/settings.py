from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore", populate_by_name=True)

    # Runtime
    environment: str = Field(default="development", validation_alias="GRANTFLOW_ENV")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Local persistence (JSON key/value document). Unset means in-memory only.
    store_path: str | None = Field(default=None, validation_alias="GRANTFLOW_STORE_PATH")

    # Search / aggregation
    search_page_size: int = Field(default=40, validation_alias="SEARCH_PAGE_SIZE")
    # Per-adapter budget; a slower adapter is treated as failed for that call.
    adapter_timeout_s: float = Field(default=15.0, validation_alias="ADAPTER_TIMEOUT_S")
    adapter_cache_ttl_s: int = Field(default=300, validation_alias="ADAPTER_CACHE_TTL_S")
    adapter_cache_max_entries: int = Field(default=256, validation_alias="ADAPTER_CACHE_MAX_ENTRIES")

    grants_gov_search_url: str = Field(
        default="https://apply07.grants.gov/grantsws/rest/opportunities/search",
        validation_alias="GRANTS_GOV_SEARCH_URL",
    )
    usaspending_search_url: str = Field(
        default="https://api.usaspending.gov/api/v2/search/spending_by_award/",
        validation_alias="USASPENDING_SEARCH_URL",
    )
    state_portal_search_url: str = Field(
        default="https://data.ca.gov/api/3/action/datastore_search",
        validation_alias="STATE_PORTAL_SEARCH_URL",
    )
    state_portal_resource_id: str = Field(
        default="ca-grants-portal-grants", validation_alias="STATE_PORTAL_RESOURCE_ID"
    )
    state_portal_label: str = Field(default="CA", validation_alias="STATE_PORTAL_LABEL")

    # AI providers. Environment wins over keys persisted in the local store.
    openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
    anthropic_api_key: str | None = Field(default=None, validation_alias="ANTHROPIC_API_KEY")
    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
    nvidia_api_key: str | None = Field(default=None, validation_alias="NVIDIA_API_KEY")

    # Optional pins; the persisted `ai_provider` / `ai_model` entries take precedence.
    ai_provider: str | None = Field(default=None, validation_alias="AI_PROVIDER")
    ai_model: str | None = Field(default=None, validation_alias="AI_MODEL")
    # Guardrail: clamp max output tokens (prevents accidental cost explosions).
    ai_max_output_tokens: int = Field(default=4096, validation_alias="AI_MAX_OUTPUT_TOKENS")
    ai_timeout_s: float = Field(default=60.0, validation_alias="AI_TIMEOUT_S")
    ai_app_title: str = Field(default="Grantflow", validation_alias="AI_APP_TITLE")
    ai_app_referer: str = Field(default="http://localhost", validation_alias="AI_APP_REFERER")

    # ---- helpers / derived flags ----
    @property
    def normalized_environment(self) -> str:
        v = (self.environment or "").strip().lower()
        if v in ("prod", "production"):
            return "production"
        if v in ("test", "testing"):
            return "test"
        if v in ("dev", "development"):
            return "development"
        return v or "development"

    @property
    def is_production(self) -> bool:
        return self.normalized_environment == "production"

    def provider_key(self, field_name: str) -> str | None:
        v = getattr(self, field_name, None)
        s = str(v or "").strip()
        return s or None

    def to_log_safe_dict(self) -> dict[str, object]:
        """
        A redacted representation safe for structured logs / diagnostics.
        """
        def _has(v: object) -> bool:
            return v is not None and str(v).strip() != ""

        return {
            "environment": self.normalized_environment,
            "log_level": self.log_level,
            "store_path": self.store_path,
            "search": {
                "page_size": self.search_page_size,
                "adapter_timeout_s": self.adapter_timeout_s,
                "adapter_cache_ttl_s": self.adapter_cache_ttl_s,
                "state_portal_label": self.state_portal_label,
            },
            "ai": {
                "openrouter_api_key_configured": _has(self.openrouter_api_key),
                "anthropic_api_key_configured": _has(self.anthropic_api_key),
                "openai_api_key_configured": _has(self.openai_api_key),
                "gemini_api_key_configured": _has(self.gemini_api_key),
                "nvidia_api_key_configured": _has(self.nvidia_api_key),
                "ai_provider": self.ai_provider,
                "ai_model": self.ai_model,
                "ai_max_output_tokens": self.ai_max_output_tokens,
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


# Module-level singleton; components accept an explicit Settings for tests.
settings = get_settings()
