from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure the repo root is on sys.path so `import grantflow.*` works without an install.
ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

_PROVIDER_ENV = (
    "OPENROUTER_API_KEY",
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "NVIDIA_API_KEY",
    "AI_PROVIDER",
    "AI_MODEL",
)


@pytest.fixture
def clean_settings(monkeypatch):
    """Settings built from an environment with no provider keys or pins."""
    for name in _PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)
    from grantflow.settings import Settings

    return Settings()
