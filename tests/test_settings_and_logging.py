from __future__ import annotations

import json
import logging

import pytest
import structlog

from grantflow.observability import logging as gf_logging
from grantflow.observability.context import search_id_var
from grantflow.observability.logging import configure_from_settings, configure_logging, get_logger
from grantflow.settings import Settings


def test_env_aliases_and_log_safe_view(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-secret")
    monkeypatch.setenv("GRANTFLOW_ENV", "prod")
    monkeypatch.setenv("SEARCH_PAGE_SIZE", "25")
    s = Settings()

    assert s.is_production
    assert s.search_page_size == 25
    assert s.provider_key("anthropic_api_key") == "sk-ant-secret"
    assert s.provider_key("openai_api_key") is None

    safe = s.to_log_safe_dict()
    assert safe["ai"]["anthropic_api_key_configured"] is True
    assert "sk-ant-secret" not in json.dumps(safe)


def test_blank_keys_count_as_missing():
    s = Settings(openai_api_key="   ")
    assert s.provider_key("openai_api_key") is None
    assert s.normalized_environment == "development"


@pytest.fixture
def fresh_logging(monkeypatch):
    root = logging.getLogger()
    saved = (list(root.handlers), root.level)
    monkeypatch.setattr(gf_logging, "_CONFIGURED", False)
    yield
    root.handlers = saved[0]
    root.setLevel(saved[1])
    structlog.reset_defaults()


def test_json_log_lines_carry_search_id(capsys, fresh_logging):
    configure_logging(level="INFO")
    log = get_logger("test")
    token = search_id_var.set("abc123")
    try:
        log.info("search_completed", hits=3)
    finally:
        search_id_var.reset(token)

    line = capsys.readouterr().out.strip().splitlines()[-1]
    event = json.loads(line)
    assert event["event"] == "search_completed"
    assert event["search_id"] == "abc123"
    assert event["hits"] == 3
    assert event["level"] == "info"
    assert logging.getLogger("httpx").level == logging.WARNING


def test_development_settings_log_readable_lines(capsys, fresh_logging):
    configure_from_settings(Settings(log_level="debug"))
    get_logger("test").debug("cache_miss", source="grants_gov")

    out = capsys.readouterr().out
    assert logging.getLogger().level == logging.DEBUG
    assert "cache_miss" in out
    assert "source=grants_gov" in out
    assert not out.lstrip().startswith("{")
