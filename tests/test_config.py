import pytest
from fastapi.testclient import TestClient

from plan_assistant.config import ALLOWED_MODELS, get_settings, load_settings
from plan_assistant.main import app
from plan_assistant.utils.errors import ConfigError


def test_defaults():
    settings = load_settings()
    assert settings.openai_model in ALLOWED_MODELS
    assert settings.temperature == 0.7
    assert settings.request_timeout == 30
    assert settings.max_retries == 2
    assert (settings.max_phases, settings.max_tasks_per_phase) == (5, 5)
    assert settings.generate_rate_limit.max_requests == 5
    assert settings.generate_rate_limit.window_ms == 120_000
    assert settings.explain_rate_limit.max_requests == 10
    assert settings.explain_rate_limit.window_ms == 300_000
    assert settings.devmode is False
    assert settings.is_production is False


def test_missing_api_key_is_rejected(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "  ")
    with pytest.raises(ConfigError, match="openai_api_key"):
        load_settings()


def test_unknown_model_is_rejected(monkeypatch):
    monkeypatch.setenv("OPENAI_MODEL", "gpt-9000")
    with pytest.raises(ConfigError, match="openai_model"):
        load_settings()


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4o")
    monkeypatch.setenv("MAX_PHASES", "3")
    monkeypatch.setenv("GENERATE_RATE_LIMIT_MAX", "2")
    monkeypatch.setenv("APP_ENV", "Production")
    monkeypatch.setenv("DEVMODE", "TRUE")

    settings = load_settings()

    assert settings.openai_model == "gpt-4o"
    assert settings.max_phases == 3
    assert settings.generate_rate_limit.max_requests == 2
    assert settings.is_production
    assert settings.devmode


def test_bad_numeric_override_is_rejected(monkeypatch):
    monkeypatch.setenv("EXPLAIN_RATE_LIMIT_MAX", "0")
    with pytest.raises(ConfigError, match="explain_rate_limit.max_requests"):
        load_settings()


def test_app_refuses_to_start_without_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")
    get_settings.cache_clear()

    with pytest.raises(ConfigError):
        with TestClient(app):
            pass
