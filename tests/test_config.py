"""Tests for environment configuration."""

import pytest
from pydantic import ValidationError

from agentos_workbench.infrastructure.config import WorkbenchSettings, get_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults(monkeypatch):
    for name in ("AGENTOS_BASE_URL", "AGENTOS_STREAM_PATH", "AGENTOS_STREAM_IDLE_TIMEOUT", "PORT"):
        monkeypatch.delenv(name, raising=False)

    settings = get_settings()

    assert settings.stream_url == "http://localhost:3001/api/agentos/stream"
    assert settings.stream_idle_timeout == 120.0
    assert settings.port == 8000


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AGENTOS_BASE_URL", "https://agentos.internal/")
    monkeypatch.setenv("AGENTOS_STREAM_PATH", "/v2/stream")
    monkeypatch.setenv("AGENTOS_STREAM_IDLE_TIMEOUT", "15")
    monkeypatch.setenv("LOG_FORMAT", "console")
    monkeypatch.setenv("PORT", "9100")

    settings = get_settings()

    assert settings.stream_url == "https://agentos.internal/v2/stream"
    assert settings.stream_idle_timeout == 15.0
    assert settings.log_format == "console"
    assert settings.port == 9100


def test_settings_are_cached(monkeypatch):
    monkeypatch.setenv("PORT", "9100")
    first = get_settings()
    monkeypatch.setenv("PORT", "9200")

    assert get_settings() is first


def test_idle_timeout_must_be_positive():
    with pytest.raises(ValidationError):
        WorkbenchSettings(stream_idle_timeout=0)
