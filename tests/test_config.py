"""Configuration resolution: overrides > environment > defaults, frozen after load."""

from __future__ import annotations

import pydantic
import pytest

from bgresearch.core.models import (
    DEFAULT_BASE_URL,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT_MS,
    ProviderConfig,
    ServerConfig,
)

_ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_ENDPOINT",
    "OPENAI_BASE_URL",
    "RESEARCH_MODEL",
    "RESEARCH_MAX_TOKENS",
    "RESEARCH_TEMPERATURE",
    "RESEARCH_TIMEOUT_MS",
    "HOST",
    "PORT",
    "RESEARCH_CORS_ORIGINS",
    "RESEARCH_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    config = ProviderConfig.from_env()
    assert config.api_key is None
    assert not config.has_credentials
    assert config.base_url == DEFAULT_BASE_URL
    assert config.model == DEFAULT_MODEL
    assert config.max_tokens == 2000
    assert config.temperature == 0.7
    assert config.timeout_ms == DEFAULT_TIMEOUT_MS
    assert config.timeout_seconds == 30.0


def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-live-abcdefghijkl")
    monkeypatch.setenv("OPENAI_ENDPOINT", "https://gateway.internal/openai/v1")
    monkeypatch.setenv("RESEARCH_MODEL", "gpt-4o")
    monkeypatch.setenv("RESEARCH_MAX_TOKENS", "1200")
    monkeypatch.setenv("RESEARCH_TEMPERATURE", "0.2")
    monkeypatch.setenv("RESEARCH_TIMEOUT_MS", "45000")

    config = ProviderConfig.from_env()
    assert config.has_credentials
    assert config.base_url == "https://gateway.internal/openai/v1"
    assert config.model == "gpt-4o"
    assert config.max_tokens == 1200
    assert config.temperature == 0.2
    assert config.timeout_ms == 45000


def test_base_url_alias_and_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_BASE_URL", "https://alias.example/v1")
    assert ProviderConfig.from_env().base_url == "https://alias.example/v1"

    monkeypatch.setenv("OPENAI_ENDPOINT", "https://primary.example/v1")
    assert ProviderConfig.from_env().base_url == "https://primary.example/v1"


def test_empty_values_are_absent(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "   ")
    monkeypatch.setenv("RESEARCH_MODEL", "")
    config = ProviderConfig.from_env()
    assert config.api_key is None
    assert config.model == DEFAULT_MODEL


def test_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RESEARCH_MODEL", "gpt-4o")
    assert ProviderConfig.from_env(model="gpt-4.1-mini").model == "gpt-4.1-mini"


@pytest.mark.parametrize(
    "name, value",
    [
        ("RESEARCH_TEMPERATURE", "1.5"),
        ("RESEARCH_TEMPERATURE", "-0.1"),
        ("RESEARCH_MAX_TOKENS", "0"),
        ("RESEARCH_TIMEOUT_MS", "-1"),
        ("RESEARCH_TIMEOUT_MS", "soon"),
    ],
)
def test_out_of_range_values_fail_at_load(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(pydantic.ValidationError):
        ProviderConfig.from_env()


def test_config_is_frozen() -> None:
    config = ProviderConfig(api_key="sk-test")
    with pytest.raises(pydantic.ValidationError):
        config.model = "something-else"


def test_redacted_never_contains_key() -> None:
    config = ProviderConfig(api_key="sk-live-abcdefghijkl")
    redacted = config.redacted()
    assert redacted["api_key"] != config.api_key
    assert "abcdefgh" not in str(redacted)
    assert ProviderConfig().redacted()["api_key"] is None


def test_server_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HOST", "0.0.0.0")
    monkeypatch.setenv("PORT", "9090")
    monkeypatch.setenv("RESEARCH_CORS_ORIGINS", "https://a.example, https://b.example,")

    server = ServerConfig.from_env()
    assert server.host == "0.0.0.0"
    assert server.port == 9090
    assert server.cors_origins == ("https://a.example", "https://b.example")


def test_server_config_defaults() -> None:
    server = ServerConfig.from_env()
    assert server.port == 8080
    assert server.cors_origins == ("*",)


def test_server_log_level_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    assert ServerConfig.from_env().log_level == "info"

    monkeypatch.setenv("RESEARCH_LOG_LEVEL", "DEBUG")
    assert ServerConfig.from_env().log_level == "debug"


def test_server_log_level_rejects_unknown_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RESEARCH_LOG_LEVEL", "chatty")
    with pytest.raises(pydantic.ValidationError):
        ServerConfig.from_env()


def test_version_comes_from_checkout() -> None:
    import bgresearch

    assert bgresearch._checkout_version() == "1.0.0"
    assert bgresearch.__version__ == "1.0.0"
