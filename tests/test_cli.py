"""CLI commands that run without a live provider."""

from __future__ import annotations

import json

import httpx
import pytest
from click.testing import CliRunner

from bgresearch import cli
from bgresearch.core.models import ProviderConfig
from bgresearch.operations.orchestrator import CompletionOrchestrator

from conftest import FakeUpstream, error_payload


def _json_from(output: str) -> dict:
    """The JSON document in *output*, ignoring any log lines around it."""
    return json.loads(output[output.index("{"): output.rindex("}") + 1])


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("OPENAI_API_KEY", "OPENAI_ENDPOINT", "OPENAI_BASE_URL", "RESEARCH_MODEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_provider(monkeypatch: pytest.MonkeyPatch):
    """Route ``CompletionOrchestrator.from_config`` through a mock transport."""

    def install(upstream: FakeUpstream) -> None:
        original = CompletionOrchestrator.from_config.__func__

        def from_config(cls, config: ProviderConfig, transport: httpx.AsyncBaseTransport | None = None):
            return original(cls, config, transport=upstream.transport)

        monkeypatch.setattr(CompletionOrchestrator, "from_config", classmethod(from_config))

    return install


def test_config_redacts_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-live-abcdefghijkl")
    result = CliRunner().invoke(cli.main, ["config"])

    assert result.exit_code == 0
    assert "gpt-4o-mini" in result.output
    assert "abcdefgh" not in result.output


def test_config_warns_without_key() -> None:
    result = CliRunner().invoke(cli.main, ["config"])
    assert result.exit_code == 0
    assert "OPENAI_API_KEY" in result.output


def test_analyze_rejects_blank_query() -> None:
    result = CliRunner().invoke(cli.main, ["analyze", "   "])
    assert result.exit_code == 1
    assert "Query is required" in result.output


def test_analyze_without_key_is_configuration_error() -> None:
    result = CliRunner().invoke(cli.main, ["analyze", "Apple healthcare"])
    assert result.exit_code == 1
    assert "Configuration error" in result.output


def test_analyze_json_success(monkeypatch: pytest.MonkeyPatch, fake_provider) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-0123456789")
    fake_provider(FakeUpstream())

    result = CliRunner().invoke(cli.main, ["analyze", "Apple healthcare", "--json"])

    assert result.exit_code == 0
    outcome = _json_from(result.output)
    assert outcome["outcome"] == "success"
    assert outcome["query"] == "Apple healthcare"
    assert outcome["metadata"]["tokens_used"] == 321


def test_analyze_failure_exits_nonzero(monkeypatch: pytest.MonkeyPatch, fake_provider) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-0123456789")
    fake_provider(FakeUpstream.returning(429, error_payload("insufficient_quota")))

    result = CliRunner().invoke(cli.main, ["analyze", "Apple healthcare", "--json"])

    assert result.exit_code == 1
    outcome = _json_from(result.output)
    assert outcome["outcome"] == "failure"
    assert outcome["kind"] == "quota_exceeded"


@pytest.fixture
def uvicorn_calls(monkeypatch: pytest.MonkeyPatch) -> list[dict]:
    import uvicorn

    calls: list[dict] = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append({"app": app, **kwargs}))
    for name in ("HOST", "PORT", "RESEARCH_LOG_LEVEL", "RESEARCH_TIMEOUT_MS"):
        monkeypatch.delenv(name, raising=False)
    return calls


def test_serve_uses_server_config(monkeypatch: pytest.MonkeyPatch, uvicorn_calls: list[dict]) -> None:
    monkeypatch.setenv("PORT", "9191")
    monkeypatch.setenv("RESEARCH_LOG_LEVEL", "WARNING")

    result = CliRunner().invoke(cli.main, ["serve"])

    assert result.exit_code == 0
    [call] = uvicorn_calls
    assert call["app"] == "bgresearch.server:app"
    assert call["host"] == "127.0.0.1"
    assert call["port"] == 9191
    assert call["log_level"] == "warning"


def test_serve_options_override_environment(monkeypatch: pytest.MonkeyPatch, uvicorn_calls: list[dict]) -> None:
    monkeypatch.setenv("RESEARCH_LOG_LEVEL", "warning")

    result = CliRunner().invoke(cli.main, ["serve", "--port", "9000", "--log-level", "debug"])

    assert result.exit_code == 0
    assert uvicorn_calls[0]["port"] == 9000
    assert uvicorn_calls[0]["log_level"] == "debug"


@pytest.mark.parametrize(
    "name, value, field",
    [
        ("PORT", "eighty", "port"),
        ("RESEARCH_LOG_LEVEL", "verbose", "log_level"),
        ("RESEARCH_TIMEOUT_MS", "-5", "timeout_ms"),
    ],
)
def test_serve_reports_invalid_configuration(
    monkeypatch: pytest.MonkeyPatch, uvicorn_calls: list[dict], name: str, value: str, field: str
) -> None:
    monkeypatch.setenv(name, value)

    result = CliRunner().invoke(cli.main, ["serve"])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
    assert field in result.output
    assert uvicorn_calls == []
