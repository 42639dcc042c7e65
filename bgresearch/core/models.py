"""
bgresearch.core.models — Pydantic schemas for the research pipeline.

Every entity here lives for the duration of a single request, except the
two configuration models, which are loaded once at start-up and frozen.

    Query ──► PromptPair ──► ChatCompletionRequest ──► (upstream)
                                                          │
    RequestOutcome ◄── CompletionResult ◄── ChatCompletionResponse
"""

from __future__ import annotations

import json
import os
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_TOKENS = 2000
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TIMEOUT_MS = 30_000


def _env(*names: str) -> str | None:
    """First non-empty value among the given environment variables."""
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return None


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class FailureKind(StrEnum):
    """Closed set of upstream failure classifications."""
    QUOTA_EXCEEDED = "quota_exceeded"           # Retry later
    AUTH_CONFIGURATION = "auth_configuration"   # Operator must fix credentials
    TIMEOUT = "timeout"                         # Retry now
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    EMPTY_RESPONSE = "empty_response"
    UNKNOWN = "unknown"


class RunStage(StrEnum):
    """Orchestration stages, in the only order they may be visited."""
    VALIDATED = "validated"
    PROMPT_BUILT = "prompt_built"
    AWAITING_UPSTREAM = "awaiting_upstream"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Query & prompt
# ---------------------------------------------------------------------------

class Query(BaseModel):
    """A validated research query. Always stored trimmed and non-empty."""
    model_config = ConfigDict(frozen=True)

    text: str = Field(min_length=1)


class PromptPair(BaseModel):
    """The (system, user) message pair submitted to the upstream provider."""
    model_config = ConfigDict(frozen=True)

    system: str
    user: str
    template_version: str

    def to_messages(self) -> list[ChatMessage]:
        return [
            ChatMessage(role="system", content=self.system),
            ChatMessage(role="user", content=self.user),
        ]

    def canonical_bytes(self) -> bytes:
        """Deterministic serialisation (sorted keys, no whitespace)."""
        return json.dumps(
            self.model_dump(),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        ).encode("utf-8")


# ---------------------------------------------------------------------------
# OpenAI-compatible chat schema (adapter wire format)
# ---------------------------------------------------------------------------

class ChatMessage(BaseModel):
    role: str
    content: str | list[dict[str, Any]] | None = None
    name: str | None = None


class ChatCompletionRequest(BaseModel):
    """Subset of the OpenAI chat-completion request sent upstream."""
    model: str
    messages: list[ChatMessage] = Field(default_factory=list)
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS


class ChatCompletionChoice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: str | None = "stop"


class UsageInfo(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    id: str = ""
    model: str = ""
    choices: list[ChatCompletionChoice] = Field(default_factory=list)
    usage: UsageInfo = Field(default_factory=UsageInfo)


class CompletionResult(BaseModel):
    """An upstream response reduced to the one thing we need: the summary."""
    summary: str = Field(min_length=1)
    model: str
    usage: UsageInfo = Field(default_factory=UsageInfo)
    finish_reason: str | None = None


# ---------------------------------------------------------------------------
# Outcome: exactly one of Success / Failure per request
# ---------------------------------------------------------------------------

class AnalysisMetadata(BaseModel):
    model: str
    tokens_used: int = 0


class Success(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: Literal["success"] = "success"
    summary: str
    query: str
    metadata: AnalysisMetadata


class Failure(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: Literal["failure"] = "failure"
    kind: FailureKind
    message: str
    retry_after: str | None = None          # Passed through from upstream 429s


RequestOutcome = Annotated[Success | Failure, Field(discriminator="outcome")]


# ---------------------------------------------------------------------------
# HTTP envelopes
# ---------------------------------------------------------------------------

class AnalyzeResponse(BaseModel):
    summary: str
    query: str
    timestamp: str
    metadata: AnalysisMetadata


class ErrorResponse(BaseModel):
    error: str
    message: str
    timestamp: str | None = None


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ProviderConfig(BaseModel):
    """Upstream provider settings. Loaded once, read by every request."""
    model_config = ConfigDict(frozen=True)

    provider: str = "openai"
    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, gt=0)
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=1.0)
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    def redacted(self) -> dict[str, Any]:
        """Dump suitable for logs and the CLI — never exposes the key."""
        data = self.model_dump()
        if self.has_credentials:
            key = self.api_key or ""
            data["api_key"] = f"{key[:3]}…{key[-4:]}" if len(key) > 10 else "set"
        else:
            data["api_key"] = None
        return data

    @classmethod
    def from_env(cls, **overrides: Any) -> "ProviderConfig":
        """
        Build the provider config from the process environment.

        Resolution order (highest priority first):
          1. Explicit ``overrides`` keyword arguments
          2. Environment variables (OPENAI_API_KEY, RESEARCH_MODEL, …)
          3. Built-in defaults

        Empty environment values are treated as absent.
        """
        values: dict[str, Any] = {}
        env_map = {
            "api_key": ("OPENAI_API_KEY",),
            "base_url": ("OPENAI_ENDPOINT", "OPENAI_BASE_URL"),
            "model": ("RESEARCH_MODEL",),
            "max_tokens": ("RESEARCH_MAX_TOKENS",),
            "temperature": ("RESEARCH_TEMPERATURE",),
            "timeout_ms": ("RESEARCH_TIMEOUT_MS",),
        }
        for field_name, names in env_map.items():
            value = _env(*names)
            if value is not None:
                values[field_name] = value
        values.update(overrides)
        return cls(**values)


class ServerConfig(BaseModel):
    """HTTP bind and middleware settings."""
    model_config = ConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = 8080
    cors_origins: tuple[str, ...] = ("*",)
    log_level: Literal["critical", "error", "warning", "info", "debug", "trace"] = "info"

    @classmethod
    def from_env(cls, **overrides: Any) -> "ServerConfig":
        values: dict[str, Any] = {}
        if host := _env("HOST"):
            values["host"] = host
        if port := _env("PORT"):
            values["port"] = port
        if origins := _env("RESEARCH_CORS_ORIGINS"):
            values["cors_origins"] = tuple(
                o.strip() for o in origins.split(",") if o.strip()
            )
        if log_level := _env("RESEARCH_LOG_LEVEL"):
            values["log_level"] = log_level.lower()
        values.update(overrides)
        return cls(**values)
