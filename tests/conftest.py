"""
Shared fixtures for the research pipeline tests.

The upstream provider is always replaced with ``httpx.MockTransport`` so no
test ever leaves the process.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from bgresearch.core.models import ProviderConfig, ServerConfig

TEST_BASE_URL = "https://llm.test/v1"


def completion_payload(
    content: str | None = "## 💰 Investments\n- Acquired a health records startup",
    *,
    choices: bool = True,
    model: str = "gpt-4o-mini",
    total_tokens: int = 321,
) -> dict[str, Any]:
    """An OpenAI chat-completion response body."""
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "model": model,
        "choices": (
            [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": content},
                    "finish_reason": "stop",
                }
            ]
            if choices
            else []
        ),
        "usage": {
            "prompt_tokens": 250,
            "completion_tokens": total_tokens - 250,
            "total_tokens": total_tokens,
        },
    }


def error_payload(code: str | None, message: str = "upstream error", type_: str = "error") -> dict[str, Any]:
    """An OpenAI error envelope."""
    return {"error": {"message": message, "type": type_, "code": code}}


class FakeUpstream:
    """
    Scriptable stand-in for the provider.

    Records every request it receives and answers each one with the
    response built by ``responder``. ``delay`` stalls before answering.
    """

    def __init__(
        self,
        responder: Callable[[httpx.Request], httpx.Response] | None = None,
        *,
        delay: float = 0.0,
    ) -> None:
        self.requests: list[httpx.Request] = []
        self.responder = responder or (lambda request: httpx.Response(200, json=completion_payload()))
        self.delay = delay
        self.started = asyncio.Event()
        self.cancelled = False

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.started.set()
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        return self.responder(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]

    @classmethod
    def returning(cls, status_code: int, payload: Any = None, headers: dict[str, str] | None = None,
                  **kwargs: Any) -> "FakeUpstream":
        return cls(lambda request: httpx.Response(status_code, json=payload, headers=headers), **kwargs)


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(
        api_key="sk-test-0123456789abcdef",
        base_url=TEST_BASE_URL,
        model="gpt-4o-mini",
        max_tokens=2000,
        temperature=0.7,
        timeout_ms=2000,
    )


@pytest.fixture
def server_config() -> ServerConfig:
    return ServerConfig(cors_origins=("https://app.example.com",))


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()
