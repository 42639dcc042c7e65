"""
bgresearch.adapters.openai — OpenAI Chat Completions adapter.

Works against api.openai.com or any OpenAI-compatible gateway: the base URL
is taken verbatim from configuration and ``/chat/completions`` is appended.

Default model: ``gpt-4o-mini``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from bgresearch.adapters.base import BaseAdapter
from bgresearch.core.errors import UpstreamHTTPError
from bgresearch.core.models import (
    DEFAULT_BASE_URL,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT_MS,
    ChatCompletionChoice,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    UsageInfo,
)

logger = logging.getLogger("bgresearch.adapters.openai")

# Connection pool limits, shared by every concurrent request in the process
_POOL_LIMITS = httpx.Limits(
    max_connections=50,
    max_keepalive_connections=10,
    keepalive_expiry=120,  # seconds
)


class OpenAIAdapter(BaseAdapter):
    """
    Sends ``ChatCompletionRequest`` objects to an OpenAI-compatible API.

    The internal schema already speaks the OpenAI wire format, so
    translation is minimal. The interesting part is the failure path:
    non-2xx answers are parsed into ``UpstreamHTTPError`` carrying the
    provider's error ``code`` and any ``Retry-After`` hint.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_MS / 1000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout),
            limits=_POOL_LIMITS,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """Forward the request to the provider, returning a normalised response."""
        body: dict[str, Any] = {
            "model": request.model or self._model,
            "messages": [self._convert_message(m) for m in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }

        logger.debug(
            "OpenAI request: model=%s messages=%d max_tokens=%d",
            body["model"],
            len(body["messages"]),
            body["max_tokens"],
        )

        resp = await self._client.post("/chat/completions", json=body)
        if resp.status_code >= 400:
            raise self._to_error(resp)

        return self._to_response(resp.json())

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _convert_message(msg: ChatMessage) -> dict[str, Any]:
        """Convert a Pydantic ChatMessage to a plain dict for the API."""
        entry: dict[str, Any] = {"role": msg.role}
        if msg.content is not None:
            entry["content"] = msg.content
        if msg.name:
            entry["name"] = msg.name
        return entry

    @staticmethod
    def _to_error(resp: httpx.Response) -> UpstreamHTTPError:
        """
        Parse the OpenAI error envelope::

            {"error": {"message": "...", "type": "...", "code": "..."}}

        Gateways that answer with plain text or HTML still produce an
        error, just without a code.
        """
        code: str | None = None
        message = ""
        try:
            payload = resp.json()
        except json.JSONDecodeError:
            payload = None

        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            err = payload["error"]
            raw_code = err.get("code") or err.get("type")
            code = str(raw_code) if raw_code else None
            message = str(err.get("message") or "")

        logger.warning(
            "OpenAI error response: status=%d code=%s",
            resp.status_code,
            code or "-",
        )
        return UpstreamHTTPError(
            resp.status_code,
            code=code,
            message=message,
            retry_after=resp.headers.get("retry-after"),
        )

    @staticmethod
    def _to_response(data: dict[str, Any]) -> ChatCompletionResponse:
        """Convert a raw OpenAI JSON response to our internal schema."""
        choices: list[ChatCompletionChoice] = []
        for c in data.get("choices") or []:
            raw_msg = c.get("message") or {}
            msg = ChatMessage(
                role=raw_msg.get("role", "assistant"),
                content=raw_msg.get("content"),
            )
            choices.append(
                ChatCompletionChoice(
                    index=c.get("index", 0),
                    message=msg,
                    finish_reason=c.get("finish_reason"),
                )
            )

        usage_data = data.get("usage") or {}
        usage = UsageInfo(
            prompt_tokens=usage_data.get("prompt_tokens") or 0,
            completion_tokens=usage_data.get("completion_tokens") or 0,
            total_tokens=usage_data.get("total_tokens") or 0,
        )

        return ChatCompletionResponse(
            id=data.get("id") or "",
            model=data.get("model") or "",
            choices=choices,
            usage=usage,
        )
