"""
bgresearch.adapters.base — Abstract base class for LLM provider adapters.

Every adapter translates between the OpenAI-compatible
``ChatCompletionRequest`` schema used internally and the provider's native
API format, and raises ``UpstreamHTTPError`` for non-2xx answers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from bgresearch.core.models import ChatCompletionRequest, ChatCompletionResponse


class BaseAdapter(ABC):
    """
    Interface contract for all provider adapters.

    Subclasses must implement ``complete()`` and ``close()``.
    """

    @abstractmethod
    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """Send a completion request to the provider and return a normalised response."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release any held resources (HTTP clients, etc.)."""
        ...
