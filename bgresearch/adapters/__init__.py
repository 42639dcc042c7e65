"""
bgresearch.adapters — LLM provider adapter registry.

Provides a ``create_adapter()`` factory that returns the correct adapter
for ``ProviderConfig.provider``.

Supported providers:
    - ``openai``  — api.openai.com, or any OpenAI-compatible gateway via
      ``OPENAI_ENDPOINT``
"""

from __future__ import annotations

import httpx

from bgresearch.adapters.base import BaseAdapter
from bgresearch.core.errors import ConfigurationError
from bgresearch.core.models import ProviderConfig


# ---- Default models per provider -----------------------------------------
PROVIDER_DEFAULTS: dict[str, dict[str, str]] = {
    "openai": {
        "model": "gpt-4o-mini",
        "env_key": "OPENAI_API_KEY",
    },
}


def create_adapter(
    config: ProviderConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BaseAdapter:
    """
    Factory function that returns the correct adapter for the given config.

    Parameters
    ----------
    config :
        The frozen provider configuration. Must carry an API key.
    transport :
        Optional httpx transport override (tests inject ``MockTransport``).
    """
    provider = config.provider.lower().strip()
    defaults = PROVIDER_DEFAULTS.get(provider)
    if defaults is None:
        raise ValueError(
            f"Unknown provider: '{provider}'. "
            f"Supported: {', '.join(PROVIDER_DEFAULTS)}"
        )

    if not config.has_credentials:
        raise ConfigurationError(
            f"{defaults['env_key']} is not set; the model provider connection "
            "is not properly configured"
        )

    if provider == "openai":
        from bgresearch.adapters.openai import OpenAIAdapter

        return OpenAIAdapter(
            api_key=config.api_key or "",
            model=config.model or defaults["model"],
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    raise ValueError(f"Unknown provider: '{provider}'")


__all__ = ["BaseAdapter", "create_adapter", "PROVIDER_DEFAULTS"]
