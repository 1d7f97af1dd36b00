"""Provider factory: hosted provider when configured, otherwise the mock."""

from __future__ import annotations

import logging

from bizledger.core.config import get_settings

from .base import BaseProvider, ProviderResult
from .claude import ClaudeProvider
from .groq import GroqProvider
from .mock import MockProvider
from .openai import OpenAIProvider

logger = logging.getLogger(__name__)

__all__ = ["get_provider", "BaseProvider", "ProviderResult", "MockProvider"]

# provider name -> (provider class, Settings attribute holding its API key)
_HOSTED = {
    "openai": (OpenAIProvider, "openai_api_key"),
    "claude": (ClaudeProvider, "anthropic_api_key"),
    "groq": (GroqProvider, "groq_api_key"),
}


def get_provider(provider_name: str) -> BaseProvider:
    """Return a provider for *provider_name*, falling back to ``MockProvider``.

    Fallback happens when the name is not allow-listed, unknown, or its API
    key is not configured.
    """
    settings = get_settings()
    name = provider_name.lower().strip()

    if name not in settings.ai_allowed_providers:
        logger.warning("Provider %r not in allowlist, falling back to mock", name)
        return MockProvider()
    if name == "mock":
        return MockProvider()

    entry = _HOSTED.get(name)
    if entry is None:
        logger.warning("Unknown provider %r, falling back to mock", name)
        return MockProvider()

    provider_cls, key_attr = entry
    api_key = getattr(settings, key_attr)
    if not api_key:
        logger.warning("%s not set, falling back to mock", key_attr.upper())
        return MockProvider()
    return provider_cls(api_key=api_key)
