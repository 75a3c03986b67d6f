"""Completion providers."""

from __future__ import annotations

import os

from ramus.models.config import ProviderConfig
from ramus.providers.base import CompletionProvider
from ramus.providers.litellm_provider import LiteLLMProvider
from ramus.providers.mock import MockProvider


def default_provider(config: ProviderConfig | None = None) -> CompletionProvider:
    """Return a MockProvider when ``RAMUS_MOCK_LLM=1``, otherwise a LiteLLMProvider."""
    if os.environ.get("RAMUS_MOCK_LLM") == "1":
        return MockProvider()
    return LiteLLMProvider(config)


__all__ = ["CompletionProvider", "LiteLLMProvider", "MockProvider", "default_provider"]
