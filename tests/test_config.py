"""Tests for configuration models."""

from __future__ import annotations

import pytest

import ramus
from ramus.models.config import (
    ContextConfig,
    ProviderConfig,
    RamusConfig,
    StoreConfig,
    ThreadConfig,
)


class TestDefaults:
    def test_sub_configs(self) -> None:
        cfg = RamusConfig.default()
        assert isinstance(cfg.store, StoreConfig)
        assert cfg.store.db_path == "~/.ramus/ramus.db"
        assert cfg.context.max_context_tokens == 8_000
        assert cfg.context.tokenizer == "heuristic"
        assert cfg.provider.default_model == "gpt-4o-mini"
        assert cfg.provider.max_tokens == 2_000
        assert cfg.provider.temperature == 0.7
        assert cfg.thread.auto_title_length == 50
        assert cfg.thread.default_name == "New Chat"

    def test_version(self) -> None:
        assert ramus.__version__ == "0.1.0"


class TestBounds:
    def test_context_budget_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            ContextConfig(max_context_tokens=0)

    def test_unknown_tokenizer(self) -> None:
        with pytest.raises(ValueError):
            ContextConfig(tokenizer="words")  # type: ignore[arg-type]

    def test_provider_bounds(self) -> None:
        with pytest.raises(ValueError):
            ProviderConfig(temperature=3.0)
        with pytest.raises(ValueError):
            ProviderConfig(timeout=0)
        with pytest.raises(ValueError):
            ProviderConfig(max_tokens=0)

    def test_blank_default_thread_name(self) -> None:
        with pytest.raises(ValueError):
            ThreadConfig(default_name="   ")


class TestCompletionTokenLimit:
    def test_fixed_temperature_families(self) -> None:
        cfg = ProviderConfig()
        for model in ["gpt-5", "gpt-5-mini", "openai/gpt-5-nano", "o1-preview", "o3-mini", "GPT-5"]:
            assert cfg.uses_completion_token_limit(model) is True, model

    def test_regular_models(self) -> None:
        cfg = ProviderConfig()
        for model in ["gpt-4o", "gpt-4o-mini", "anthropic/claude-3-5-haiku", "openai/gpt-4.1"]:
            assert cfg.uses_completion_token_limit(model) is False, model

    def test_custom_prefixes(self) -> None:
        cfg = ProviderConfig(fixed_temperature_prefixes=["reasoner"])
        assert cfg.uses_completion_token_limit("deepseek/reasoner-v2") is True
        assert cfg.uses_completion_token_limit("gpt-5") is False
