"""Configuration models for ramus components."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class StoreConfig(BaseModel):
    """Configuration for the SQLite persistence layer."""

    db_path: str = Field(
        default="~/.ramus/ramus.db",
        description="Path to the SQLite database file. ~ is expanded at runtime.",
    )

    wal_mode: bool = True
    """Use WAL journal mode for better concurrent read performance."""

    connection_timeout: float = 30.0
    """Seconds to wait for the database connection before raising."""


class ContextConfig(BaseModel):
    """Configuration for context assembly and compression."""

    max_context_tokens: int = Field(
        default=8_000,
        ge=1,
        description="Estimated-token budget for the message list sent to the provider.",
    )

    tokenizer: Literal["heuristic", "tiktoken"] = Field(
        default="heuristic",
        description=(
            "'heuristic' estimates len(text) // 4 tokens per message. "
            "'tiktoken' counts real tokens and moves the truncation boundary."
        ),
    )

    tiktoken_encoding: str = "cl100k_base"
    """Encoding name used when ``tokenizer='tiktoken'``."""


class ProviderConfig(BaseModel):
    """Configuration for the completion provider."""

    default_model: str = "gpt-4o-mini"
    """Model used when a request does not name one."""

    max_tokens: int = Field(default=2_000, ge=1, le=200_000)

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    timeout: float = Field(
        default=60.0,
        gt=0,
        le=600,
        description="Seconds before a completion request is abandoned.",
    )

    fixed_temperature_prefixes: list[str] = Field(
        default_factory=lambda: ["gpt-5", "o1", "o3"],
        description=(
            "Model name prefixes that take max_completion_tokens and reject a "
            "temperature parameter."
        ),
    )

    def uses_completion_token_limit(self, model: str) -> bool:
        """Return True if *model* belongs to a fixed-temperature family."""
        name = model.lower().rsplit("/", 1)[-1]
        return any(name.startswith(prefix) for prefix in self.fixed_temperature_prefixes)


class ThreadConfig(BaseModel):
    """Configuration for thread bookkeeping."""

    auto_title_length: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Characters of the first message used as the title of an implicit thread.",
    )

    default_name: str = "New Chat"

    @model_validator(mode="after")
    def validate_default_name(self) -> ThreadConfig:
        if not self.default_name.strip():
            raise ValueError("default_name must not be blank")
        return self


class RamusConfig(BaseModel):
    """
    Top-level configuration for a ramus chat service.

    All sub-configs have sensible defaults and can be overridden individually.

    Example::

        config = RamusConfig(
            context=ContextConfig(max_context_tokens=4_000),
            provider=ProviderConfig(default_model="anthropic/claude-3-5-haiku"),
        )
    """

    store: StoreConfig = Field(default_factory=StoreConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    thread: ThreadConfig = Field(default_factory=ThreadConfig)

    @classmethod
    def default(cls) -> RamusConfig:
        """Return a config instance with all defaults."""
        return cls()
