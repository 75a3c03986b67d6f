"""Token estimation for context compression."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from typing import Any

from ramus.models.config import ContextConfig
from ramus.models.message import LLMMessage


class TokenEstimator:
    """
    Token counting with a character heuristic and optional tiktoken.

    The default heuristic is ``len(text) // 4``; the compression boundary is
    defined against it. Set ``tokenizer="tiktoken"``
    in :class:`~ramus.models.config.ContextConfig` to count real tokens; the
    truncation boundary then moves accordingly.

    Caching:
    - Encoder objects are cached by encoding name (one load per process).
    - Token counts are cached by SHA-256 of content via ``estimate_cached()``.
    """

    def __init__(self, config: ContextConfig | None = None) -> None:
        self._config = config or ContextConfig()
        self._encoder_cache: dict[str, Any] = {}
        self._count_cache: dict[str, int] = {}

    def estimate(self, text: str) -> int:
        """
        Estimate the token count for a string.

        Returns:
            Estimated token count; 0 for text shorter than four characters
            under the heuristic.
        """
        if not text:
            return 0
        if self._config.tokenizer == "tiktoken":
            return self._tiktoken_estimate(text, self._config.tiktoken_encoding)
        return self._heuristic(text)

    def estimate_cached(self, text: str, cache_key: str | None = None) -> int:
        """
        Estimate with caching, keyed by ``cache_key`` (content hash when omitted).

        Use for message bodies that are estimated on every context build.
        """
        key = cache_key or self.content_hash(text)
        if key in self._count_cache:
            return self._count_cache[key]
        count = self.estimate(text)
        self._count_cache[key] = count
        return count

    def estimate_message(self, message: LLMMessage) -> int:
        """Estimate the tokens a single provider message contributes (content only)."""
        return self.estimate_cached(message.content)

    def estimate_messages(self, messages: Iterable[LLMMessage]) -> int:
        """Sum of per-message estimates."""
        return sum(self.estimate_message(m) for m in messages)

    @staticmethod
    def _heuristic(text: str) -> int:
        """Four characters per token, rounded down."""
        return len(text) // 4

    def _tiktoken_estimate(self, text: str, encoding_name: str) -> int:
        """Encode with tiktoken, caching the encoder object."""
        if encoding_name not in self._encoder_cache:
            import tiktoken

            self._encoder_cache[encoding_name] = tiktoken.get_encoding(encoding_name)
        encoder = self._encoder_cache[encoding_name]
        return len(encoder.encode(text))

    @staticmethod
    def content_hash(text: str) -> str:
        """Return a stable SHA-256 hex digest for use as a cache key."""
        return hashlib.sha256(text.encode()).hexdigest()
