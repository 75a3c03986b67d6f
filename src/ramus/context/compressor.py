"""Token-budget-aware truncation of the context sent to the provider."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from ramus.events.bus import EventBus, RamusEvent
from ramus.models.message import LLMMessage
from ramus.tokens.estimator import TokenEstimator


@dataclass
class CompressionResult:
    """The messages kept for a provider call and how they were chosen."""

    messages: list[LLMMessage]
    original_count: int
    estimated_tokens: int
    """Estimate for the kept messages only."""
    budget: int

    @property
    def kept_count(self) -> int:
        return len(self.messages)

    @property
    def truncated(self) -> bool:
        return self.kept_count < self.original_count

    @property
    def over_budget(self) -> bool:
        """True when the single newest message alone exceeds the budget."""
        return self.estimated_tokens > self.budget


class ContextCompressor:
    """
    Selects the newest messages that fit an estimated-token budget.

    Invariants:
    1. The result is a contiguous suffix of the input, in input order.
    2. Input that already fits is returned unchanged.
    3. Non-empty input never yields an empty result: the newest message is
       always kept, even when it alone exceeds the budget.
    """

    def __init__(
        self,
        token_estimator: TokenEstimator,
        event_bus: EventBus | None = None,
    ) -> None:
        self._estimator = token_estimator
        self._event_bus = event_bus
        self._logger = structlog.get_logger("ramus.context.compressor")

    def compress(self, messages: list[LLMMessage], max_tokens: int) -> list[LLMMessage]:
        """Return the kept messages only. See :meth:`compress_with_stats`."""
        return self.compress_with_stats(messages, max_tokens).messages

    def compress_with_stats(
        self, messages: list[LLMMessage], max_tokens: int
    ) -> CompressionResult:
        """
        Keep the longest suffix of *messages* whose estimate fits *max_tokens*.

        Args:
            messages: Context messages in chronological order.
            max_tokens: Estimated-token budget.

        Returns:
            CompressionResult with the kept messages in chronological order.

        Raises:
            ValueError: If *max_tokens* is negative.
        """
        if max_tokens < 0:
            raise ValueError(f"max_tokens must be >= 0, got {max_tokens}")

        costs = [self._estimator.estimate_message(m) for m in messages]
        total = sum(costs)
        if total <= max_tokens:
            return CompressionResult(
                messages=list(messages),
                original_count=len(messages),
                estimated_tokens=total,
                budget=max_tokens,
            )

        # Walk newest→oldest; stop at the first message that does not fit.
        start = len(messages)
        tokens_used = 0
        for index in range(len(messages) - 1, -1, -1):
            cost = costs[index]
            if tokens_used + cost > max_tokens and start < len(messages):
                break
            start = index
            tokens_used += cost

        result = CompressionResult(
            messages=list(messages[start:]),
            original_count=len(messages),
            estimated_tokens=tokens_used,
            budget=max_tokens,
        )
        self._logger.info(
            "context_compressed",
            original_count=result.original_count,
            kept_count=result.kept_count,
            estimated_tokens=tokens_used,
            budget=max_tokens,
        )
        if result.over_budget:
            self._logger.warning(
                "newest_message_exceeds_budget", estimated_tokens=tokens_used, budget=max_tokens
            )
        if self._event_bus is not None:
            self._event_bus.publish(
                RamusEvent.CONTEXT_COMPRESSED,
                {
                    "original_count": result.original_count,
                    "kept_count": result.kept_count,
                    "estimated_tokens": tokens_used,
                },
            )
        return result
