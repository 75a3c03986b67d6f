"""Deterministic provider for demos and tests (``RAMUS_MOCK_LLM=1``)."""

from __future__ import annotations

from ramus.models.message import CompletionResult, LLMMessage, TokenUsage
from ramus.tokens.estimator import TokenEstimator


class MockProvider:
    """Echoes the last user message. Records every request it receives."""

    def __init__(self, model: str = "mock") -> None:
        self._model = model
        self._estimator = TokenEstimator()
        self.calls: list[dict[str, object]] = []

    async def complete(
        self,
        messages: list[LLMMessage],
        *,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> CompletionResult:
        self.calls.append(
            {"messages": list(messages), "model": model, "system_prompt": system_prompt}
        )
        last_user = next((m.content for m in reversed(messages) if m.role == "user"), "Hello")
        text = f"[Mock LLM response to: {last_user[:100]}]"
        prompt_tokens = self._estimator.estimate_messages(messages)
        completion_tokens = self._estimator.estimate(text)
        return CompletionResult(
            content=text,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            model=model or self._model,
        )
