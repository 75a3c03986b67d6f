"""Completion provider backed by litellm."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from ramus.errors import UpstreamFailureError
from ramus.models.config import ProviderConfig
from ramus.models.message import CompletionResult, LLMMessage, TokenUsage


class LiteLLMProvider:
    """
    Calls any litellm-supported model with ``litellm.acompletion``.

    Model strings use litellm format (``gpt-4o``, ``anthropic/claude-3-5-haiku``).
    Every request is bounded by ``ProviderConfig.timeout``. Families listed in
    ``ProviderConfig.fixed_temperature_prefixes`` are sent
    ``max_completion_tokens`` and no temperature.
    """

    def __init__(self, config: ProviderConfig | None = None) -> None:
        self._config = config or ProviderConfig()
        self._logger = structlog.get_logger("ramus.providers.litellm")

    def build_request(
        self,
        messages: list[LLMMessage],
        *,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> dict[str, Any]:
        """Return the keyword arguments passed to ``litellm.acompletion``."""
        model_name = model or self._config.default_model
        formatted: list[dict[str, str]] = []
        if system_prompt:
            formatted.append({"role": "system", "content": system_prompt})
        formatted.extend(m.as_dict() for m in messages)

        call_kwargs: dict[str, Any] = {"model": model_name, "messages": formatted}
        if self._config.uses_completion_token_limit(model_name):
            call_kwargs["max_completion_tokens"] = self._config.max_tokens
        else:
            call_kwargs["max_tokens"] = self._config.max_tokens
            call_kwargs["temperature"] = self._config.temperature
        return call_kwargs

    async def complete(
        self,
        messages: list[LLMMessage],
        *,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> CompletionResult:
        """
        Send one non-streaming completion request.

        Raises:
            UpstreamFailureError: On timeout or any provider/transport error.
        """
        import litellm

        call_kwargs = self.build_request(messages, model=model, system_prompt=system_prompt)
        model_name = call_kwargs["model"]
        self._logger.info(
            "completion_request", model=model_name, message_count=len(call_kwargs["messages"])
        )

        try:
            response = await asyncio.wait_for(
                litellm.acompletion(**call_kwargs), timeout=self._config.timeout
            )
        except TimeoutError as exc:
            self._logger.error("completion_timeout", model=model_name, timeout=self._config.timeout)
            raise UpstreamFailureError(
                f"Completion timed out after {self._config.timeout:g}s",
                retriable=True,
                timed_out=True,
            ) from exc
        except Exception as exc:
            self._logger.error("completion_failed", model=model_name, error=str(exc))
            raise UpstreamFailureError(f"Provider error: {exc}", retriable=False) from exc

        choice = response.choices[0] if response.choices else None
        content = (choice.message.content if choice is not None else None) or ""
        if not content and choice is not None:
            # Reasoning models may leave content empty and put the answer here.
            content = getattr(choice.message, "reasoning_content", None) or ""

        usage = getattr(response, "usage", None)
        tokens = TokenUsage(
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(usage, "total_tokens", 0) or 0,
        )
        self._logger.info(
            "completion_response",
            model=model_name,
            total_tokens=tokens.effective_total(),
            response_length=len(content),
        )
        return CompletionResult(
            content=content,
            usage=tokens,
            model=getattr(response, "model", None) or model_name,
        )
