"""The completion provider contract."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ramus.models.message import CompletionResult, LLMMessage


@runtime_checkable
class CompletionProvider(Protocol):
    """
    Anything that turns a prepared message list into an assistant reply.

    Implementations raise :class:`~ramus.errors.UpstreamFailureError` on
    transport or provider errors and timeouts. Callers do not retry.
    """

    async def complete(
        self,
        messages: list[LLMMessage],
        *,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> CompletionResult: ...
