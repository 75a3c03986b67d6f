"""System prompt composition."""

from __future__ import annotations


def compose_system_prompt(
    request_prompt: str | None,
    thread_prompt: str | None,
) -> str | None:
    """
    Combine the per-request system prompt with the thread persona.

    The request prompt comes first; the two are joined by a blank line when
    both are set. Empty strings count as absent.

    Returns:
        The combined instruction, or ``None`` when neither is set.
    """
    parts = [p for p in (request_prompt, thread_prompt) if p]
    if not parts:
        return None
    return "\n\n".join(parts)
