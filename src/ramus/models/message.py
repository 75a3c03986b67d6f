"""Core thread, message and result models for ramus."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field

Role = Literal["user", "assistant"]


def now_ms() -> int:
    """Current time as a Unix millisecond timestamp."""
    return int(time.time() * 1000)


# ── Thread ─────────────────────────────────────────────────────────────────────


class Thread(BaseModel):
    """A conversation. Owns a forest of messages."""

    id: str
    """ULID-based sortable ID, e.g. ``thr_01JXYZ6K3MNPQR4STUVWXYZ01``."""
    name: str
    system_prompt: str | None = None
    """Persistent per-thread instruction, combined with the per-request prompt."""
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)
    deleted_at: int | None = None
    """Soft-delete marker. A thread with this set is invisible to every read."""

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


# ── Message ────────────────────────────────────────────────────────────────────


class Message(BaseModel):
    """
    A single turn stored in the MessageStore.

    ``parent_id`` is ``None`` for a thread root. Siblings (messages sharing a
    parent) are alternate continuations of the conversation.
    """

    id: str
    thread_id: str
    role: Role
    content: str
    parent_id: str | None = None
    is_context: bool = True
    """Whether this message is sent to the model when assembling context."""
    created_at: int = Field(default_factory=now_ms)
    updated_at: int | None = None
    seq: int = 0
    """Store-assigned insertion counter. Defines creation order among siblings."""


@dataclass
class MessageNode:
    """A message together with its children, in creation order."""

    message: Message
    children: list[MessageNode] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.message.id

    def to_dict(self) -> dict[str, Any]:
        """Render this subtree as nested dicts (message fields plus ``children``)."""
        root = {**self.message.model_dump(), "children": []}
        stack: list[tuple[MessageNode, dict[str, Any]]] = [(self, root)]
        while stack:
            node, rendered = stack.pop()
            for child in node.children:
                child_rendered = {**child.message.model_dump(), "children": []}
                rendered["children"].append(child_rendered)
                stack.append((child, child_rendered))
        return root


@dataclass
class LLMMessage:
    """A single message formatted for the completion provider."""

    role: str
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ThreadTree:
    """A thread and its full branching structure, ready for display."""

    thread: Thread
    tree: list[MessageNode]

    def to_dict(self) -> dict[str, Any]:
        return {
            "thread": self.thread.model_dump(),
            "tree": [node.to_dict() for node in self.tree],
        }


# ── Token Usage ────────────────────────────────────────────────────────────────


class TokenUsage(BaseModel):
    """Token counters reported by the completion provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def effective_total(self) -> int:
        """Return total, computing from parts when the explicit total is zero."""
        if self.total_tokens:
            return self.total_tokens
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.effective_total() + other.effective_total(),
        )


class CompletionResult(BaseModel):
    """What a CompletionProvider returns for one request."""

    content: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""


# ── Error Types ────────────────────────────────────────────────────────────────


class GenerationError(BaseModel):
    """Structured error reported when an assistant reply could not be generated."""

    code: Literal["timeout", "api_error", "unknown"]
    message: str
    retriable: bool = False


# ── Result Types ───────────────────────────────────────────────────────────────


class EditResult(BaseModel):
    """The result of editing a user message."""

    message_id: str
    deleted_descendant_count: int
    generation: GenerationResult | None = None
    """Set when the edit asked for a fresh assistant reply."""


class BranchResult(BaseModel):
    """The result of forking a new sibling off a clicked message."""

    message_id: str
    parent_id: str | None
    generation: GenerationResult | None = None


class GenerationResult(BaseModel):
    """
    The outcome of asking the provider for an assistant reply.

    A failed generation is a partial success: ``assistant_message_id`` is
    ``None`` and ``error`` describes the failure, while any structural change
    made before the call (a new user turn, an edit, a branch) stays committed.
    """

    assistant_message_id: str | None = None
    text: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""
    context_message_count: int = 0
    error: GenerationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TurnResult(BaseModel):
    """The result of a single ``ChatService.send_message()`` call."""

    thread_id: str
    user_message_id: str
    assistant_message_id: str | None
    text: str
    usage: TokenUsage
    generation_error: GenerationError | None = None


EditResult.model_rebuild()
BranchResult.model_rebuild()
