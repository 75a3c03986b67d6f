"""Ramus data models."""

from ramus.models.config import (
    ContextConfig,
    ProviderConfig,
    RamusConfig,
    StoreConfig,
    ThreadConfig,
)
from ramus.models.message import (
    BranchResult,
    CompletionResult,
    EditResult,
    GenerationError,
    GenerationResult,
    LLMMessage,
    Message,
    MessageNode,
    Role,
    Thread,
    ThreadTree,
    TokenUsage,
    TurnResult,
)

__all__ = [
    # Config
    "ContextConfig",
    "ProviderConfig",
    "RamusConfig",
    "StoreConfig",
    "ThreadConfig",
    # Thread and message
    "Role",
    "Thread",
    "Message",
    "MessageNode",
    "ThreadTree",
    "LLMMessage",
    # Provider
    "TokenUsage",
    "CompletionResult",
    "GenerationError",
    # Results
    "EditResult",
    "BranchResult",
    "GenerationResult",
    "TurnResult",
]
