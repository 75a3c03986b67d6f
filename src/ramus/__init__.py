"""
Ramus: branching conversation trees with token-budgeted context assembly.

Primary entry point::

    from ramus import ChatService

    async with ChatService.open(db_path="~/.ramus/ramus.db") as chat:
        turn = await chat.send_message("Hello!")
        print(turn.text)
"""

from ramus.context import (
    CompressionResult,
    ContextCompressor,
    ContextPathResolver,
    compose_system_prompt,
)
from ramus.errors import (
    InvalidRoleError,
    InvalidStateError,
    MessageNotFoundError,
    NotFoundError,
    ParentNotFoundError,
    RamusError,
    StorageFailureError,
    ThreadNotFoundError,
    UpstreamFailureError,
)
from ramus.events.bus import EventBus, RamusEvent
from ramus.ids import make_id
from ramus.models import (
    BranchResult,
    CompletionResult,
    ContextConfig,
    EditResult,
    GenerationError,
    GenerationResult,
    LLMMessage,
    Message,
    MessageNode,
    ProviderConfig,
    RamusConfig,
    Role,
    StoreConfig,
    Thread,
    ThreadConfig,
    ThreadTree,
    TokenUsage,
    TurnResult,
)
from ramus.providers import CompletionProvider, LiteLLMProvider, MockProvider, default_provider
from ramus.service import ChatService
from ramus.store import MessageStore, StorePool
from ramus.tokens.estimator import TokenEstimator
from ramus.tree import CascadeEditor, TreeAssembler

__version__ = "0.1.0"

__all__ = [
    # Core
    "ChatService",
    "make_id",
    # Components
    "MessageStore",
    "StorePool",
    "TreeAssembler",
    "CascadeEditor",
    "ContextPathResolver",
    "ContextCompressor",
    "CompressionResult",
    "compose_system_prompt",
    "TokenEstimator",
    "EventBus",
    "RamusEvent",
    # Providers
    "CompletionProvider",
    "LiteLLMProvider",
    "MockProvider",
    "default_provider",
    # Config
    "RamusConfig",
    "StoreConfig",
    "ContextConfig",
    "ProviderConfig",
    "ThreadConfig",
    # Models
    "Role",
    "Thread",
    "Message",
    "MessageNode",
    "ThreadTree",
    "LLMMessage",
    "TokenUsage",
    "CompletionResult",
    "GenerationError",
    "GenerationResult",
    "EditResult",
    "BranchResult",
    "TurnResult",
    # Errors
    "RamusError",
    "NotFoundError",
    "ThreadNotFoundError",
    "MessageNotFoundError",
    "ParentNotFoundError",
    "InvalidStateError",
    "InvalidRoleError",
    "UpstreamFailureError",
    "StorageFailureError",
]
