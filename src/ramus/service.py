"""ChatService: the operations the API layer calls."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog

from ramus.context.compressor import ContextCompressor
from ramus.context.prompt import compose_system_prompt
from ramus.context.resolver import ContextPathResolver
from ramus.errors import InvalidRoleError, InvalidStateError, UpstreamFailureError
from ramus.events.bus import EventBus, RamusEvent
from ramus.models.config import RamusConfig, StoreConfig
from ramus.models.message import (
    BranchResult,
    EditResult,
    GenerationError,
    GenerationResult,
    LLMMessage,
    Message,
    Role,
    Thread,
    ThreadTree,
    TurnResult,
)
from ramus.providers import default_provider
from ramus.providers.base import CompletionProvider
from ramus.store.message_store import MessageStore
from ramus.store.pool import StorePool
from ramus.tokens.estimator import TokenEstimator
from ramus.tree.assembler import TreeAssembler
from ramus.tree.editor import CascadeEditor


class ChatService:
    """
    Conversation-tree operations plus reply generation.

    Every collaborator is injected; :meth:`create` wires the defaults.

    Usage::

        async with ChatService.open(db_path="~/.ramus/ramus.db") as chat:
            turn = await chat.send_message("Plan a three-day trip to Lisbon")
            tree = await chat.get_thread_tree(turn.thread_id)

    Reply generation never undoes a structural change. If the provider fails
    after a user turn, an edit or a branch has been committed, that change
    stays and the failure is reported in the result's ``generation_error``
    (or ``generation.error``) field.
    """

    def __init__(
        self,
        *,
        config: RamusConfig,
        store: MessageStore,
        provider: CompletionProvider,
        event_bus: EventBus | None = None,
        token_estimator: TokenEstimator | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._provider = provider
        self._event_bus = event_bus or EventBus()
        self._estimator = token_estimator or TokenEstimator(config.context)
        self._assembler = TreeAssembler(store)
        self._resolver = ContextPathResolver()
        self._editor = CascadeEditor(store, self._event_bus)
        self._compressor = ContextCompressor(self._estimator, self._event_bus)
        self._logger = structlog.get_logger("ramus.service")

    @classmethod
    async def create(
        cls,
        *,
        config: RamusConfig | None = None,
        provider: CompletionProvider | None = None,
        db_path: str | None = None,
        pool: StorePool | None = None,
    ) -> ChatService:
        """
        Open the store and build a service with default collaborators.

        Args:
            config: Configuration. Defaults to ``RamusConfig()``.
            provider: Completion provider. Defaults to :func:`default_provider`.
            db_path: Override database path. Raises ``ValueError`` if
                ``config.store.db_path`` was also customised.
            pool: Optional shared connection pool. The caller closes it.

        Raises:
            ValueError: If both ``db_path`` and ``config.store.db_path`` are supplied.
        """
        cfg = config or RamusConfig()
        if db_path is not None:
            if config is not None and cfg.store.db_path != StoreConfig().db_path:
                raise ValueError(
                    "Specify db_path either via db_path= or config.store.db_path, not both."
                )
            cfg = cfg.model_copy(
                update={"store": cfg.store.model_copy(update={"db_path": db_path})}
            )

        store = MessageStore(cfg.store, pool=pool)
        await store.initialize()
        return cls(
            config=cfg,
            store=store,
            provider=provider or default_provider(cfg.provider),
        )

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        *,
        config: RamusConfig | None = None,
        provider: CompletionProvider | None = None,
        db_path: str | None = None,
        pool: StorePool | None = None,
    ) -> AsyncGenerator[ChatService, None]:
        """:meth:`create` as an async context manager that closes the store on exit."""
        service = await cls.create(config=config, provider=provider, db_path=db_path, pool=pool)
        try:
            yield service
        finally:
            await service.close()

    async def close(self) -> None:
        """Release the store connection."""
        await self._store.close()

    async def __aenter__(self) -> ChatService:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    @property
    def event_bus(self) -> EventBus:
        """The event bus for this service. Subscribe to monitor events."""
        return self._event_bus

    # ── Threads ────────────────────────────────────────────────────────────────

    async def create_thread(self, name: str, *, system_prompt: str | None = None) -> Thread:
        """
        Create an empty thread.

        Raises:
            InvalidStateError: If *name* is blank.
        """
        if not name.strip():
            raise InvalidStateError("Thread name required")
        thread = await self._store.create_thread(name.strip(), system_prompt=system_prompt)
        self._logger.info("thread_created", thread_id=thread.id, name=thread.name)
        self._event_bus.publish(RamusEvent.THREAD_CREATED, {"thread_id": thread.id})
        return thread

    async def list_threads(self, *, limit: int = 100, offset: int = 0) -> list[Thread]:
        """Live threads, most recently updated first."""
        return await self._store.list_threads(limit=limit, offset=offset)

    async def get_thread(self, thread_id: str) -> Thread:
        return await self._store.get_thread(thread_id)

    async def rename_thread(self, thread_id: str, name: str) -> Thread:
        """
        Raises:
            InvalidStateError: If *name* is blank.
            ThreadNotFoundError: If the thread is absent or soft-deleted.
        """
        if not name.strip():
            raise InvalidStateError("Thread name required")
        thread = await self._store.update_thread(thread_id, name=name.strip())
        self._event_bus.publish(RamusEvent.THREAD_UPDATED, {"thread_id": thread_id})
        return thread

    async def set_thread_system_prompt(self, thread_id: str, system_prompt: str | None) -> Thread:
        """Set the thread persona. ``None`` or ``""`` clears it."""
        thread = await self._store.update_thread(thread_id, system_prompt=system_prompt or "")
        self._event_bus.publish(RamusEvent.THREAD_UPDATED, {"thread_id": thread_id})
        return thread

    async def delete_thread(self, thread_id: str) -> None:
        """Soft-delete a thread. Its messages become unreadable but are not removed."""
        await self._store.soft_delete_thread(thread_id)
        self._logger.info("thread_deleted", thread_id=thread_id)
        self._event_bus.publish(RamusEvent.THREAD_DELETED, {"thread_id": thread_id})

    # ── Reads ──────────────────────────────────────────────────────────────────

    async def get_thread_tree(self, thread_id: str) -> ThreadTree:
        """The thread and its full branching structure, for display."""
        thread = await self._store.get_thread(thread_id)
        tree = await self._assembler.build_tree(thread_id)
        return ThreadTree(thread=thread, tree=tree)

    async def get_message_path(
        self, thread_id: str, message_id: str | None = None
    ) -> list[Message]:
        """
        The path shown for a selection: root to *message_id* plus its first reply.

        With no selection, the deepest path. Unknown ids yield ``[]``.
        """
        tree = await self._assembler.build_tree(thread_id)
        return self._resolver.resolve_path(tree, message_id)

    async def get_context_for_message(self, message_id: str) -> list[LLMMessage]:
        """
        The in-context messages from the root down to *message_id* inclusive.

        This is the uncompressed context for generating a reply to *message_id*.

        Raises:
            MessageNotFoundError: If the message does not exist.
        """
        message = await self._store.require_message(message_id)
        messages = await self._store.get_messages_by_thread(message.thread_id)
        path = TreeAssembler.ancestor_path({m.id: m for m in messages}, message_id)
        return self._resolver.context_messages(path)

    # ── Mutations ──────────────────────────────────────────────────────────────

    async def send_message(
        self,
        content: str,
        *,
        thread_id: str | None = None,
        parent_id: str | None = None,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> TurnResult:
        """
        Persist a user turn and generate the assistant reply beneath it.

        Without *thread_id* the thread is taken from *parent_id*, or a new
        thread is created and titled from the message.

        Raises:
            InvalidStateError: If *content* is blank.
            ThreadNotFoundError: If *thread_id* is absent or soft-deleted.
            ParentNotFoundError: If *parent_id* is not in the thread.
        """
        if not content.strip():
            raise InvalidStateError("Message cannot be empty")

        if thread_id is None and parent_id is not None:
            thread_id = (await self._store.require_message(parent_id)).thread_id
        if thread_id is None:
            thread_id = (await self.create_thread(self._title_from(content))).id

        user_message_id = await self._editor.add_message(thread_id, "user", content, parent_id)
        generation = await self._generate(user_message_id, model=model, system_prompt=system_prompt)
        return TurnResult(
            thread_id=thread_id,
            user_message_id=user_message_id,
            assistant_message_id=generation.assistant_message_id,
            text=generation.text,
            usage=generation.usage,
            generation_error=generation.error,
        )

    async def edit_message(
        self,
        message_id: str,
        content: str,
        *,
        regenerate: bool = False,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> EditResult:
        """
        Replace a user message and prune everything beneath it.

        With ``regenerate=True`` a fresh reply is requested afterwards; its
        failure is reported in ``result.generation`` and does not undo the edit.

        Raises:
            InvalidStateError: If *content* is blank.
            MessageNotFoundError: If the message does not exist.
            InvalidRoleError: If the message is not a user message.
        """
        if not content.strip():
            raise InvalidStateError("Message content required")
        result = await self._editor.edit_message(message_id, content)
        if regenerate:
            result.generation = await self._generate(
                message_id, model=model, system_prompt=system_prompt
            )
        return result

    async def delete_message(self, message_id: str) -> int:
        """Delete a message and its subtree. Returns the number removed."""
        return await self._editor.delete_message(message_id)

    async def create_branch(
        self,
        clicked_message_id: str,
        content: str,
        role: Role = "user",
        *,
        regenerate: bool = False,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> BranchResult:
        """
        Add a sibling of the clicked message.

        With ``regenerate=True`` and a user-role branch, a reply is generated
        beneath the new message; failure is reported in ``result.generation``.

        Raises:
            InvalidStateError: If *content* is blank.
            MessageNotFoundError: If the clicked message does not exist.
        """
        if not content.strip():
            raise InvalidStateError("Branch content required")
        result = await self._editor.create_branch(clicked_message_id, content, role)
        if regenerate and role == "user":
            result.generation = await self._generate(
                result.message_id, model=model, system_prompt=system_prompt
            )
        return result

    async def set_message_context_flag(self, message_id: str, is_context: bool) -> None:
        await self._editor.set_context_flag(message_id, is_context)

    async def regenerate(
        self,
        message_id: str,
        *,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> GenerationResult:
        """
        Generate a new assistant reply as another child of a user message.

        Raises:
            MessageNotFoundError: If the message does not exist.
            InvalidRoleError: If the message is not a user message.
        """
        message = await self._store.require_message(message_id)
        if message.role != "user":
            raise InvalidRoleError(message_id, message.role, "user")
        return await self._generate(message_id, model=model, system_prompt=system_prompt)

    # ── Generation ─────────────────────────────────────────────────────────────

    async def _generate(
        self,
        parent_id: str,
        *,
        model: str | None,
        system_prompt: str | None,
    ) -> GenerationResult:
        """Assemble context up to *parent_id*, call the provider, store the reply."""
        parent = await self._store.require_message(parent_id)
        thread = await self._store.get_thread(parent.thread_id)
        logger = self._logger.bind(thread_id=thread.id, parent_id=parent_id)

        context = await self.get_context_for_message(parent_id)
        compressed = self._compressor.compress_with_stats(
            context, self._config.context.max_context_tokens
        )
        final_prompt = compose_system_prompt(system_prompt, thread.system_prompt)

        try:
            completion = await self._provider.complete(
                compressed.messages, model=model, system_prompt=final_prompt
            )
        except Exception as exc:
            error = self._to_generation_error(exc)
            logger.error("generation_failed", code=error.code, error=error.message)
            self._event_bus.publish(
                RamusEvent.GENERATION_FAILED,
                {
                    "thread_id": thread.id,
                    "parent_id": parent_id,
                    "code": error.code,
                    "error": error.message,
                },
            )
            return GenerationResult(context_message_count=compressed.kept_count, error=error)

        assistant_id = await self._editor.add_message(
            thread.id, "assistant", completion.content, parent_id
        )
        logger.info(
            "reply_generated",
            assistant_message_id=assistant_id,
            context_message_count=compressed.kept_count,
            total_tokens=completion.usage.effective_total(),
        )
        return GenerationResult(
            assistant_message_id=assistant_id,
            text=completion.content,
            usage=completion.usage,
            model=completion.model,
            context_message_count=compressed.kept_count,
        )

    @staticmethod
    def _to_generation_error(exc: Exception) -> GenerationError:
        if isinstance(exc, UpstreamFailureError):
            return GenerationError(
                code="timeout" if exc.timed_out else "api_error",
                message=str(exc),
                retriable=exc.retriable,
            )
        return GenerationError(code="unknown", message=str(exc) or type(exc).__name__)

    def _title_from(self, content: str) -> str:
        limit = self._config.thread.auto_title_length
        text = content.strip()
        if not text:
            return self._config.thread.default_name
        return text[:limit] + ("..." if len(text) > limit else "")
