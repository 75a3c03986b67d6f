"""In-process pub/sub event bus for thread and message lifecycle events."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

import structlog

Handler = Callable[["RamusEvent", dict[str, Any]], None | Awaitable[None]]


class RamusEvent(StrEnum):
    """All event types published by ramus components.

    **Payload keys by event:**

    ``THREAD_CREATED``, ``THREAD_UPDATED``, ``THREAD_DELETED``
        ``thread_id: str``

    ``MESSAGE_CREATED``
        ``message_id: str``, ``thread_id: str``, ``role: str``,
        ``parent_id: str | None``

    ``MESSAGE_UPDATED``
        ``message_id: str``, ``deleted_descendant_count: int``

    ``MESSAGE_DELETED``
        ``message_id: str``, ``deleted_count: int``

    ``CONTEXT_FLAG_CHANGED``
        ``message_id: str``, ``is_context: bool``

    ``BRANCH_CREATED``
        ``message_id: str``, ``clicked_message_id: str``,
        ``parent_id: str | None``

    ``CONTEXT_COMPRESSED``
        ``original_count: int``, ``kept_count: int``, ``estimated_tokens: int``

    ``GENERATION_FAILED``
        ``thread_id: str``, ``parent_id: str``, ``code: str``, ``error: str``
    """

    THREAD_CREATED = "thread.created"
    THREAD_UPDATED = "thread.updated"
    THREAD_DELETED = "thread.deleted"

    MESSAGE_CREATED = "message.created"
    MESSAGE_UPDATED = "message.updated"
    MESSAGE_DELETED = "message.deleted"
    CONTEXT_FLAG_CHANGED = "message.context_flag_changed"
    BRANCH_CREATED = "branch.created"

    CONTEXT_COMPRESSED = "context.compressed"
    GENERATION_FAILED = "generation.failed"


class EventBus:
    """
    Simple in-process pub/sub event bus.

    - Sync handlers are called inline within ``publish()``.
    - Async handlers are scheduled via ``asyncio.create_task()`` (fire-and-forget).
    - Handler exceptions are logged but never propagate to the publisher.

    Example::

        bus = EventBus()

        def on_branch(event, payload):
            print(f"New branch {payload['message_id']}")

        bus.subscribe(RamusEvent.BRANCH_CREATED, on_branch)
    """

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self._handlers: dict[RamusEvent, list[Handler]] = {}
        self._global_handlers: list[Handler] = []
        self._logger = logger or structlog.get_logger("ramus.events")

    def subscribe(self, event: RamusEvent, handler: Handler) -> None:
        """Register a handler for a specific event type. May be sync or async."""
        self._handlers.setdefault(event, []).append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        """Register a handler for ALL event types."""
        self._global_handlers.append(handler)

    def unsubscribe(self, event: RamusEvent, handler: Handler) -> None:
        """Remove a previously registered handler. No-op if not found."""
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: RamusEvent, payload: dict[str, Any]) -> None:
        """
        Publish an event to all registered handlers.

        Sync handlers are called immediately in registration order.
        Async handlers are scheduled as background tasks.
        Exceptions from any handler are logged and swallowed.
        """
        all_handlers = list(self._handlers.get(event, [])) + list(self._global_handlers)
        for handler in all_handlers:
            try:
                result = handler(event, payload)
                if asyncio.iscoroutine(result):
                    try:
                        loop = asyncio.get_running_loop()
                    except RuntimeError:
                        # No running event loop; drop the coroutine cleanly.
                        result.close()
                        continue
                    loop.create_task(result)  # noqa: RUF006
            except Exception as exc:
                self._logger.error(
                    "event_handler_error",
                    event=str(event),
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(exc),
                )
