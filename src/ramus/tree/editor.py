"""Structural edits on a thread's message tree: add, edit, branch, delete."""

from __future__ import annotations

from collections import deque
from typing import get_args

import structlog

from ramus.errors import InvalidRoleError, InvalidStateError, ParentNotFoundError
from ramus.events.bus import EventBus, RamusEvent
from ramus.models.message import BranchResult, EditResult, Message, Role
from ramus.store.message_store import MessageStore

_ROLES: frozenset[str] = frozenset(get_args(Role))


class CascadeEditor:
    """
    Mutations that keep each thread's parent links a well-formed forest.

    Guarantees:
    - A new message's parent is a live message of the same thread.
    - Deleting a message removes its whole subtree; nothing is left pointing
      at a vanished parent.
    - Editing a user message removes every descendant, since those replies
      answered content that no longer exists.
    - Each operation runs in one store transaction: a storage failure part
      way through rolls the whole operation back.

    Assistant messages are immutable once stored; :meth:`update_message`
    enforces this with :class:`~ramus.errors.InvalidRoleError`.

    Concurrent edits and deletes on overlapping subtrees of one thread from
    separate processes are not arbitrated here. Callers serialise work per
    thread.
    """

    def __init__(self, store: MessageStore, event_bus: EventBus | None = None) -> None:
        self._store = store
        self._event_bus = event_bus or EventBus()
        self._logger = structlog.get_logger("ramus.editor")

    async def add_message(
        self,
        thread_id: str,
        role: Role,
        content: str,
        parent_id: str | None = None,
        *,
        is_context: bool = True,
    ) -> str:
        """
        Create a live message, optionally as a child of *parent_id*.

        Returns:
            The new message ID.

        Raises:
            ThreadNotFoundError: If the thread is absent or soft-deleted.
            ParentNotFoundError: If *parent_id* is not a message of this thread.
            InvalidStateError: If *role* is not ``"user"`` or ``"assistant"``.
        """
        message = await self._insert(thread_id, role, content, parent_id, is_context)
        self._event_bus.publish(
            RamusEvent.MESSAGE_CREATED,
            {
                "message_id": message.id,
                "thread_id": thread_id,
                "role": role,
                "parent_id": parent_id,
            },
        )
        return message.id

    async def update_message(self, message_id: str, content: str) -> None:
        """
        Replace the content of a user message in place.

        Raises:
            MessageNotFoundError: If the message does not exist.
            InvalidRoleError: If the message is not a user message.
        """
        async with self._store.transaction():
            message = await self._store.require_message(message_id)
            if message.role != "user":
                raise InvalidRoleError(message_id, message.role, "user")
            await self._store.update_message_content(message_id, content)
        self._logger.info("message_updated", message_id=message_id, thread_id=message.thread_id)

    async def collect_descendant_ids(self, message: Message) -> list[str]:
        """
        Return every transitive descendant of *message*, breadth-first.

        Reads the thread's parent links once and walks them in memory.
        """
        children: dict[str, list[str]] = {}
        for child_id, parent_id in await self._store.get_parent_links(message.thread_id):
            if parent_id is not None:
                children.setdefault(parent_id, []).append(child_id)

        descendants: list[str] = []
        queue: deque[str] = deque(children.get(message.id, []))
        while queue:
            current = queue.popleft()
            descendants.append(current)
            queue.extend(children.get(current, []))
        return descendants

    async def delete_descendants(self, message_id: str) -> int:
        """
        Delete every descendant of a message, keeping the message itself.

        Returns:
            Number of messages deleted; 0 for a leaf.

        Raises:
            MessageNotFoundError: If the message does not exist.
        """
        async with self._store.transaction():
            message = await self._store.require_message(message_id)
            descendant_ids = await self.collect_descendant_ids(message)
            # Breadth-first order reversed puts every child before its parent.
            deleted = await self._store.delete_messages(reversed(descendant_ids))
        if deleted:
            self._logger.info(
                "descendants_deleted",
                message_id=message_id,
                thread_id=message.thread_id,
                deleted_count=deleted,
            )
        return deleted

    async def delete_message(self, message_id: str) -> int:
        """
        Delete a message together with its entire subtree.

        Returns:
            Number of messages deleted, including *message_id* itself.

        Raises:
            MessageNotFoundError: If the message does not exist.
        """
        async with self._store.transaction():
            descendant_count = await self.delete_descendants(message_id)
            deleted = descendant_count + await self._store.delete_messages([message_id])
        self._logger.info("message_deleted", message_id=message_id, deleted_count=deleted)
        self._event_bus.publish(
            RamusEvent.MESSAGE_DELETED, {"message_id": message_id, "deleted_count": deleted}
        )
        return deleted

    async def edit_message(self, message_id: str, content: str) -> EditResult:
        """
        Replace a user message's content and delete all of its descendants.

        Both steps commit together. Requesting a fresh reply is a separate
        step (see :meth:`ramus.service.ChatService.regenerate`).

        Raises:
            MessageNotFoundError: If the message does not exist.
            InvalidRoleError: If the message is not a user message.
        """
        async with self._store.transaction():
            await self.update_message(message_id, content)
            deleted = await self.delete_descendants(message_id)
        self._event_bus.publish(
            RamusEvent.MESSAGE_UPDATED,
            {"message_id": message_id, "deleted_descendant_count": deleted},
        )
        return EditResult(message_id=message_id, deleted_descendant_count=deleted)

    async def create_branch(
        self,
        clicked_message_id: str,
        content: str,
        role: Role = "user",
    ) -> BranchResult:
        """
        Fork an alternate continuation next to the clicked message.

        The new message becomes a child of the clicked message's *parent*,
        i.e. a sibling of the clicked message. Branching from a root creates
        a new root in the same thread.

        Raises:
            MessageNotFoundError: If the clicked message does not exist.
        """
        async with self._store.transaction():
            clicked = await self._store.require_message(clicked_message_id)
            message = await self._insert(
                clicked.thread_id, role, content, clicked.parent_id, True
            )
        self._logger.info(
            "branch_created",
            message_id=message.id,
            clicked_message_id=clicked_message_id,
            parent_id=clicked.parent_id,
            thread_id=clicked.thread_id,
        )
        self._event_bus.publish(
            RamusEvent.BRANCH_CREATED,
            {
                "message_id": message.id,
                "clicked_message_id": clicked_message_id,
                "parent_id": clicked.parent_id,
            },
        )
        return BranchResult(message_id=message.id, parent_id=clicked.parent_id)

    async def set_context_flag(self, message_id: str, is_context: bool) -> None:
        """
        Include or exclude a message from future context assembly.

        Raises:
            MessageNotFoundError: If the message does not exist.
        """
        async with self._store.transaction():
            await self._store.require_message(message_id)
            await self._store.update_message_context(message_id, is_context)
        self._logger.info("context_flag_changed", message_id=message_id, is_context=is_context)
        self._event_bus.publish(
            RamusEvent.CONTEXT_FLAG_CHANGED, {"message_id": message_id, "is_context": is_context}
        )

    async def _insert(
        self,
        thread_id: str,
        role: str,
        content: str,
        parent_id: str | None,
        is_context: bool,
    ) -> Message:
        if role not in _ROLES:
            raise InvalidStateError(f"Unknown role {role!r}; expected one of {sorted(_ROLES)}")
        async with self._store.transaction():
            await self._store.get_thread(thread_id)
            if parent_id is not None:
                parent = await self._store.get_message(parent_id)
                if parent is None or parent.thread_id != thread_id:
                    raise ParentNotFoundError(parent_id, thread_id)
            message = await self._store.create_message(
                thread_id, role, content, parent_id=parent_id, is_context=is_context  # type: ignore[arg-type]
            )
            await self._store.touch_thread(thread_id)
        self._logger.info(
            "message_added",
            message_id=message.id,
            thread_id=thread_id,
            role=role,
            parent_id=parent_id,
        )
        return message
