"""Tree assembly: flat message rows to a forest of nested nodes."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import structlog

from ramus.models.message import Message, MessageNode
from ramus.store.message_store import MessageStore

_logger = structlog.get_logger("ramus.tree")


class TreeAssembler:
    """
    Builds the branching structure of a thread from its flat message list.

    Invariants of the assembled forest:
    1. Every message appears exactly once.
    2. A message is a child of the node whose id equals its ``parent_id``.
    3. Messages with ``parent_id=None`` are top-level roots.
    4. Siblings keep the order of the input (creation order).

    Assembly is a single pass over an id→node map. Every traversal in this
    module uses an explicit stack, so conversation depth is bounded only by
    memory.
    """

    def __init__(self, store: MessageStore) -> None:
        self._store = store

    async def build_tree(self, thread_id: str) -> list[MessageNode]:
        """
        Load a live thread and return its forest of root nodes.

        Raises:
            ThreadNotFoundError: If the thread does not exist or is soft-deleted.
        """
        messages = await self._store.get_messages_by_thread(thread_id)
        tree = self.assemble(messages)
        _logger.debug(
            "tree_built", thread_id=thread_id, message_count=len(messages), root_count=len(tree)
        )
        return tree

    @staticmethod
    def assemble(messages: Iterable[Message]) -> list[MessageNode]:
        """
        Assemble an in-memory forest from messages in creation order.

        A message whose parent is not among *messages* is surfaced as a root
        rather than dropped.
        """
        ordered = list(messages)
        nodes: dict[str, MessageNode] = {m.id: MessageNode(message=m) for m in ordered}
        roots: list[MessageNode] = []

        for message in ordered:
            node = nodes[message.id]
            if message.parent_id is None:
                roots.append(node)
                continue
            parent = nodes.get(message.parent_id)
            if parent is None:
                _logger.warning(
                    "orphan_message_surfaced_as_root",
                    message_id=message.id,
                    parent_id=message.parent_id,
                )
                roots.append(node)
                continue
            parent.children.append(node)

        return roots

    @staticmethod
    def find_deepest_path(tree: list[MessageNode]) -> list[Message]:
        """
        Return the longest root-to-leaf path.

        Leaves are visited in depth-first, left-to-right order and a path only
        replaces the current best when it is strictly longer, so ties go to
        the first path encountered.
        """
        best: list[Message] = []
        path: list[Message] = []
        stack: list[tuple[MessageNode, int]] = [(node, 1) for node in reversed(tree)]

        while stack:
            node, depth = stack.pop()
            del path[depth - 1 :]
            path.append(node.message)
            if not node.children:
                if depth > len(best):
                    best = list(path)
                continue
            stack.extend((child, depth + 1) for child in reversed(node.children))

        return best

    @staticmethod
    def ancestor_path(messages_by_id: Mapping[str, Message], message_id: str) -> list[Message]:
        """
        Walk parent pointers from *message_id* up to its root.

        Returns:
            The chain root first, ending at *message_id*. Empty if the id is
            unknown. The walk stops at a missing parent or a repeated id.
        """
        path: list[Message] = []
        seen: set[str] = set()
        current = messages_by_id.get(message_id)
        while current is not None and current.id not in seen:
            seen.add(current.id)
            path.append(current)
            if current.parent_id is None:
                break
            current = messages_by_id.get(current.parent_id)
        path.reverse()
        return path

    @staticmethod
    def iter_nodes(tree: list[MessageNode]) -> Iterable[MessageNode]:
        """Yield every node in depth-first pre-order."""
        stack = list(reversed(tree))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))
