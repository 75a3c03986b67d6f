"""Context path resolution: which messages lead to a given point in the tree."""

from __future__ import annotations

from collections.abc import Iterable

from ramus.models.message import LLMMessage, Message, MessageNode
from ramus.tree.assembler import TreeAssembler


class ContextPathResolver:
    """
    Turns a tree plus an optional target message into a linear path.

    ``resolve_path`` models what the UI shows for a selection: the chain from
    the root to the target, plus the reply that already sits directly beneath
    it (the target's first child), and nothing further down.
    """

    def resolve_path(
        self,
        tree: list[MessageNode],
        target_message_id: str | None = None,
    ) -> list[Message]:
        """
        Return the ordered root-to-target path.

        Args:
            tree: Forest produced by :class:`~ramus.tree.assembler.TreeAssembler`.
            target_message_id: Selected message. ``None`` selects the deepest path.

        Returns:
            The path, with the target's first child appended when it has one.
            An empty list when the target is not in the tree.
        """
        if target_message_id is None:
            return TreeAssembler.find_deepest_path(tree)

        found = self.find_path(tree, target_message_id)
        if found is None:
            return []
        node, path = found
        if node.children:
            path.append(node.children[0].message)
        return path

    @staticmethod
    def find_path(
        tree: list[MessageNode], target_message_id: str
    ) -> tuple[MessageNode, list[Message]] | None:
        """
        Depth-first search from the roots, stopping at the first id match.

        Returns:
            ``(node, path)`` where *path* runs root to target inclusive, or
            ``None`` when the id is absent.
        """
        path: list[Message] = []
        stack: list[tuple[MessageNode, int]] = [(node, 1) for node in reversed(tree)]
        while stack:
            node, depth = stack.pop()
            del path[depth - 1 :]
            path.append(node.message)
            if node.id == target_message_id:
                return node, path
            stack.extend((child, depth + 1) for child in reversed(node.children))
        return None

    @staticmethod
    def context_messages(path: Iterable[Message]) -> list[LLMMessage]:
        """Keep only ``is_context`` messages, as provider messages, in path order."""
        return [LLMMessage(role=m.role, content=m.content) for m in path if m.is_context]
