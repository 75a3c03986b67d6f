"""Tests for TreeAssembler."""

from __future__ import annotations

import pytest

from ramus.errors import ThreadNotFoundError
from ramus.tree.assembler import TreeAssembler


def ids(messages):
    return [m.id for m in messages]


class TestAssemble:
    def test_chain(self, msg):
        tree = TreeAssembler.assemble([msg("a"), msg("b", parent="a"), msg("c", parent="b")])
        assert len(tree) == 1
        assert tree[0].id == "a"
        assert tree[0].children[0].id == "b"
        assert tree[0].children[0].children[0].id == "c"

    def test_siblings_keep_input_order(self, msg):
        tree = TreeAssembler.assemble(
            [msg("a"), msg("b1", parent="a"), msg("b2", parent="a"), msg("b3", parent="a")]
        )
        assert [child.id for child in tree[0].children] == ["b1", "b2", "b3"]

    def test_multiple_roots(self, msg):
        tree = TreeAssembler.assemble([msg("a"), msg("x"), msg("b", parent="a")])
        assert [node.id for node in tree] == ["a", "x"]

    def test_child_listed_before_parent(self, msg):
        tree = TreeAssembler.assemble([msg("b", parent="a"), msg("a")])
        assert [node.id for node in tree] == ["a"]
        assert tree[0].children[0].id == "b"

    def test_every_message_appears_once(self, msg):
        messages = [
            msg("a"),
            msg("b", parent="a"),
            msg("c", parent="a"),
            msg("d", parent="c"),
            msg("e"),
        ]
        tree = TreeAssembler.assemble(messages)
        seen = [node.id for node in TreeAssembler.iter_nodes(tree)]
        assert sorted(seen) == sorted(ids(messages))
        assert seen == ["a", "b", "c", "d", "e"]

    def test_orphan_surfaces_as_root(self, msg):
        tree = TreeAssembler.assemble([msg("a"), msg("lost", parent="gone")])
        assert [node.id for node in tree] == ["a", "lost"]

    def test_empty(self):
        assert TreeAssembler.assemble([]) == []

    def test_to_dict_nests_children(self, msg):
        tree = TreeAssembler.assemble([msg("a"), msg("b", parent="a", role="assistant")])
        rendered = tree[0].to_dict()
        assert rendered["id"] == "a"
        assert rendered["children"][0]["id"] == "b"
        assert rendered["children"][0]["role"] == "assistant"
        assert rendered["children"][0]["children"] == []


class TestDeepestPath:
    def test_longest_path_wins(self, msg):
        tree = TreeAssembler.assemble(
            [
                msg("a"),
                msg("b", parent="a"),
                msg("c", parent="a"),
                msg("d", parent="c"),
            ]
        )
        assert ids(TreeAssembler.find_deepest_path(tree)) == ["a", "c", "d"]

    def test_tie_goes_to_first_encountered(self, msg):
        tree = TreeAssembler.assemble(
            [
                msg("a"),
                msg("b1", parent="a"),
                msg("b2", parent="a"),
                msg("c1", parent="b1"),
                msg("c2", parent="b2"),
            ]
        )
        assert ids(TreeAssembler.find_deepest_path(tree)) == ["a", "b1", "c1"]

    def test_considers_every_root(self, msg):
        tree = TreeAssembler.assemble([msg("a"), msg("x"), msg("y", parent="x")])
        assert ids(TreeAssembler.find_deepest_path(tree)) == ["x", "y"]

    def test_empty_tree(self):
        assert TreeAssembler.find_deepest_path([]) == []

    def test_very_deep_chain(self, msg):
        depth = 5_000
        messages = [msg("m0")]
        messages += [msg(f"m{i}", parent=f"m{i - 1}") for i in range(1, depth)]
        tree = TreeAssembler.assemble(messages)
        path = TreeAssembler.find_deepest_path(tree)
        assert len(path) == depth
        assert path[-1].id == f"m{depth - 1}"


class TestAncestorPath:
    def test_root_first(self, msg):
        messages = [msg("a"), msg("b", parent="a"), msg("c", parent="b"), msg("x", parent="a")]
        by_id = {m.id: m for m in messages}
        assert ids(TreeAssembler.ancestor_path(by_id, "c")) == ["a", "b", "c"]
        assert ids(TreeAssembler.ancestor_path(by_id, "x")) == ["a", "x"]

    def test_unknown_id(self, msg):
        assert TreeAssembler.ancestor_path({"a": msg("a")}, "missing") == []

    def test_cycle_terminates(self, msg):
        by_id = {"a": msg("a", parent="b"), "b": msg("b", parent="a")}
        assert ids(TreeAssembler.ancestor_path(by_id, "a")) == ["b", "a"]


class TestBuildTree:
    async def test_build_tree_from_store(self, assembler, editor, thread):
        root = await editor.add_message(thread.id, "user", "hi")
        reply = await editor.add_message(thread.id, "assistant", "hello", root)
        alt = await editor.add_message(thread.id, "assistant", "hey", root)

        tree = await assembler.build_tree(thread.id)
        assert [node.id for node in tree] == [root]
        assert [child.id for child in tree[0].children] == [reply, alt]

    async def test_build_tree_missing_thread(self, assembler):
        with pytest.raises(ThreadNotFoundError):
            await assembler.build_tree("thr_missing")

    async def test_build_tree_empty_thread(self, assembler, thread):
        assert await assembler.build_tree(thread.id) == []
