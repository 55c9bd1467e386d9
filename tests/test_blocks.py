"""Tests for the block tree store."""

from __future__ import annotations

import logging

import pytest

from weft.client.blocks import (
    AgentBlock,
    AgentListBlock,
    AgentListEntry,
    BlockTree,
    TextBlock,
    ToolBlock,
)


@pytest.fixture
def tree() -> BlockTree:
    t = BlockTree()
    t.append(AgentBlock(id="a1", agent_type="researcher"))
    t.append(AgentBlock(id="a2", agent_type="file-picker"), "a1")
    return t


class TestAppend:
    def test_top_level_and_nested(self, tree: BlockTree) -> None:
        assert tree.roots == ["a1"]
        assert tree.parent_of("a2") == "a1"
        assert [b.id for b in tree.children_of("a1")] == ["a2"]

    def test_missing_parent_falls_back_to_top_level(
        self, tree: BlockTree, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING):
            nested = tree.append(ToolBlock(id="t1", tool_name="read_files"), "ghost")
        assert nested is False
        assert tree.roots == ["a1", "t1"]
        assert "not found" in caplog.text

    def test_non_agent_parent_falls_back(self, tree: BlockTree) -> None:
        tree.append(ToolBlock(id="t1", tool_name="read_files"), "a1")
        tree.append(TextBlock(id="x", content="hi"), "t1")
        assert "x" in tree.roots

    def test_duplicate_id_rejected(self, tree: BlockTree) -> None:
        with pytest.raises(ValueError, match="Duplicate"):
            tree.append(AgentBlock(id="a2", agent_type="other"))


class TestAppendText:
    def test_extends_last_text_block(self, tree: BlockTree) -> None:
        tree.append_text("Hello", "a1")
        tree.append_text(" world", "a1")
        texts = [b for b in tree.children_of("a1") if isinstance(b, TextBlock)]
        assert [t.content for t in texts] == ["Hello world"]

    def test_new_block_after_other_kind(self, tree: BlockTree) -> None:
        tree.append_text("one", None)
        tree.append(ToolBlock(id="t1", tool_name="read_files"))
        tree.append_text("two", None)
        ids = [b.id for b in tree.children_of(None)]
        assert ids == ["a1", "text-1", "t1", "text-2"]

    def test_reasoning_kept_apart(self, tree: BlockTree) -> None:
        tree.append_text("thinking", None, "reasoning")
        tree.append_text("answer", None)
        texts = [b for b in tree.children_of(None) if isinstance(b, TextBlock)]
        kinds = [b.text_type for b in texts]
        assert kinds == ["reasoning", "text"]


class TestRenameAndReparent:
    def test_rename_keeps_position_and_children(self, tree: BlockTree) -> None:
        tree.append(TextBlock(id="t", content="x"), "a2")
        tree.rename("a2", "real-id")
        assert "a2" not in tree
        assert [b.id for b in tree.children_of("a1")] == ["real-id"]
        assert tree.parent_of("t") == "real-id"

    def test_rename_onto_existing_id_fails(self, tree: BlockTree) -> None:
        with pytest.raises(ValueError):
            tree.rename("a2", "a1")
        assert "a2" in tree

    def test_reparent_moves_to_end(self, tree: BlockTree) -> None:
        tree.append(AgentBlock(id="b", agent_type="other"))
        assert tree.reparent("b", "a1") is True
        assert tree.roots == ["a1"]
        assert [c.id for c in tree.children_of("a1")] == ["a2", "b"]

    def test_reparent_to_missing_parent_goes_top_level(self, tree: BlockTree) -> None:
        assert tree.reparent("a2", "ghost") is False
        assert tree.roots == ["a1", "a2"]
        assert tree.children_of("a1") == []

    def test_reparent_under_descendant_refused(self, tree: BlockTree) -> None:
        tree.reparent("a1", "a2")
        assert "a1" in tree.roots
        assert tree.parent_of("a2") == "a1"


class TestRemoveAndReplace:
    def test_replace_children(self, tree: BlockTree) -> None:
        tree.append(TextBlock(id="old", content="x"), "a2")
        tree.replace_children("a2", [TextBlock(id="new", content="y")])
        assert "old" not in tree
        assert [b.id for b in tree.children_of("a2")] == ["new"]

    def test_replace_children_of_unknown_agent_is_noop(self, tree: BlockTree) -> None:
        tree.replace_children("ghost", [TextBlock(id="new", content="y")])
        assert "new" not in tree

    def test_remove_subtree(self, tree: BlockTree) -> None:
        tree.append(TextBlock(id="t", content="x"), "a2")
        tree.remove("a1")
        assert len(tree) == 0
        assert tree.roots == []


class TestSnapshot:
    def test_nested_shape(self, tree: BlockTree) -> None:
        tree.append(ToolBlock(id="c1", tool_name="read_files", agent_id="a2"), "a2")
        tree.append(
            AgentListBlock(id="list", agents=[AgentListEntry("x", "file-picker")])
        )
        snap = tree.snapshot()
        assert snap[0]["agentId"] == "a1"
        child = snap[0]["blocks"][0]
        assert child["agentType"] == "file-picker"
        assert child["status"] == "running"
        assert child["blocks"][0] == {
            "type": "tool",
            "toolCallId": "c1",
            "toolName": "read_files",
            "input": {},
            "agentId": "a2",
        }
        assert snap[1]["type"] == "agent-list"

    def test_walk_order(self, tree: BlockTree) -> None:
        tree.append_text("after", None)
        assert [(d, b.id) for d, b in tree.walk()] == [
            (0, "a1"),
            (1, "a2"),
            (0, "text-1"),
        ]
