"""Block tree store -- the client's hierarchical view of a run.

Blocks live in an arena keyed by identifier. Agent blocks hold ordered
child id lists and every block knows its parent, so nesting, renaming and
reparenting never walk the whole tree.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Literal, assert_never

logger = logging.getLogger(__name__)

TextType = Literal["text", "reasoning"]
AgentStatus = Literal["running", "complete", "failed"]


@dataclass
class TextBlock:
    id: str
    content: str = ""
    text_type: TextType = "text"
    type: Literal["text"] = "text"


@dataclass
class ToolBlock:
    id: str
    tool_name: str
    input: dict[str, Any] = field(default_factory=dict)
    output: str | None = None
    agent_id: str | None = None
    type: Literal["tool"] = "tool"

    @property
    def tool_call_id(self) -> str:
        return self.id


@dataclass
class AgentBlock:
    id: str
    agent_type: str
    status: AgentStatus = "running"
    initial_prompt: str | None = None
    children: list[str] = field(default_factory=list)
    type: Literal["agent"] = "agent"

    @property
    def agent_id(self) -> str:
        return self.id


@dataclass
class AgentListEntry:
    agent_id: str
    agent_type: str
    description: str | None = None


@dataclass
class AgentListBlock:
    id: str
    agents: list[AgentListEntry] = field(default_factory=list)
    type: Literal["agent-list"] = "agent-list"


Block = TextBlock | ToolBlock | AgentBlock | AgentListBlock


class BlockTree:
    """Arena of blocks with top-level order, parent links and child lists."""

    def __init__(self) -> None:
        self._blocks: dict[str, Block] = {}
        self._parents: dict[str, str | None] = {}
        self._roots: list[str] = []
        self._text_count = 0

    def __len__(self) -> int:
        return len(self._blocks)

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._blocks

    @property
    def roots(self) -> list[str]:
        return list(self._roots)

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #

    def get(self, block_id: str) -> Block | None:
        return self._blocks.get(block_id)

    def agent(self, agent_id: str | None) -> AgentBlock | None:
        block = self._blocks.get(agent_id) if agent_id else None
        return block if isinstance(block, AgentBlock) else None

    def tool(self, tool_call_id: str) -> ToolBlock | None:
        block = self._blocks.get(tool_call_id)
        return block if isinstance(block, ToolBlock) else None

    def parent_of(self, block_id: str) -> str | None:
        return self._parents.get(block_id)

    def children_of(self, parent_id: str | None) -> list[Block]:
        ids = self._child_ids(parent_id)
        return [self._blocks[i] for i in ids] if ids is not None else []

    def walk(self) -> Iterator[tuple[int, Block]]:
        """Yield ``(depth, block)`` pairs depth-first in display order."""
        stack: list[tuple[int, str]] = [(0, i) for i in reversed(self._roots)]
        while stack:
            depth, block_id = stack.pop()
            block = self._blocks[block_id]
            yield depth, block
            if isinstance(block, AgentBlock):
                stack.extend((depth + 1, c) for c in reversed(block.children))

    # ------------------------------------------------------------------ #
    # Mutation
    # ------------------------------------------------------------------ #

    def new_text_id(self) -> str:
        self._text_count += 1
        return f"text-{self._text_count}"

    def append(self, block: Block, parent_id: str | None = None) -> bool:
        """Append *block* under *parent_id* (or at top level).

        A missing or non-agent parent degrades to a top-level append with a
        warning. Returns True when the block was nested as requested.
        """
        if block.id in self._blocks:
            msg = f"Duplicate block id {block.id!r}"
            raise ValueError(msg)
        nested = True
        parent = self.agent(parent_id)
        if parent_id is not None and parent is None:
            logger.warning(
                "Parent %r for block %r not found; appending at top level",
                parent_id,
                block.id,
            )
            nested = False
        self._blocks[block.id] = block
        if parent is None:
            self._parents[block.id] = None
            self._roots.append(block.id)
        else:
            self._parents[block.id] = parent.id
            parent.children.append(block.id)
        return nested

    def append_text(
        self,
        text: str,
        parent_id: str | None = None,
        text_type: TextType = "text",
    ) -> TextBlock:
        """Extend the last text block of *parent_id* or start a new one."""
        siblings = self.children_of(parent_id)
        last = siblings[-1] if siblings else None
        if isinstance(last, TextBlock) and last.text_type == text_type:
            last.content += text
            return last
        block = TextBlock(id=self.new_text_id(), content=text, text_type=text_type)
        self.append(block, parent_id)
        return block

    def rename(self, old_id: str, new_id: str) -> Block:
        """Give a block a new identifier, keeping its position."""
        block = self._blocks.pop(old_id)
        if new_id in self._blocks:
            self._blocks[old_id] = block
            msg = f"Cannot rename {old_id!r}: {new_id!r} already exists"
            raise ValueError(msg)
        block.id = new_id
        self._blocks[new_id] = block

        parent_id = self._parents.pop(old_id)
        self._parents[new_id] = parent_id
        siblings = self._child_ids(parent_id)
        if siblings is not None:
            siblings[siblings.index(old_id)] = new_id
        if isinstance(block, AgentBlock):
            for child in block.children:
                self._parents[child] = new_id
        return block

    def reparent(self, block_id: str, parent_id: str | None) -> bool:
        """Move a block to the end of *parent_id*'s children (or top level)."""
        block = self._blocks[block_id]
        target = self.agent(parent_id)
        cyclic = target is not None and self._is_ancestor(block_id, target.id)
        if parent_id is not None and (target is None or cyclic):
            logger.warning(
                "Cannot move %r under %r; moving to top level", block_id, parent_id
            )
            target = None
        self._detach(block_id)
        if target is None:
            self._parents[block_id] = None
            self._roots.append(block.id)
            return parent_id is None
        self._parents[block_id] = target.id
        target.children.append(block_id)
        return True

    def replace_children(self, agent_id: str, blocks: list[Block]) -> None:
        """Drop an agent's subtree and give it *blocks* as its children."""
        agent = self.agent(agent_id)
        if agent is None:
            logger.warning("Agent %r not found; children not replaced", agent_id)
            return
        for child in list(agent.children):
            self.remove(child)
        for block in blocks:
            self.append(block, agent_id)

    def remove(self, block_id: str) -> None:
        """Remove a block and its whole subtree."""
        block = self._blocks.get(block_id)
        if block is None:
            return
        if isinstance(block, AgentBlock):
            for child in list(block.children):
                self.remove(child)
        self._detach(block_id)
        del self._blocks[block_id]
        del self._parents[block_id]

    # ------------------------------------------------------------------ #
    # Export
    # ------------------------------------------------------------------ #

    def snapshot(self) -> list[dict[str, Any]]:
        """Nested plain-dict view of the tree (for tests and JSON output)."""
        return [self._snapshot_block(i) for i in self._roots]

    def _snapshot_block(self, block_id: str) -> dict[str, Any]:
        block = self._blocks[block_id]
        match block:
            case TextBlock():
                return {
                    "type": "text",
                    "content": block.content,
                    "textType": block.text_type,
                }
            case ToolBlock():
                data: dict[str, Any] = {
                    "type": "tool",
                    "toolCallId": block.id,
                    "toolName": block.tool_name,
                    "input": block.input,
                }
                if block.output is not None:
                    data["output"] = block.output
                if block.agent_id is not None:
                    data["agentId"] = block.agent_id
                return data
            case AgentBlock():
                return {
                    "type": "agent",
                    "agentId": block.id,
                    "agentType": block.agent_type,
                    "status": block.status,
                    "blocks": [self._snapshot_block(c) for c in block.children],
                }
            case AgentListBlock():
                return {
                    "type": "agent-list",
                    "id": block.id,
                    "agents": [
                        {"agentId": a.agent_id, "agentType": a.agent_type}
                        for a in block.agents
                    ],
                }
            case _:
                assert_never(block)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _child_ids(self, parent_id: str | None) -> list[str] | None:
        if parent_id is None:
            return self._roots
        parent = self.agent(parent_id)
        return parent.children if parent is not None else None

    def _detach(self, block_id: str) -> None:
        siblings = self._child_ids(self._parents.get(block_id))
        if siblings is not None and block_id in siblings:
            siblings.remove(block_id)

    def _is_ancestor(self, ancestor_id: str, block_id: str) -> bool:
        current: str | None = block_id
        while current is not None:
            if current == ancestor_id:
                return True
            current = self._parents.get(current)
        return False
