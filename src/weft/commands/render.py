"""Plain-terminal rendering of a block tree."""

from __future__ import annotations

import json
from typing import assert_never

import click

from weft.client.blocks import (
    AgentBlock,
    AgentListBlock,
    AgentStatus,
    BlockTree,
    TextBlock,
    ToolBlock,
)

INDENT = "  "

_STATUS_COLORS: dict[AgentStatus, str] = {
    "running": "yellow",
    "complete": "green",
    "failed": "red",
}


def _input_summary(tool_input: dict[str, object], limit: int = 60) -> str:
    if not tool_input:
        return ""
    text = json.dumps(tool_input, ensure_ascii=False)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _indented(text: str, prefix: str) -> list[str]:
    return [f"{prefix}{line}" for line in text.splitlines()]


def render_tree(tree: BlockTree) -> list[str]:
    """Render *tree* as indented, styled lines (one block after another)."""
    lines: list[str] = []
    for depth, block in tree.walk():
        prefix = INDENT * depth
        match block:
            case TextBlock(text_type="reasoning"):
                lines.extend(
                    click.style(line, dim=True, italic=True)
                    for line in _indented(block.content, prefix)
                )
            case TextBlock():
                lines.extend(_indented(block.content, prefix))
            case ToolBlock():
                head = click.style(f"[{block.tool_name}]", fg="cyan", bold=True)
                summary = _input_summary(block.input)
                lines.append(f"{prefix}{head} {summary}".rstrip())
                if block.output:
                    lines.extend(_indented(block.output, prefix + INDENT + "| "))
            case AgentBlock():
                status = click.style(
                    block.status, fg=_STATUS_COLORS.get(block.status, "white")
                )
                name = click.style(block.agent_type, bold=True)
                lines.append(f"{prefix}> {name} ({status})")
                if block.initial_prompt:
                    lines.extend(
                        click.style(line, dim=True)
                        for line in _indented(block.initial_prompt, prefix + INDENT)
                    )
            case AgentListBlock():
                lines.append(f"{prefix}" + click.style("Agents:", bold=True))
                for entry in block.agents:
                    line = f"{prefix}{INDENT}- {entry.agent_type}"
                    if entry.description:
                        line += f": {entry.description}"
                    lines.append(line)
            case _:
                assert_never(block)
    return lines
