"""Client side -- block tree reconstruction from run events."""

from weft.client.blocks import (
    AgentBlock,
    AgentListBlock,
    AgentListEntry,
    Block,
    BlockTree,
    TextBlock,
    ToolBlock,
)
from weft.client.chunk_filter import MarkupFilter
from weft.client.formatting import (
    extract_spawn_result_content,
    format_tool_output,
    format_tool_result,
)
from weft.client.merge import MergeResult, merge_text
from weft.client.router import ClientSession, Destination, EventRouter
from weft.client.spawn_matcher import (
    SpawnMatch,
    SpawnPlaceholder,
    find_matching_spawn_agent,
    placeholder_id,
)

__all__ = [
    "AgentBlock",
    "AgentListBlock",
    "AgentListEntry",
    "Block",
    "BlockTree",
    "ClientSession",
    "Destination",
    "EventRouter",
    "MarkupFilter",
    "MergeResult",
    "SpawnMatch",
    "SpawnPlaceholder",
    "TextBlock",
    "ToolBlock",
    "extract_spawn_result_content",
    "find_matching_spawn_agent",
    "format_tool_output",
    "format_tool_result",
    "merge_text",
    "placeholder_id",
]
