"""Event router -- rebuilds the block tree from lifecycle events and chunks.

Events may arrive out of order (a tool call for an agent whose block does
not exist yet, a result for an unknown call). Such cases degrade to a
top-level append or a no-op with a warning; they never raise. Only an event
kind the dispatcher does not know is treated as a hard failure.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable
from dataclasses import dataclass, field
from typing import Any, assert_never

from pydantic import TypeAdapter, ValidationError

from weft.client.blocks import AgentBlock, BlockTree, TextBlock, TextType, ToolBlock
from weft.client.chunk_filter import MarkupFilter
from weft.client.formatting import (
    extract_spawn_result_content,
    format_tool_result,
    spawn_results,
)
from weft.client.merge import merge_text
from weft.client.spawn_matcher import (
    SpawnPlaceholder,
    find_matching_spawn_agent,
    placeholder_id,
)
from weft.config.models import DisplayConfig, bare_agent_name
from weft.constants import INTERRUPTED_NOTICE, SPAWN_AGENTS_TOOL
from weft.session.models import (
    ErrorEvent,
    FinishEvent,
    LifecycleEvent,
    ReasoningChunkEvent,
    ReasoningDeltaEvent,
    RootChunkEvent,
    RunEndEvent,
    RunRecord,
    RunStartEvent,
    StreamChunk,
    SubagentChunkEvent,
    SubagentFinishEvent,
    SubagentStartEvent,
    TextEvent,
    ToolCallEvent,
    ToolResultEvent,
)

logger = logging.getLogger(__name__)

_EVENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(LifecycleEvent)


@dataclass(frozen=True)
class Destination:
    """Where text goes: the root stream or an agent block, and its kind."""

    agent_id: str | None = None
    text_type: TextType = "text"

    @property
    def is_root(self) -> bool:
        return self.agent_id is None


@dataclass
class ClientSession:
    """Run-owned client state."""

    tree: BlockTree = field(default_factory=BlockTree)
    placeholders: dict[str, SpawnPlaceholder] = field(default_factory=dict)
    spawn_calls: set[str] = field(default_factory=set)
    accumulators: dict[Destination, str] = field(default_factory=dict)
    active_agents: set[str] = field(default_factory=set)
    hidden_agent_ids: set[str] = field(default_factory=set)
    root_stream_seen: bool = False
    total_cost: float | None = None
    errors: list[str] = field(default_factory=list)
    interrupted: bool = False

    def release_agent(self, agent_id: str) -> None:
        for dest in [d for d in self.accumulators if d.agent_id == agent_id]:
            del self.accumulators[dest]
        self.active_agents.discard(agent_id)


class EventRouter:
    """Applies lifecycle events and stream chunks to a :class:`ClientSession`.

    Args:
        display: Hidden tools/agents and markup stripping settings.
        session: Existing session to update (a fresh one by default).
        tool_names: Extra tag names whose markup is stripped from chunks.
    """

    def __init__(
        self,
        display: DisplayConfig | None = None,
        session: ClientSession | None = None,
        tool_names: Collection[str] = (),
    ) -> None:
        self._display = display or DisplayConfig()
        self.session = session or ClientSession()
        self._hidden_tools = frozenset(self._display.hidden_tools)
        self._hidden_agents = frozenset(
            bare_agent_name(a) for a in self._display.hidden_agents
        )
        self._filter: MarkupFilter | None = None
        if self._display.strip_tool_markup:
            self._filter = MarkupFilter(frozenset(tool_names) | self._hidden_tools)

    @property
    def tree(self) -> BlockTree:
        return self.session.tree

    def is_hidden_agent(self, agent_type: str) -> bool:
        return bool(agent_type) and bare_agent_name(agent_type) in self._hidden_agents

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    def route_raw(self, data: Any) -> bool:
        """Validate a raw event dict and dispatch it; invalid events are dropped."""
        try:
            event = _EVENT_ADAPTER.validate_python(data)
        except ValidationError as exc:
            logger.warning("Discarding invalid event: %s", exc.errors()[:1])
            return False
        self.dispatch(event)
        return True

    def dispatch(self, event: LifecycleEvent) -> None:
        match event:
            case SubagentStartEvent():
                self._on_subagent_start(event)
            case SubagentFinishEvent():
                self._on_subagent_finish(event)
            case ToolCallEvent():
                self._on_tool_call(event)
            case ToolResultEvent():
                self._on_tool_result(event)
            case TextEvent():
                self._on_text_event(event)
            case ReasoningDeltaEvent():
                dest = Destination(event.agent_id, "reasoning")
                self._merge_into(dest, event.text)
            case FinishEvent():
                self._on_finish(event)
            case ErrorEvent():
                self.session.errors.append(event.message)
                self.tree.append(
                    TextBlock(
                        id=self.tree.new_text_id(),
                        content=f"**Error:** {event.message}",
                    )
                )
            case _:
                assert_never(event)

    def handle_chunk(self, chunk: StreamChunk) -> None:
        """Apply a live stream chunk (root text, sub-agent text or reasoning)."""
        match chunk:
            case str():
                dest = Destination(None, "text")
                text = chunk
            case SubagentChunkEvent():
                if chunk.agent_id in self.session.hidden_agent_ids:
                    return
                dest = Destination(chunk.agent_id, "text")
                text = chunk.chunk
            case ReasoningChunkEvent():
                dest = Destination(chunk.agent_id, "reasoning")
                text = chunk.chunk
            case _:
                assert_never(chunk)

        if dest.is_root:
            self.session.root_stream_seen = True
        self._merge_into(dest, text)

    def apply_record(self, record: RunRecord) -> None:
        """Apply one line of a recorded session."""
        match record:
            case RunStartEvent():
                logger.debug("Replaying run %s (%s)", record.run_id, record.agent)
            case RunEndEvent():
                self.flush()
                if record.reason == "interrupted":
                    self.mark_interrupted()
            case RootChunkEvent():
                self.handle_chunk(record.chunk)
            case SubagentChunkEvent() | ReasoningChunkEvent():
                self.handle_chunk(record)
            case _:
                self.dispatch(record)

    def apply_records(self, records: Iterable[RunRecord]) -> ClientSession:
        for record in records:
            self.apply_record(record)
        return self.session

    def flush(self) -> None:
        """Release text held back by the markup filter."""
        if self._filter is None:
            return
        for dest in self._filter.pending():
            text = self._filter.flush(dest)
            if text and isinstance(dest, Destination):
                self._write(dest, text)

    def mark_interrupted(self) -> None:
        """Append the interrupted notice to the last top-level text block."""
        self.session.interrupted = True
        roots = self.tree.children_of(None)
        last = roots[-1] if roots else None
        if isinstance(last, TextBlock) and last.text_type == "text":
            last.content += f"\n\n{INTERRUPTED_NOTICE}"
        else:
            self.tree.append(
                TextBlock(id=self.tree.new_text_id(), content=INTERRUPTED_NOTICE)
            )

    # ------------------------------------------------------------------ #
    # Agents
    # ------------------------------------------------------------------ #

    def _on_subagent_start(self, event: SubagentStartEvent) -> None:
        if event.agent_id in self.tree:
            logger.warning("Duplicate start for agent %r ignored", event.agent_id)
            return
        if self.is_hidden_agent(event.agent_type):
            self.session.hidden_agent_ids.add(event.agent_id)
            return
        session = self.session
        session.active_agents.add(event.agent_id)

        found = find_matching_spawn_agent(session.placeholders, event.agent_type)
        if found is not None:
            del session.placeholders[found.key]
            session.active_agents.discard(found.key)
            if found.key not in self.tree:
                logger.warning("Placeholder block %r vanished", found.key)
            else:
                block = self.tree.rename(found.key, event.agent_id)
                if isinstance(block, AgentBlock) and event.prompt:
                    block.initial_prompt = event.prompt
                self._place_agent(event.agent_id, event.parent_agent_id)
                return

        self.tree.append(
            AgentBlock(
                id=event.agent_id,
                agent_type=event.agent_type,
                initial_prompt=event.prompt,
            ),
            event.parent_agent_id,
        )

    def _place_agent(self, agent_id: str, parent_agent_id: str | None) -> None:
        """Move a promoted placeholder under its parent unless already there."""
        target = parent_agent_id
        if target is not None and self.tree.agent(target) is None:
            logger.warning(
                "Parent agent %r of %r not found; moving to top level",
                target,
                agent_id,
            )
            target = None
        if self.tree.parent_of(agent_id) != target:
            self.tree.reparent(agent_id, target)

    def _on_subagent_finish(self, event: SubagentFinishEvent) -> None:
        if self.is_hidden_agent(event.agent_type):
            return
        self.session.release_agent(event.agent_id)
        block = self.tree.agent(event.agent_id)
        if block is None:
            logger.warning("Finish for unknown agent %r", event.agent_id)
            return
        block.status = "failed" if event.error else "complete"

    # ------------------------------------------------------------------ #
    # Tools
    # ------------------------------------------------------------------ #

    def _on_tool_call(self, event: ToolCallEvent) -> None:
        agents = event.input.get("agents")
        if event.tool_name == SPAWN_AGENTS_TOOL and isinstance(agents, list):
            self._on_spawn_agents_call(event, agents)
            return
        if event.tool_name in self._hidden_tools:
            return
        if event.tool_call_id in self.tree:
            logger.warning("Duplicate tool call %r ignored", event.tool_call_id)
            return
        self.tree.append(
            ToolBlock(
                id=event.tool_call_id,
                tool_name=event.tool_name,
                input=event.input,
                agent_id=event.agent_id,
            ),
            event.agent_id,
        )
        self.session.active_agents.add(event.tool_call_id)

    def _on_spawn_agents_call(self, event: ToolCallEvent, agents: list[Any]) -> None:
        if event.tool_call_id in self.session.spawn_calls:
            logger.warning("Duplicate spawn call %r ignored", event.tool_call_id)
            return
        self.session.spawn_calls.add(event.tool_call_id)
        for index, agent in enumerate(agents):
            spec = agent if isinstance(agent, dict) else {}
            agent_type = str(spec.get("agent_type") or "unknown")
            key = placeholder_id(event.tool_call_id, index)
            self.session.placeholders[key] = SpawnPlaceholder(index, agent_type)
            if self.is_hidden_agent(agent_type) or key in self.tree:
                continue
            prompt = spec.get("prompt")
            self.tree.append(
                AgentBlock(
                    id=key,
                    agent_type=agent_type,
                    initial_prompt=str(prompt) if prompt is not None else None,
                ),
                event.agent_id,
            )
            self.session.active_agents.add(key)

    def _on_tool_result(self, event: ToolResultEvent) -> None:
        results = spawn_results(event.output)
        if results is not None:
            self._on_spawn_agents_result(event.tool_call_id, results)
            return

        self.session.active_agents.discard(event.tool_call_id)
        block = self.tree.tool(event.tool_call_id)
        if block is None:
            # Hidden tools have no block; anything else arrived out of order.
            if event.tool_name not in self._hidden_tools:
                logger.warning("Result for unknown tool call %r", event.tool_call_id)
            return
        block.output = format_tool_result(block.tool_name, event.output, event.error)

    def _on_spawn_agents_result(self, tool_call_id: str, results: list[Any]) -> None:
        for index, result in enumerate(results):
            key = placeholder_id(tool_call_id, index)
            self.session.placeholders.pop(key, None)
            self.session.active_agents.discard(key)
            block = self.tree.agent(key)
            if block is None or not isinstance(result, dict) or not result.get("value"):
                continue
            content, has_error = extract_spawn_result_content(result["value"])
            self.tree.replace_children(
                key, [TextBlock(id=self.tree.new_text_id(), content=content)]
            )
            block.status = "failed" if has_error else "complete"

    # ------------------------------------------------------------------ #
    # Text
    # ------------------------------------------------------------------ #

    def _on_text_event(self, event: TextEvent) -> None:
        dest = Destination(event.agent_id, "text")
        if dest.is_root and self.session.root_stream_seen:
            logger.debug("Skipping root text event; stream already handled")
            return
        self._merge_into(dest, event.text)

    def _merge_into(self, dest: Destination, text: str) -> None:
        # Accumulators hold unfiltered text; only the new part is filtered.
        previous = self.session.accumulators.get(dest, "")
        merged = merge_text(previous, text)
        if not merged.delta:
            return
        self.session.accumulators[dest] = merged.next
        delta = merged.delta
        if dest.text_type == "text" and self._filter is not None:
            delta = self._filter.feed(dest, delta)
        if delta:
            self._write(dest, delta)

    def _write(self, dest: Destination, text: str) -> None:
        if dest.agent_id in self.session.hidden_agent_ids:
            return
        if dest.is_root:
            self.tree.append_text(text, None, dest.text_type)
            return
        if self.tree.agent(dest.agent_id) is None:
            logger.warning("Text for unknown agent %r dropped", dest.agent_id)
            return
        self.tree.append_text(text, dest.agent_id, dest.text_type)

    def _on_finish(self, event: FinishEvent) -> None:
        if event.total_cost is not None:
            self.session.total_cost = event.total_cost
        self.flush()
        if self.session.placeholders:
            logger.debug(
                "Run finished with %d unmatched placeholder(s)",
                len(self.session.placeholders),
            )
        self.session.placeholders.clear()
