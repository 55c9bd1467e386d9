"""Tests for processing one model step end to end."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest

from weft.config.models import AgentTemplate
from weft.runtime.abort import AbortError, AbortSignal
from weft.runtime.history import INTERRUPTED_MESSAGE
from weft.runtime.messages import AssistantMessage, ToolMessage, UserMessage
from weft.runtime.model import ModelChunk, ReasoningDelta, TextDelta
from weft.runtime.stream import process_stream
from weft.runtime.tools import ToolContext, ToolDefinition, ToolRegistry
from weft.session.models import (
    ReasoningChunkEvent,
    SubagentChunkEvent,
    ToolCallEvent,
    ToolResultEvent,
    json_tool_result,
)


async def _chunks(*parts: str | ModelChunk) -> AsyncIterator[ModelChunk]:
    for part in parts:
        yield TextDelta(part) if isinstance(part, str) else part
        await asyncio.sleep(0)


class Step:
    """Registry, context and sinks for one agent step."""

    def __init__(self, tmp_path: Path, parent_agent_id: str | None = None) -> None:
        self.template = AgentTemplate(id="base")
        self.registry = ToolRegistry(self.template)
        self.signal = AbortSignal()
        self.ctx = ToolContext(
            template=self.template,
            agent_id="run-base-1",
            working_dir=tmp_path,
            signal=self.signal,
            parent_agent_id=parent_agent_id,
        )
        self.events: list[Any] = []
        self.chunks: list[Any] = []
        self.started: list[str] = []
        ids = itertools.count(1)
        self._ids = lambda: f"c{next(ids)}"

        async def lookup(arguments: dict[str, Any], ctx: ToolContext) -> Any:
            self.started.append(arguments["q"])
            await asyncio.sleep(float(arguments.get("delay", "0")))
            return json_tool_result({"answer": arguments["q"]})

        self.registry.register(ToolDefinition("lookup", lookup))

    async def run(self, stream: AsyncIterator[ModelChunk]) -> Any:
        return await process_stream(
            stream,
            registry=self.registry,
            ctx=self.ctx,
            on_event=self.events.append,
            on_chunk=self.chunks.append,
            id_factory=self._ids,
        )


@pytest.fixture
def step(tmp_path: Path) -> Step:
    return Step(tmp_path)


class TestProcessStream:
    async def test_text_only(self, step: Step) -> None:
        result = await step.run(_chunks("Hello ", "there"))
        assert result.full_response == "Hello there"
        assert step.chunks == ["Hello ", "there"]
        assert result.tool_calls == []
        assert isinstance(result.history[-1], AssistantMessage)

    async def test_split_tool_call_runs_once(self, step: Step) -> None:
        result = await step.run(
            _chunks("Check <loo", "kup><q>x</q></lo", "okup> then done.")
        )
        assert step.started == ["x"]
        assert result.full_response == "Check  then done."
        kinds = [type(e) for e in step.events]
        assert kinds == [ToolCallEvent, ToolResultEvent]
        assert [m.role for m in result.history] == [
            "assistant",
            "assistant",
            "assistant",
            "tool",
        ]

    async def test_tool_starts_before_stream_ends(self, step: Step) -> None:
        seen_before_end: list[str] = []

        async def stream() -> AsyncIterator[ModelChunk]:
            yield TextDelta("<lookup><q>early</q></lookup>")
            await asyncio.sleep(0.01)
            seen_before_end.extend(step.started)
            yield TextDelta(" tail")

        await step.run(stream())
        assert seen_before_end == ["early"]

    async def test_results_in_invocation_order(self, step: Step) -> None:
        text = (
            "<lookup><q>A</q><delay>0.005</delay></lookup>"
            "<lookup><q>B</q><delay>0.05</delay></lookup>"
            "<lookup><q>C</q><delay>0.005</delay></lookup>"
        )
        result = await step.run(_chunks(text))
        tools = [m for m in result.history if isinstance(m, ToolMessage)]
        assert [m.tool_call_id for m in tools] == ["c1", "c2", "c3"]
        assert [r.input["q"] for r in result.tool_results] == ["A", "B", "C"]

    async def test_unknown_tool_reports_error(self, step: Step) -> None:
        result = await step.run(_chunks("<teleport><to>mars</to></teleport>"))
        assert [r.error for r in result.tool_calls] == ["Tool teleport not found"]
        assert result.had_tool_call_error is True
        last = result.history[-1]
        assert isinstance(last, UserMessage)
        assert "Tool teleport not found" in last.content

    async def test_prose_markup_stays_text(self, step: Step) -> None:
        result = await step.run(_chunks("use <b>bold</b> here"))
        assert result.tool_calls == []
        assert result.full_response == "use <b>bold</b> here"

    async def test_unavailable_builtin_with_bad_body_is_an_error(
        self, step: Step
    ) -> None:
        result = await step.run(_chunks("<read_files>just prose</read_files>"))
        assert len(result.tool_calls) == 1
        assert result.tool_calls[0].error.startswith(
            "Invalid parameters for tool 'read_files'"
        )

    async def test_control_tools_update_context(self, step: Step) -> None:
        await step.run(
            _chunks("<set_output><output>{</output></set_output><end_turn></end_turn>")
        )
        assert step.ctx.end_turn_requested is True
        assert step.ctx.output == "{"

    async def test_reasoning_chunks(self, tmp_path: Path) -> None:
        step = Step(tmp_path, parent_agent_id="parent")
        await step.run(_chunks(ReasoningDelta("hmm"), "ok"))
        assert step.chunks == [
            ReasoningChunkEvent(agent_id="run-base-1", chunk="hmm"),
            SubagentChunkEvent(agent_id="run-base-1", agent_type="base", chunk="ok"),
        ]

    async def test_prior_history_kept(self, step: Step) -> None:
        prior = [UserMessage(content="task")]
        result = await process_stream(
            _chunks("ok"), registry=step.registry, ctx=step.ctx, prior=prior
        )
        assert result.history[0] == prior[0]
        assert result.history[1].role == "assistant"


class TestAbort:
    async def test_abort_mid_stream(self, step: Step) -> None:
        async def stream() -> AsyncIterator[ModelChunk]:
            yield TextDelta("<lookup><q>A</q></lookup>")
            yield TextDelta("<lookup><q>B</q><delay>10</delay></lookup>")
            await asyncio.sleep(0.05)
            step.signal.abort()
            yield TextDelta("<lookup><q>C</q></lookup>")

        result = await step.run(stream())

        assert result.interrupted is True
        assert step.started == ["A", "B"]
        tools = [m for m in result.history if isinstance(m, ToolMessage)]
        tool_ids = [m.tool_call_id for m in tools]
        assert tool_ids == ["c1"]
        call_ids = [
            cid
            for m in result.history
            if isinstance(m, AssistantMessage)
            for cid in m.tool_call_ids
        ]
        assert call_ids == ["c1"]
        assert result.history[-1].content.endswith(f"{INTERRUPTED_MESSAGE}</system>")

    async def test_model_raising_abort(self, step: Step) -> None:
        async def stream() -> AsyncIterator[ModelChunk]:
            yield TextDelta("partial")
            step.signal.abort()
            raise AbortError

        result = await step.run(stream())
        assert result.interrupted is True
        assert result.full_response == "partial"

    async def test_stream_failure_cancels_running_tools(self, step: Step) -> None:
        async def stream() -> AsyncIterator[ModelChunk]:
            yield TextDelta("<lookup><q>A</q><delay>0.05</delay></lookup>")
            await asyncio.sleep(0)
            raise RuntimeError("connection reset")

        with pytest.raises(RuntimeError, match="connection reset"):
            await step.run(stream())
        await asyncio.sleep(0.1)

        assert step.started == ["A"]
        assert not any(isinstance(e, ToolResultEvent) for e in step.events)
        names = {t.get_name() for t in asyncio.all_tasks() if not t.done()}
        assert "tool-drain" not in names
