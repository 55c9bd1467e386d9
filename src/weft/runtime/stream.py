"""One model step: scan the output stream, run its tools, assemble history."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from typing import assert_never

from weft.constants import EventSink
from weft.runtime.abort import AbortError
from weft.runtime.events import emit
from weft.runtime.history import TurnBuilder, assemble_history
from weft.runtime.messages import Message
from weft.runtime.model import ModelChunk, ReasoningDelta, TextDelta
from weft.runtime.scanner import (
    ScanItem,
    TagError,
    TagInvocation,
    TagStreamScanner,
    TextSegment,
)
from weft.runtime.sequencer import ToolCallRecord, ToolCallSequencer, compact_id
from weft.runtime.tools import ToolContext, ToolRegistry
from weft.session.models import ReasoningChunkEvent, StreamChunk, SubagentChunkEvent

logger = logging.getLogger(__name__)


@dataclass
class StreamResult:
    """Outcome of one processed model step."""

    full_response: str
    history: list[Message]
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    tool_results: list[ToolCallRecord] = field(default_factory=list)
    had_tool_call_error: bool = False
    interrupted: bool = False


class _ChunkRouter:
    """Wraps raw text and reasoning into the stream chunk for the agent."""

    def __init__(self, ctx: ToolContext, sink: EventSink | None) -> None:
        self._ctx = ctx
        self._sink = sink

    async def text(self, text: str) -> None:
        chunk: StreamChunk
        if self._ctx.parent_agent_id is None:
            chunk = text
        else:
            chunk = SubagentChunkEvent(
                agent_id=self._ctx.agent_id,
                agent_type=self._ctx.template.id,
                chunk=text,
            )
        await emit(self._sink, chunk)

    async def reasoning(self, text: str) -> None:
        await emit(
            self._sink,
            ReasoningChunkEvent(agent_id=self._ctx.event_agent_id, chunk=text),
        )


async def process_stream(
    chunks: AsyncIterator[ModelChunk],
    *,
    registry: ToolRegistry,
    ctx: ToolContext,
    prior: Sequence[Message] = (),
    on_event: EventSink | None = None,
    on_chunk: EventSink | None = None,
    id_factory: Callable[[], str] = compact_id,
) -> StreamResult:
    """Consume one model response and return the next history.

    Text and tool markup are forwarded to *on_chunk* as they arrive; tool
    calls start as soon as their closing tag is seen and their results land
    in the history in invocation order. If the run is aborted mid-stream the
    history keeps every result that completed and ends with an interrupted
    marker.
    """
    scanner = TagStreamScanner(registry.known_names)
    turn = TurnBuilder()
    sequencer = ToolCallSequencer(
        registry,
        ctx,
        on_event=on_event,
        on_tool_call=turn.add_tool_call,
        id_factory=id_factory,
    )
    router = _ChunkRouter(ctx, on_chunk)

    async def _handle(item: ScanItem) -> None:
        match item:
            case TextSegment(text=text):
                turn.add_text(text)
            case TagInvocation():
                await sequencer.submit(item)
            case TagError():
                await sequencer.submit_error(item)
            case _:
                assert_never(item)

    try:
        try:
            async for chunk in chunks:
                if ctx.signal.aborted:
                    break
                match chunk:
                    case TextDelta(text=text):
                        await router.text(text)
                        for item in scanner.feed(text):
                            await _handle(item)
                    case ReasoningDelta(text=text):
                        await router.reasoning(text)
                    case _:
                        assert_never(chunk)
        except AbortError:
            logger.debug("Model stream for %s aborted", ctx.agent_id)

        for item in scanner.flush():
            await _handle(item)

        tools = await sequencer.finish()
    except BaseException:
        await sequencer.close()
        raise

    interrupted = tools.interrupted or ctx.signal.aborted
    if interrupted and not tools.interrupted:
        tools = await sequencer.abort()

    history = assemble_history(prior, turn.messages, tools, interrupted=interrupted)
    return StreamResult(
        full_response=turn.full_response,
        history=history,
        tool_calls=sorted([*tools.results, *tools.cancelled], key=lambda r: r.index),
        tool_results=tools.results,
        had_tool_call_error=bool(tools.error_messages)
        or any(r.error for r in tools.results),
        interrupted=interrupted,
    )
