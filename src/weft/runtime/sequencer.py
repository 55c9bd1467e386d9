"""Ordered execution of tool calls found in a model's output stream.

Tools start as soon as their tag is recognised and run concurrently, but
their results are delivered strictly in invocation order: every call is
queued in a FIFO and a single drain task awaits them one by one.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from weft.constants import EventSink
from weft.runtime.abort import AbortError
from weft.runtime.events import emit
from weft.runtime.messages import ToolCallPart
from weft.runtime.scanner import TagError, TagInvocation
from weft.runtime.tools import (
    ResolvedCall,
    ToolContext,
    ToolInputError,
    ToolRegistry,
    UnknownToolError,
)
from weft.session.models import (
    ToolCallEvent,
    ToolResultEvent,
    ToolResultOutput,
    error_tool_result,
)

logger = logging.getLogger(__name__)


def compact_id() -> str:
    """Return a short random identifier for a tool call."""
    return uuid.uuid4().hex[:10]


def tool_error_message(message: str) -> str:
    """The text of the user message synthesized for a failed tool call."""
    return (
        f"Error during tool call: {message}. "
        "Please check the tool name and arguments and try again."
    )


@dataclass
class ToolCallRecord:
    """One tool call and, once it completes, its output."""

    index: int
    tool_call_id: str
    tool_name: str
    input: dict[str, Any]
    output: list[ToolResultOutput] | None = None
    error: str | None = None

    @property
    def completed(self) -> bool:
        return self.output is not None


_Entry = tuple[ToolCallRecord, "asyncio.Future[Any]"]


@dataclass
class SequencerResult:
    """What the sequencer hands to the history assembler."""

    results: list[ToolCallRecord] = field(default_factory=list)
    cancelled: list[ToolCallRecord] = field(default_factory=list)
    error_messages: list[str] = field(default_factory=list)
    interrupted: bool = False

    @property
    def cancelled_ids(self) -> set[str]:
        return {r.tool_call_id for r in self.cancelled}


class ToolCallSequencer:
    """Starts tool calls as tasks and publishes their results in order.

    Args:
        registry: Tools available to the agent.
        ctx: Tool context of the agent run (carries the abort signal).
        on_event: Receives ``tool_call`` / ``tool_result`` events.
        on_tool_call: Receives the assistant tool-call part for each call,
            in invocation order, before its tool starts.
        id_factory: Produces call ids (defaults to :func:`compact_id`).
    """

    def __init__(
        self,
        registry: ToolRegistry,
        ctx: ToolContext,
        *,
        on_event: EventSink | None = None,
        on_tool_call: Callable[[ToolCallPart], None] | None = None,
        id_factory: Callable[[], str] = compact_id,
    ) -> None:
        self._registry = registry
        self._ctx = ctx
        self._on_event = on_event
        self._on_tool_call = on_tool_call
        self._id_factory = id_factory

        self._queue: asyncio.Queue[_Entry | None] = asyncio.Queue()
        self._entries: list[_Entry] = []
        self._published: list[ToolCallRecord] = []
        self._error_messages: list[str] = []
        self._drain_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def call_count(self) -> int:
        return len(self._entries)

    @property
    def had_error(self) -> bool:
        return bool(self._error_messages)

    # ------------------------------------------------------------------ #
    # Submission
    # ------------------------------------------------------------------ #

    async def submit(self, invocation: TagInvocation) -> str | None:
        """Start executing *invocation*; returns its call id.

        Returns None (and does nothing) when the run has been aborted.
        """
        if self._ctx.signal.aborted:
            logger.debug("Skipping <%s>: run aborted", invocation.tag_name)
            return None

        try:
            call = self._registry.resolve(invocation.tag_name, invocation.attributes)
        except ToolInputError as exc:
            record = await self._open(invocation.tag_name, dict(invocation.attributes))
            self._fail_early(record, str(exc))
            return record.tool_call_id

        record = await self._open(call.tool_name, call.input)
        if self._registry.get(call.tool_name) is None:
            self._fail_early(record, f"Tool {call.tool_name} not found")
            return record.tool_call_id

        task = asyncio.create_task(
            self._run(record, call), name=f"tool-{call.tool_name}-{record.tool_call_id}"
        )
        self._enqueue(record, task)
        return record.tool_call_id

    async def submit_error(self, error: TagError) -> str | None:
        """Record a malformed tag as a failed call."""
        if self._ctx.signal.aborted:
            return None
        record = await self._open(error.tag_name, {})
        self._fail_early(record, error.message)
        return record.tool_call_id

    async def _open(self, tool_name: str, tool_input: dict[str, Any]) -> ToolCallRecord:
        self._ensure_drain()
        record = ToolCallRecord(
            index=len(self._entries),
            tool_call_id=self._id_factory(),
            tool_name=tool_name,
            input=tool_input,
        )
        await emit(
            self._on_event,
            ToolCallEvent(
                tool_call_id=record.tool_call_id,
                tool_name=tool_name,
                input=tool_input,
                agent_id=self._ctx.event_agent_id,
                parent_agent_id=self._ctx.parent_agent_id,
            ),
        )
        if self._on_tool_call is not None:
            self._on_tool_call(
                ToolCallPart(
                    tool_call_id=record.tool_call_id,
                    tool_name=tool_name,
                    input=tool_input,
                )
            )
        return record

    def _fail_early(self, record: ToolCallRecord, message: str) -> None:
        logger.warning("Tool call %s failed: %s", record.tool_name, message)
        self._error_messages.append(tool_error_message(message))
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        future.set_result((error_tool_result(message), message))
        self._enqueue(record, future)

    def _enqueue(self, record: ToolCallRecord, future: asyncio.Future[Any]) -> None:
        self._entries.append((record, future))
        self._queue.put_nowait((record, future))

    async def _run(
        self, record: ToolCallRecord, call: ResolvedCall
    ) -> tuple[list[ToolResultOutput], str | None]:
        self._ctx.signal.throw_if_aborted()
        try:
            return await self._registry.execute(call, self._ctx), None
        except AbortError:
            raise
        except UnknownToolError as exc:
            return error_tool_result(str(exc)), str(exc)
        except Exception as exc:
            logger.exception("Tool %s (%s) raised", call.tool_name, record.tool_call_id)
            message = str(exc) or type(exc).__name__
            return error_tool_result(message), message

    # ------------------------------------------------------------------ #
    # Draining
    # ------------------------------------------------------------------ #

    def _ensure_drain(self) -> None:
        if self._closed:
            msg = "Sequencer already finished"
            raise RuntimeError(msg)
        if self._drain_task is None:
            self._drain_task = asyncio.create_task(self._drain(), name="tool-drain")

    async def _drain(self) -> None:
        while True:
            entry = await self._queue.get()
            if entry is None:
                return
            record, future = entry
            await asyncio.wait({future})
            if future.cancelled() or future.exception() is not None:
                continue
            await self._publish(record, future)

    async def _publish(
        self, record: ToolCallRecord, future: asyncio.Future[Any]
    ) -> None:
        output, error = future.result()
        record.output = output
        record.error = error
        self._published.append(record)
        await emit(
            self._on_event,
            ToolResultEvent(
                tool_call_id=record.tool_call_id,
                tool_name=record.tool_name,
                output=output,
                error=error,
                agent_id=self._ctx.event_agent_id,
            ),
        )

    async def finish(self) -> SequencerResult:
        """Wait for every queued call and return the results in order.

        If the run is aborted while waiting, falls through to :meth:`abort`.
        """
        self._closed = True
        if self._drain_task is not None and not self._ctx.signal.aborted:
            self._queue.put_nowait(None)
            aborted = asyncio.ensure_future(self._ctx.signal.wait())
            try:
                await asyncio.wait(
                    {self._drain_task, aborted},
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                aborted.cancel()
        if self._ctx.signal.aborted:
            return await self.abort()
        if self._drain_task is not None:
            self._drain_task.result()
        return SequencerResult(
            results=list(self._published),
            error_messages=list(self._error_messages),
        )

    async def abort(self) -> SequencerResult:
        """Stop draining, keep completed results, cancel everything else.

        Completed calls that had not been published yet are published now,
        still in invocation order.
        """
        self._closed = True
        if self._drain_task is not None:
            self._drain_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._drain_task

        published = {r.tool_call_id for r in self._published}
        cancelled: list[ToolCallRecord] = []
        pending: list[asyncio.Future[Any]] = []
        for record, future in self._entries:
            if record.tool_call_id in published:
                continue
            if future.done() and not future.cancelled() and future.exception() is None:
                await self._publish(record, future)
            else:
                future.cancel()
                pending.append(future)
                cancelled.append(record)

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info("Cancelled %d unfinished tool call(s)", len(cancelled))

        results = sorted(self._published, key=lambda r: r.index)
        return SequencerResult(
            results=results,
            cancelled=cancelled,
            error_messages=list(self._error_messages),
            interrupted=True,
        )

    async def close(self) -> None:
        """Cancel the drain task and every unfinished call without publishing.

        Used when the stream fails; no ``tool_result`` is emitted afterwards.
        """
        self._closed = True
        tasks: list[asyncio.Future[Any]] = [f for _, f in self._entries if not f.done()]
        if self._drain_task is not None and not self._drain_task.done():
            tasks.append(self._drain_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.debug("Closed sequencer with %d pending task(s)", len(tasks))
