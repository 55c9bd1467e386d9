"""Assembly of the message history handed to the next model turn."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from weft.runtime.messages import (
    AssistantMessage,
    Message,
    TextPart,
    ToolCallPart,
    ToolMessage,
    assistant_message,
    expire_messages,
    user_message,
    with_system_tags,
)
from weft.runtime.sequencer import SequencerResult

logger = logging.getLogger(__name__)

#: Shown to the model on its next turn after the user aborted a response.
INTERRUPTED_MESSAGE = (
    "User interrupted the response. The assistant's previous work has been preserved."
)


class TurnBuilder:
    """Collects one turn's assistant messages as the stream is scanned.

    Consecutive text is merged into a single message; every tool call gets
    an assistant message of its own.
    """

    def __init__(self) -> None:
        self._messages: list[AssistantMessage] = []
        self._text: list[str] = []

    @property
    def full_response(self) -> str:
        return "".join(self._text)

    @property
    def messages(self) -> list[AssistantMessage]:
        return list(self._messages)

    def add_text(self, text: str) -> None:
        if not text:
            return
        self._text.append(text)
        last = self._messages[-1] if self._messages else None
        if last is not None and last.content and isinstance(last.content[-1], TextPart):
            last.content[-1] = TextPart(text=last.content[-1].text + text)
            return
        self._messages.append(assistant_message(text))

    def add_tool_call(self, part: ToolCallPart) -> None:
        self._messages.append(AssistantMessage(content=[part]))


def prune_tool_calls(
    messages: Sequence[AssistantMessage],
    tool_call_ids: set[str],
) -> list[AssistantMessage]:
    """Remove tool-call parts for *tool_call_ids*; drop messages left empty."""
    if not tool_call_ids:
        return list(messages)
    pruned: list[AssistantMessage] = []
    for message in messages:
        content = [
            part
            for part in message.content
            if not (
                isinstance(part, ToolCallPart) and part.tool_call_id in tool_call_ids
            )
        ]
        if content:
            pruned.append(message.model_copy(update={"content": content}))
    return pruned


def assemble_history(
    prior: Sequence[Message],
    turn: Sequence[AssistantMessage],
    tools: SequencerResult,
    *,
    interrupted: bool = False,
) -> list[Message]:
    """Build the history for the next model turn.

    Order: prior history (step-scoped messages expired), this turn's
    assistant messages, tool results in invocation order, synthesized error
    messages, and finally the interrupted marker when the turn was aborted.
    Tool-call parts of cancelled calls are pruned so every remaining call has
    a result.
    """
    history: list[Message] = expire_messages(list(prior), "agent_step")
    history.extend(prune_tool_calls(turn, tools.cancelled_ids))
    for record in tools.results:
        history.append(
            ToolMessage(
                tool_call_id=record.tool_call_id,
                tool_name=record.tool_name,
                content=record.output or [],
            )
        )
    history.extend(user_message(with_system_tags(m)) for m in tools.error_messages)
    if interrupted:
        if tools.cancelled:
            logger.debug(
                "Pruned %d unfinished tool call(s) from history", len(tools.cancelled)
            )
        history.append(user_message(with_system_tags(INTERRUPTED_MESSAGE)))
    return history
