"""Message history models and helpers."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from weft.session.models import ToolResultOutput

#: Message lifetime tags. ``agent_step`` messages expire at the next step,
#: ``user_prompt`` messages expire at the next user prompt.
KeepDuring = Literal["agent_step", "user_prompt"]


class _MessageBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    keep_during: KeepDuring | None = Field(
        default=None,
        description="When set, the message expires at the end of this scope",
    )


class TextPart(BaseModel):
    """Plain text inside an assistant message."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["text"] = "text"
    text: str


class ToolCallPart(BaseModel):
    """A tool invocation inside an assistant message."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)


AssistantPart = Annotated[TextPart | ToolCallPart, Field(discriminator="type")]


class SystemMessage(_MessageBase):
    role: Literal["system"] = "system"
    content: str


class UserMessage(_MessageBase):
    role: Literal["user"] = "user"
    content: str


class AssistantMessage(_MessageBase):
    role: Literal["assistant"] = "assistant"
    content: list[AssistantPart] = Field(default_factory=list)

    @property
    def tool_call_ids(self) -> list[str]:
        return [p.tool_call_id for p in self.content if isinstance(p, ToolCallPart)]

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.content if isinstance(p, TextPart))


class ToolMessage(_MessageBase):
    role: Literal["tool"] = "tool"
    tool_call_id: str
    tool_name: str
    content: list[ToolResultOutput] = Field(default_factory=list)


Message = Annotated[
    SystemMessage | UserMessage | AssistantMessage | ToolMessage,
    Field(discriminator="role"),
]
"""Any message in an agent's history."""


def assistant_message(text: str) -> AssistantMessage:
    return AssistantMessage(content=[TextPart(text=text)])


def assistant_tool_call(
    tool_call_id: str,
    tool_name: str,
    tool_input: dict[str, Any],
) -> AssistantMessage:
    return AssistantMessage(
        content=[
            ToolCallPart(
                tool_call_id=tool_call_id, tool_name=tool_name, input=tool_input
            )
        ]
    )


def user_message(text: str, keep_during: KeepDuring | None = None) -> UserMessage:
    return UserMessage(content=text, keep_during=keep_during)


def with_system_tags(text: str) -> str:
    """Wrap runtime-authored text so the model can tell it from the user's."""
    return f"<system>{text}</system>"


def expire_messages(
    messages: list[Any],
    end_of: KeepDuring,
) -> list[Any]:
    """Drop messages whose lifetime ends at *end_of*.

    Ending a user prompt also ends every agent step inside it.
    """
    if end_of == "agent_step":
        expired: set[str] = {"agent_step"}
    else:
        expired = {"agent_step", "user_prompt"}
    return [m for m in messages if m.keep_during not in expired]
