"""Pydantic v2 models for lifecycle events, stream chunks and run records."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

# ------------------------------------------------------------------ #
# Tool result output parts
# ------------------------------------------------------------------ #


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class JsonOutput(_WireModel):
    """A structured tool result value."""

    type: Literal["json"] = "json"
    value: Any = Field(default=None, description="Arbitrary JSON value")


class TextOutput(_WireModel):
    """A plain-text tool result."""

    type: Literal["text"] = "text"
    text: str = Field(description="Result text")


ToolResultOutput = Annotated[
    JsonOutput | TextOutput,
    Field(discriminator="type"),
]
"""One element of a tool result's ``output`` array."""


def json_tool_result(value: Any) -> list[JsonOutput]:
    """Wrap *value* as a single-element JSON tool output."""
    return [JsonOutput(value=value)]


def error_tool_result(message: str) -> list[JsonOutput]:
    """Return the error shape that crosses the tool-result boundary."""
    return [JsonOutput(value={"errorMessage": message})]


# ------------------------------------------------------------------ #
# Envelope
# ------------------------------------------------------------------ #


class _EventBase(_WireModel):
    """Common envelope fields shared by every recorded event."""

    ts: str = Field(default="", description="ISO 8601 timestamp with milliseconds")
    seq: int = Field(default=0, ge=0, description="Monotonic sequence number")


# ------------------------------------------------------------------ #
# Lifecycle events (server -> client)
# ------------------------------------------------------------------ #


class SubagentStartEvent(_EventBase):
    """A child agent started running."""

    type: Literal["subagent_start"] = "subagent_start"
    agent_id: str = Field(alias="agentId", description="Real agent run id")
    agent_type: str = Field(alias="agentType", description="Agent type/id")
    parent_agent_id: str | None = Field(
        default=None,
        alias="parentAgentId",
        description="Run id of the spawning agent (None for top level)",
    )
    prompt: str | None = Field(default=None, description="Prompt given to the agent")
    params: dict[str, Any] | None = Field(
        default=None, description="Structured params given to the agent"
    )


class SubagentFinishEvent(_EventBase):
    """A child agent finished."""

    type: Literal["subagent_finish"] = "subagent_finish"
    agent_id: str = Field(alias="agentId", description="Real agent run id")
    agent_type: str = Field(alias="agentType", description="Agent type/id")
    error: str | None = Field(
        default=None, description="Failure description when the agent failed"
    )


class ToolCallEvent(_EventBase):
    """A tool call was issued."""

    type: Literal["tool_call"] = "tool_call"
    tool_call_id: str = Field(alias="toolCallId", description="Call identifier")
    tool_name: str = Field(alias="toolName", description="Tool name")
    input: dict[str, Any] = Field(default_factory=dict, description="Tool input")
    agent_id: str | None = Field(
        default=None, alias="agentId", description="Agent issuing the call"
    )
    parent_agent_id: str | None = Field(
        default=None, alias="parentAgentId", description="Parent of that agent"
    )


class ToolResultEvent(_EventBase):
    """A tool call produced its result."""

    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str = Field(alias="toolCallId", description="Call identifier")
    tool_name: str | None = Field(
        default=None, alias="toolName", description="Tool name"
    )
    output: list[ToolResultOutput] = Field(
        default_factory=list, description="Result parts"
    )
    error: str | None = Field(default=None, description="Error text, if any")
    agent_id: str | None = Field(
        default=None, alias="agentId", description="Agent that issued the call"
    )


class TextEvent(_EventBase):
    """A complete or partial text message from an agent."""

    type: Literal["text"] = "text"
    text: str = Field(description="Text content")
    agent_id: str | None = Field(
        default=None, alias="agentId", description="Destination agent (None = root)"
    )


class ReasoningDeltaEvent(_EventBase):
    """A fragment of model reasoning."""

    type: Literal["reasoning_delta"] = "reasoning_delta"
    text: str = Field(description="Reasoning text fragment")
    agent_id: str | None = Field(
        default=None, alias="agentId", description="Destination agent (None = root)"
    )


class FinishEvent(_EventBase):
    """The run finished."""

    type: Literal["finish"] = "finish"
    total_cost: float | None = Field(
        default=None, alias="totalCost", description="Total credits consumed"
    )


class ErrorEvent(_EventBase):
    """A run-level error reported to the client."""

    type: Literal["error"] = "error"
    message: str = Field(description="Error description")


def _event_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


LifecycleEvent = Annotated[
    Annotated[SubagentStartEvent, Tag("subagent_start")]
    | Annotated[SubagentFinishEvent, Tag("subagent_finish")]
    | Annotated[ToolCallEvent, Tag("tool_call")]
    | Annotated[ToolResultEvent, Tag("tool_result")]
    | Annotated[TextEvent, Tag("text")]
    | Annotated[ReasoningDeltaEvent, Tag("reasoning_delta")]
    | Annotated[FinishEvent, Tag("finish")]
    | Annotated[ErrorEvent, Tag("error")],
    Discriminator(_event_discriminator),
]
"""Discriminated union of all lifecycle events."""


# ------------------------------------------------------------------ #
# Stream chunks (lower level than lifecycle events)
# ------------------------------------------------------------------ #


class RootChunkEvent(_EventBase):
    """A root text chunk, as persisted (live chunks are plain ``str``)."""

    type: Literal["root_chunk"] = "root_chunk"
    chunk: str = Field(description="Text chunk")


class SubagentChunkEvent(_EventBase):
    """A text chunk produced by a child agent."""

    type: Literal["subagent_chunk"] = "subagent_chunk"
    agent_id: str = Field(alias="agentId", description="Child agent run id")
    agent_type: str = Field(alias="agentType", description="Child agent type")
    chunk: str = Field(description="Text chunk")


class ReasoningChunkEvent(_EventBase):
    """A reasoning chunk from the root or a child agent."""

    type: Literal["reasoning_chunk"] = "reasoning_chunk"
    agent_id: str | None = Field(
        default=None, alias="agentId", description="Agent run id (None = root)"
    )
    chunk: str = Field(description="Reasoning chunk")


StreamChunk = str | SubagentChunkEvent | ReasoningChunkEvent
"""What a stream-chunk handler receives live."""


# ------------------------------------------------------------------ #
# Run envelope records (JSONL only)
# ------------------------------------------------------------------ #


class RunStartEvent(_EventBase):
    """Emitted once at the start of a recorded run."""

    type: Literal["run_start"] = "run_start"
    run_id: str = Field(description="Unique run identifier")
    agent: str = Field(description="Entry agent type")
    prompt: str = Field(default="", description="User prompt")


class RunEndEvent(_EventBase):
    """Emitted once when a recorded run ends."""

    type: Literal["run_end"] = "run_end"
    reason: Literal["complete", "interrupted", "error"] = Field(
        description="Why the run ended",
    )
    duration_ms: int = Field(description="Total run duration in milliseconds")


RunRecord = Annotated[
    Annotated[RunStartEvent, Tag("run_start")]
    | Annotated[RunEndEvent, Tag("run_end")]
    | Annotated[SubagentStartEvent, Tag("subagent_start")]
    | Annotated[SubagentFinishEvent, Tag("subagent_finish")]
    | Annotated[ToolCallEvent, Tag("tool_call")]
    | Annotated[ToolResultEvent, Tag("tool_result")]
    | Annotated[TextEvent, Tag("text")]
    | Annotated[ReasoningDeltaEvent, Tag("reasoning_delta")]
    | Annotated[FinishEvent, Tag("finish")]
    | Annotated[ErrorEvent, Tag("error")]
    | Annotated[RootChunkEvent, Tag("root_chunk")]
    | Annotated[SubagentChunkEvent, Tag("subagent_chunk")]
    | Annotated[ReasoningChunkEvent, Tag("reasoning_chunk")],
    Discriminator(_event_discriminator),
]
"""Discriminated union of every line a session JSONL file may contain."""
