"""Session recording — wire event models and JSONL recorder."""

from weft.session.models import (
    ErrorEvent,
    FinishEvent,
    JsonOutput,
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
    TextOutput,
    ToolCallEvent,
    ToolResultEvent,
    ToolResultOutput,
    error_tool_result,
    json_tool_result,
)
from weft.session.recorder import EndReason, SessionRecorder

__all__ = [
    "EndReason",
    "ErrorEvent",
    "FinishEvent",
    "JsonOutput",
    "LifecycleEvent",
    "ReasoningChunkEvent",
    "ReasoningDeltaEvent",
    "RootChunkEvent",
    "RunEndEvent",
    "RunRecord",
    "RunStartEvent",
    "SessionRecorder",
    "StreamChunk",
    "SubagentChunkEvent",
    "SubagentFinishEvent",
    "SubagentStartEvent",
    "TextEvent",
    "TextOutput",
    "ToolCallEvent",
    "ToolResultEvent",
    "ToolResultOutput",
    "error_tool_result",
    "json_tool_result",
]
