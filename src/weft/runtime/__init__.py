"""Server-side agent runtime: stream scanning, tool sequencing, history."""

from weft.runtime.abort import AbortError, AbortSignal
from weft.runtime.agent import AgentRuntime, RunResult, RunSession
from weft.runtime.history import TurnBuilder, assemble_history, prune_tool_calls
from weft.runtime.messages import (
    AssistantMessage,
    Message,
    SystemMessage,
    TextPart,
    ToolCallPart,
    ToolMessage,
    UserMessage,
    expire_messages,
)
from weft.runtime.model import (
    ModelClient,
    ModelRequest,
    ReasoningDelta,
    ScriptedModel,
    TextDelta,
    TranscriptError,
)
from weft.runtime.scanner import (
    TagError,
    TagInvocation,
    TagStreamScanner,
    TextSegment,
    flush_buffer,
    scan_chunk,
)
from weft.runtime.sequencer import SequencerResult, ToolCallRecord, ToolCallSequencer
from weft.runtime.stream import StreamResult, process_stream
from weft.runtime.tools import (
    ToolContext,
    ToolDefinition,
    ToolInputError,
    ToolRegistry,
    UnknownToolError,
)

__all__ = [
    "AbortError",
    "AbortSignal",
    "AgentRuntime",
    "AssistantMessage",
    "Message",
    "ModelClient",
    "ModelRequest",
    "ReasoningDelta",
    "RunResult",
    "RunSession",
    "ScriptedModel",
    "SequencerResult",
    "StreamResult",
    "SystemMessage",
    "TagError",
    "TagInvocation",
    "TagStreamScanner",
    "TextDelta",
    "TextPart",
    "TextSegment",
    "ToolCallPart",
    "ToolCallRecord",
    "ToolCallSequencer",
    "ToolContext",
    "ToolDefinition",
    "ToolInputError",
    "ToolMessage",
    "ToolRegistry",
    "TranscriptError",
    "TurnBuilder",
    "UnknownToolError",
    "UserMessage",
    "assemble_history",
    "expire_messages",
    "flush_buffer",
    "process_stream",
    "prune_tool_calls",
    "scan_chunk",
]
