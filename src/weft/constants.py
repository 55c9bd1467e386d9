"""Shared constants and type aliases for the weft runtime."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

#: Canonical tool name for spawning child agents.
SPAWN_AGENTS_TOOL = "spawn_agents"

#: Tool the model calls to end its turn without further steps.
END_TURN_TOOL = "end_turn"

#: Tool names that never get a block of their own in the client tree.
DEFAULT_HIDDEN_TOOLS: frozenset[str] = frozenset(
    {"spawn_agent_inline", END_TURN_TOOL, SPAWN_AGENTS_TOOL}
)

#: Text appended to the last visible text when a run is aborted.
INTERRUPTED_NOTICE = "[response interrupted]"

#: Callback type for lifecycle event sinks (sync or async).
EventSink = Callable[[Any], Awaitable[None] | None]
