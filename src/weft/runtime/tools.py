"""Tool definitions and registry for agents."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from weft.config.models import AgentTemplate, CustomToolConfig, bare_agent_name
from weft.constants import END_TURN_TOOL, SPAWN_AGENTS_TOOL
from weft.runtime.builtin_tools import (
    BUILTIN_TOOL_DESCRIPTIONS,
    handle_end_turn,
    handle_list_directory,
    handle_read_files,
    handle_run_terminal_command,
    handle_set_output,
    handle_spawn_agents,
    handle_write_file,
    parse_spawn_agents_input,
    run_command_tool,
)
from weft.session.models import ToolResultOutput

if TYPE_CHECKING:
    from weft.runtime.abort import AbortSignal

logger = logging.getLogger(__name__)

ToolHandler = Callable[
    [dict[str, Any], "ToolContext"], Awaitable[list[ToolResultOutput]]
]
InputParser = Callable[[dict[str, Any]], dict[str, Any]]


class UnknownToolError(LookupError):
    """Raised when a call names a tool the agent does not have."""


class ToolInputError(ValueError):
    """Raised when a tool's input cannot be parsed."""


class AgentSpawner(Protocol):
    """Runs a child agent on behalf of a ``spawn_agents`` call."""

    async def spawn(
        self,
        *,
        agent_type: str,
        prompt: str,
        params: dict[str, Any] | None,
        parent: ToolContext,
    ) -> dict[str, Any]: ...


@dataclass
class ToolContext:
    """Everything a tool handler may touch for one agent run."""

    template: AgentTemplate
    agent_id: str
    working_dir: Path
    signal: AbortSignal
    parent_agent_id: str | None = None
    allowed_paths: list[Path] = field(default_factory=list)
    spawner: AgentSpawner | None = None
    end_turn_requested: bool = False
    output: Any = None

    @property
    def event_agent_id(self) -> str | None:
        """Agent id carried on events; None for the root agent."""
        return None if self.parent_agent_id is None else self.agent_id


@dataclass(frozen=True)
class ToolDefinition:
    """A named tool with its handler and optional input parser."""

    name: str
    handler: ToolHandler
    description: str = ""
    parse_input: InputParser | None = None


@dataclass(frozen=True)
class ResolvedCall:
    """A tag invocation mapped onto a concrete tool name and input."""

    tool_name: str
    input: dict[str, Any]


#: Every built-in tool, keyed by name.
BUILTIN_TOOLS: dict[str, ToolDefinition] = {
    d.name: d
    for d in (
        ToolDefinition("read_files", handle_read_files),
        ToolDefinition("write_file", handle_write_file),
        ToolDefinition("list_directory", handle_list_directory),
        ToolDefinition("run_terminal_command", handle_run_terminal_command),
        ToolDefinition("set_output", handle_set_output),
        ToolDefinition(END_TURN_TOOL, handle_end_turn),
        ToolDefinition(
            SPAWN_AGENTS_TOOL,
            handle_spawn_agents,
            parse_input=parse_spawn_agents_input,
        ),
    )
}

#: Tools every agent gets regardless of its ``tools`` list.
_ALWAYS_AVAILABLE = (END_TURN_TOOL, "set_output")


class ToolRegistry:
    """Holds one agent's tools and executes resolved calls.

    Built-in tools come from the template's ``tools`` list, custom command
    tools from ``custom_tools``. ``spawn_agents`` is added whenever the
    template has spawnable agents, and each spawnable agent is also callable
    directly under its bare name (``-`` and ``_`` both accepted).
    """

    def __init__(self, template: AgentTemplate) -> None:
        self._template = template
        self._tools: dict[str, ToolDefinition] = {}
        self._agent_aliases: dict[str, str] = {}

        for name in (*_ALWAYS_AVAILABLE, *template.tools):
            if name in BUILTIN_TOOLS:
                self._tools[name] = _with_description(BUILTIN_TOOLS[name])
            else:
                logger.warning(
                    "Unknown tool %r requested by %s -- skipping", name, template.id
                )

        for name, tool_config in template.custom_tools.items():
            self.register_command_tool(name, tool_config)

        if template.spawnable_agents:
            self._tools[SPAWN_AGENTS_TOOL] = _with_description(
                BUILTIN_TOOLS[SPAWN_AGENTS_TOOL]
            )
            for ref in template.spawnable_agents:
                bare = bare_agent_name(ref)
                self._agent_aliases.setdefault(bare, ref)
                self._agent_aliases.setdefault(bare.replace("-", "_"), ref)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    @property
    def known_names(self) -> frozenset[str]:
        """Tag names the scanner should treat as tool calls.

        Every built-in name counts, even ones this agent was not given, so a
        call to an unavailable tool is reported instead of read as prose.
        """
        return (
            frozenset(BUILTIN_TOOLS)
            | frozenset(self._tools)
            | frozenset(self._agent_aliases)
        )

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def register(self, definition: ToolDefinition) -> None:
        """Register (or replace) a tool at runtime."""
        if definition.name in self._tools:
            logger.info("Replacing tool %r", definition.name)
        self._tools[definition.name] = definition

    def register_command_tool(self, name: str, tool_config: CustomToolConfig) -> None:
        """Register a tool that runs a shell command with JSON input on stdin."""

        async def _handler(
            arguments: dict[str, Any], ctx: ToolContext
        ) -> list[ToolResultOutput]:
            return await run_command_tool(
                tool_config.command, arguments, ctx, tool_config.timeout
            )

        self.register(
            ToolDefinition(name, _handler, description=tool_config.description or "")
        )

    def resolve(self, tag_name: str, attributes: dict[str, str]) -> ResolvedCall:
        """Map a tag invocation onto a tool name and parsed input.

        Agent aliases become a one-element ``spawn_agents`` call. Unknown
        names pass through unchanged and fail at execution time.

        Raises:
            ToolInputError: When the tool's input parser rejects the input.
        """
        if tag_name not in self._tools and tag_name in self._agent_aliases:
            return self._agent_alias_call(tag_name, attributes)

        definition = self._tools.get(tag_name)
        raw: dict[str, Any] = dict(attributes)
        if definition is None or definition.parse_input is None:
            return ResolvedCall(tag_name, raw)
        try:
            return ResolvedCall(tag_name, definition.parse_input(raw))
        except ValueError as exc:
            msg = f"Invalid input for tool '{tag_name}': {exc}"
            raise ToolInputError(msg) from exc

    async def execute(
        self, call: ResolvedCall, ctx: ToolContext
    ) -> list[ToolResultOutput]:
        """Run *call*. Exceptions from the handler propagate to the caller."""
        definition = self._tools.get(call.tool_name)
        if definition is None:
            msg = f"Tool {call.tool_name} not found"
            raise UnknownToolError(msg)
        return await definition.handler(call.input, ctx)

    def describe(self) -> str:
        """Render the tool list for inclusion in a system prompt."""
        lines = [
            f"- {d.name}: {d.description}".rstrip(": ") for d in self._tools.values()
        ]
        for alias, ref in sorted(self._agent_aliases.items()):
            if "_" in alias and alias.replace("_", "-") in self._agent_aliases:
                continue
            lines.append(f"- {alias}: run the '{ref}' agent with <prompt>")
        return "\n".join(lines)

    def _agent_alias_call(
        self, tag_name: str, attributes: dict[str, str]
    ) -> ResolvedCall:
        params: dict[str, Any] = {k: v for k, v in attributes.items() if k != "prompt"}
        raw_params = params.pop("params", None)
        if isinstance(raw_params, str) and raw_params.strip():
            try:
                decoded = json.loads(raw_params)
            except json.JSONDecodeError as exc:
                msg = f"Invalid params for agent '{tag_name}': {exc.msg}"
                raise ToolInputError(msg) from exc
            if isinstance(decoded, dict):
                params = {**decoded, **params}
        entry: dict[str, Any] = {
            "agent_type": self._agent_aliases[tag_name],
            "prompt": attributes.get("prompt", ""),
        }
        if params:
            entry["params"] = params
        return ResolvedCall(SPAWN_AGENTS_TOOL, {"agents": [entry]})


def _with_description(definition: ToolDefinition) -> ToolDefinition:
    if definition.description:
        return definition
    return ToolDefinition(
        definition.name,
        definition.handler,
        description=BUILTIN_TOOL_DESCRIPTIONS.get(definition.name, ""),
        parse_input=definition.parse_input,
    )


def known_tool_names(templates: Iterable[AgentTemplate]) -> frozenset[str]:
    """Built-in tool names plus every name the given agents can invoke."""
    names = set(BUILTIN_TOOLS)
    for template in templates:
        names |= ToolRegistry(template).known_names
    return frozenset(names)
