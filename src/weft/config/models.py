"""Pydantic v2 models for weft.yaml configuration."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, model_validator

from weft.constants import DEFAULT_HIDDEN_TOOLS

_TOOL_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")
_AGENT_REF_RE = re.compile(r"^([a-zA-Z0-9_.-]+/)?[a-zA-Z0-9_.-]+(@[a-zA-Z0-9_.-]+)?$")


def bare_agent_name(agent_type: str) -> str:
    """Strip namespace and version: ``publisher/name@1.2.3`` -> ``name``."""
    name = agent_type.rsplit("/", 1)[-1]
    return name.split("@", 1)[0]


class CustomToolConfig(BaseModel):
    """A custom tool backed by a shell command.

    The command receives the tool input as a JSON object on stdin and its
    stdout becomes the tool result.
    """

    model_config = ConfigDict(extra="forbid")

    command: str = Field(description="Shell command to run")
    description: str | None = Field(
        default=None,
        description="What the tool does (shown to the model)",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Maximum execution time in seconds",
    )


class AgentTemplate(BaseModel):
    """Configuration for one agent type."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default="", description="Agent type id (filled from the key)")
    description: str | None = Field(
        default=None,
        description="One-line summary shown in agent listings",
    )
    model: str | None = Field(
        default=None,
        description="Model identifier handed to the model client",
    )
    system_prompt: str | None = Field(
        default=None,
        description="System prompt text or path to a prompt file",
    )
    tools: list[str] = Field(
        default_factory=list,
        description="Built-in tools available to the agent",
    )
    spawnable_agents: list[str] = Field(
        default_factory=list,
        description="Agent types this agent may spawn (publisher/name@version ok)",
    )
    custom_tools: dict[str, CustomToolConfig] = Field(
        default_factory=dict,
        description="Custom tools, keyed by tool name",
    )
    allowed_paths: list[str] = Field(
        default_factory=list,
        description="Extra directories file tools may touch",
    )

    @model_validator(mode="after")
    def _validate_names(self) -> AgentTemplate:
        for name in [*self.tools, *self.custom_tools]:
            if not _TOOL_NAME_RE.match(name):
                msg = f"Invalid tool name '{name}'"
                raise ValueError(msg)
        for ref in self.spawnable_agents:
            if not _AGENT_REF_RE.match(ref):
                msg = (
                    f"Invalid spawnable agent '{ref}': "
                    "expected 'name' or 'publisher/name@version'"
                )
                raise ValueError(msg)
        return self


class DisplayConfig(BaseModel):
    """Client-side display settings for the block tree."""

    model_config = ConfigDict(extra="forbid")

    hidden_tools: list[str] = Field(
        default_factory=lambda: sorted(DEFAULT_HIDDEN_TOOLS),
        description="Tool names that never get a block",
    )
    hidden_agents: list[str] = Field(
        default_factory=list,
        description="Agent types (bare names) that never get a block",
    )
    strip_tool_markup: bool = Field(
        default=True,
        description="Remove tool-call markup from displayed text chunks",
    )


class WeftConfig(BaseModel):
    """Top-level weft.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(description="Config schema version")
    entry: str | None = Field(
        default=None,
        description="Entry agent type (defaults to first agent)",
    )
    max_agent_steps: int = Field(
        default=20,
        ge=1,
        description="Maximum model steps per agent run",
    )
    sessions_dir: str = Field(
        default="sessions",
        description="Directory for recorded session files",
    )
    agents: dict[str, AgentTemplate] = Field(
        description="Agent definitions (at least one required)",
    )
    display: DisplayConfig = Field(
        default_factory=DisplayConfig,
        description="Client display settings",
    )

    @model_validator(mode="after")
    def _validate_agents_and_entry(self) -> WeftConfig:
        if not self.agents:
            msg = "At least one agent must be defined"
            raise ValueError(msg)
        for key, template in self.agents.items():
            template.id = key
        if self.entry is None:
            self.entry = next(iter(self.agents))
        if self.entry not in self.agents:
            available = ", ".join(f"'{a}'" for a in self.agents)
            msg = (
                f"Entry agent '{self.entry}' not found; "
                f"available agents: {available}"
            )
            raise ValueError(msg)
        self._validate_spawn_references()
        return self

    def _validate_spawn_references(self) -> None:
        known = {bare_agent_name(name) for name in self.agents}
        refs: list[str] = []
        for template in self.agents.values():
            refs.extend(template.spawnable_agents)
        unknown = sorted({r for r in refs if bare_agent_name(r) not in known})
        if unknown:
            joined = ", ".join(f"'{n}'" for n in unknown)
            msg = f"spawnable_agents references unknown agents: {joined}"
            raise ValueError(msg)

    def resolve_agent(self, agent_type: str) -> AgentTemplate | None:
        """Look up a template by exact id, then by bare name."""
        if agent_type in self.agents:
            return self.agents[agent_type]
        bare = bare_agent_name(agent_type)
        for key, template in self.agents.items():
            if bare_agent_name(key) == bare:
                return template
        return None
