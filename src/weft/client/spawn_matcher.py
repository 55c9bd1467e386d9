"""Matching of real sub-agents to the placeholders created by ``spawn_agents``."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from weft.config.models import bare_agent_name


def placeholder_id(tool_call_id: str, index: int) -> str:
    """Identifier of the placeholder block for the *index*-th spawned agent."""
    return f"{tool_call_id}-{index}"


@dataclass(frozen=True)
class SpawnPlaceholder:
    """What a ``spawn_agents`` call told us about one agent it will start."""

    index: int
    agent_type: str


@dataclass(frozen=True)
class SpawnMatch:
    key: str
    index: int


def find_matching_spawn_agent(
    placeholders: Mapping[str, SpawnPlaceholder],
    agent_type: str,
) -> SpawnMatch | None:
    """Return the first placeholder an incoming *agent_type* satisfies.

    A placeholder matches when its stored type equals *agent_type*, or equals
    *agent_type* with publisher and version stripped, so a placeholder for
    ``file-picker`` matches ``codebuff/file-picker@0.1.0``.
    """
    if not agent_type:
        return None
    bare = bare_agent_name(agent_type)
    for key, placeholder in placeholders.items():
        if placeholder.agent_type in (agent_type, bare):
            return SpawnMatch(key=key, index=placeholder.index)
    return None
