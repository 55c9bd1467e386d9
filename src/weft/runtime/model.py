"""Model client abstraction and the scripted offline model."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from weft.config.models import AgentTemplate, bare_agent_name
from weft.runtime.abort import AbortSignal
from weft.runtime.messages import Message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextDelta:
    """A fragment of the model's visible output."""

    text: str


@dataclass(frozen=True)
class ReasoningDelta:
    """A fragment of the model's reasoning."""

    text: str


ModelChunk = TextDelta | ReasoningDelta


@dataclass
class ModelRequest:
    """One model step for one agent run."""

    agent_id: str
    template: AgentTemplate
    messages: list[Message] = field(default_factory=list)
    step: int = 0


class ModelClient(Protocol):
    """Protocol every model client must implement.

    ``stream`` yields chunks until the model's turn is over. Clients should
    stop early once *signal* is aborted.
    """

    def stream(
        self, request: ModelRequest, signal: AbortSignal
    ) -> AsyncIterator[ModelChunk]: ...


# ------------------------------------------------------------------ #
# Scripted model
# ------------------------------------------------------------------ #


class TranscriptError(Exception):
    """A scripted-model transcript could not be loaded."""


class ScriptedStep(BaseModel):
    """One scripted model response."""

    model_config = ConfigDict(extra="forbid")

    text: str = Field(default="", description="Raw output, tool markup included")
    reasoning: str = Field(default="", description="Reasoning emitted before text")
    chunk_size: int | None = Field(
        default=None, ge=1, description="Override the transcript's chunk size"
    )


class Transcript(BaseModel):
    """Scripted responses keyed by agent type."""

    model_config = ConfigDict(extra="forbid")

    chunk_size: int = Field(default=16, ge=1, description="Characters per chunk")
    delay: float = Field(default=0.0, ge=0, description="Seconds between chunks")
    agents: dict[str, list[ScriptedStep]] = Field(
        default_factory=dict, description="Steps per agent type"
    )


class ScriptedModel:
    """Replays a fixed transcript, split into small chunks.

    Each agent run walks its agent type's steps from the start; once they
    run out the model returns an empty response, which ends the run.
    """

    def __init__(self, transcript: Transcript) -> None:
        self._transcript = transcript

    @classmethod
    def from_file(cls, path: Path) -> ScriptedModel:
        try:
            raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        except OSError as exc:
            msg = f"Cannot read transcript: {exc}"
            raise TranscriptError(msg) from exc
        except yaml.YAMLError as exc:
            msg = f"Invalid YAML in transcript {Path(path).name}"
            raise TranscriptError(msg) from exc
        return cls.from_dict(raw or {})

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ScriptedModel:
        agents = raw.get("agents", {})
        if isinstance(agents, dict):
            # Plain strings are shorthand for ``{text: ...}``.
            raw = {
                **raw,
                "agents": {
                    name: [
                        {"text": s} if isinstance(s, str) else s for s in steps or []
                    ]
                    for name, steps in agents.items()
                },
            }
        try:
            return cls(Transcript.model_validate(raw))
        except ValidationError as exc:
            msg = f"Invalid transcript: {exc.error_count()} error(s)\n{exc}"
            raise TranscriptError(msg) from exc

    def steps_for(self, agent_type: str) -> list[ScriptedStep]:
        agents = self._transcript.agents
        if agent_type in agents:
            return agents[agent_type]
        return agents.get(bare_agent_name(agent_type), [])

    async def stream(
        self, request: ModelRequest, signal: AbortSignal
    ) -> AsyncIterator[ModelChunk]:
        steps = self.steps_for(request.template.id)
        if request.step >= len(steps):
            logger.debug(
                "No scripted step %d for %s; returning empty response",
                request.step,
                request.template.id,
            )
            return
        step = steps[request.step]
        size = step.chunk_size or self._transcript.chunk_size
        if step.reasoning:
            yield ReasoningDelta(step.reasoning)
        for start in range(0, len(step.text), size):
            if signal.aborted:
                return
            if self._transcript.delay:
                await asyncio.sleep(self._transcript.delay)
            yield TextDelta(step.text[start : start + size])
