"""Agent runtime -- multi-step agent runs and child agent spawning."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from weft.config.models import AgentTemplate, WeftConfig
from weft.constants import EventSink
from weft.runtime.abort import AbortError, AbortSignal
from weft.runtime.events import emit
from weft.runtime.messages import (
    Message,
    SystemMessage,
    expire_messages,
    user_message,
    with_system_tags,
)
from weft.runtime.model import ModelClient, ModelRequest
from weft.runtime.sequencer import compact_id
from weft.runtime.stream import process_stream
from weft.runtime.tools import (
    ToolContext,
    ToolDefinition,
    ToolRegistry,
    known_tool_names,
)
from weft.session.models import (
    ErrorEvent,
    FinishEvent,
    SubagentFinishEvent,
    SubagentStartEvent,
)

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of one agent run."""

    agent_id: str
    agent_type: str
    history: list[Message] = field(default_factory=list)
    output: Any = None
    last_message: str = ""
    steps: int = 0
    interrupted: bool = False
    error: str | None = None

    def spawn_value(self) -> dict[str, Any]:
        """The value a parent sees in its ``spawn_agents`` result."""
        if self.error is not None:
            return {"type": "error", "message": self.error}
        if self.output is not None:
            return {"type": "structuredOutput", "value": self.output}
        return {"type": "lastMessage", "value": self.last_message}


class RunSession:
    """Run-owned state: abort signal, sinks and agent id allocation.

    Also acts as the spawner for every agent in the run, so child agents
    share the run's signal and event sinks.
    """

    def __init__(
        self,
        runtime: AgentRuntime,
        signal: AbortSignal,
        run_id: str,
    ) -> None:
        self._runtime = runtime
        self.signal = signal
        self.run_id = run_id
        self._agent_count = 0

    def next_agent_id(self, agent_type: str) -> str:
        self._agent_count += 1
        return f"{self.run_id}-{agent_type}-{self._agent_count}"

    async def spawn(
        self,
        *,
        agent_type: str,
        prompt: str,
        params: dict[str, Any] | None,
        parent: ToolContext,
    ) -> dict[str, Any]:
        """Run a child agent to completion and return its spawn result."""
        config = self._runtime.config
        template = config.resolve_agent(agent_type)
        if template is None:
            logger.warning("Cannot spawn unknown agent type %r", agent_type)
            return {
                "agentType": agent_type,
                "value": {"type": "error", "message": f"Unknown agent '{agent_type}'"},
            }

        agent_id = self.next_agent_id(template.id)
        await emit(
            self._runtime.on_event,
            SubagentStartEvent(
                agent_id=agent_id,
                agent_type=agent_type,
                parent_agent_id=parent.event_agent_id,
                prompt=prompt,
                params=params,
            ),
        )
        result = await self.run_agent(
            template,
            prompt,
            params=params,
            agent_id=agent_id,
            parent_agent_id=parent.agent_id,
        )
        error = result.error
        if result.interrupted:
            error = self.signal.reason or "Run cancelled by user"
        await emit(
            self._runtime.on_event,
            SubagentFinishEvent(agent_id=agent_id, agent_type=agent_type, error=error),
        )
        if result.interrupted:
            raise AbortError(error or "Run cancelled by user")
        return {
            "agentName": template.id,
            "agentType": agent_type,
            "value": result.spawn_value(),
        }

    async def run_agent(
        self,
        template: AgentTemplate,
        prompt: str,
        *,
        params: dict[str, Any] | None = None,
        history: Sequence[Message] = (),
        agent_id: str | None = None,
        parent_agent_id: str | None = None,
    ) -> RunResult:
        """Call the model in a loop until the agent stops calling tools.

        The loop also ends on ``end_turn``, when the run is aborted, or after
        ``max_agent_steps`` steps.
        """
        runtime = self._runtime
        agent_id = agent_id or self.next_agent_id(template.id)
        ctx = ToolContext(
            template=template,
            agent_id=agent_id,
            parent_agent_id=parent_agent_id,
            working_dir=runtime.working_dir,
            signal=self.signal,
            allowed_paths=[Path(p).expanduser() for p in template.allowed_paths],
            spawner=self if template.spawnable_agents else None,
        )
        registry = runtime.build_registry(template)
        messages = self._initial_messages(template, registry, prompt, params, history)
        result = RunResult(agent_id=agent_id, agent_type=template.id)

        max_steps = runtime.config.max_agent_steps
        for step in range(max_steps):
            if self.signal.aborted:
                result.interrupted = True
                break
            messages.append(
                user_message(
                    with_system_tags(f"Step {step + 1} of at most {max_steps}."),
                    keep_during="agent_step",
                )
            )
            request = ModelRequest(
                agent_id=agent_id, template=template, messages=list(messages), step=step
            )
            try:
                step_result = await process_stream(
                    runtime.model.stream(request, self.signal),
                    registry=registry,
                    ctx=ctx,
                    prior=messages,
                    on_event=runtime.on_event,
                    on_chunk=runtime.on_chunk,
                    id_factory=runtime.id_factory,
                )
            except AbortError:
                result.interrupted = True
                break
            except Exception as exc:
                logger.exception("%s: model step %d failed", agent_id, step)
                result.error = str(exc) or type(exc).__name__
                break

            messages = step_result.history
            result.steps = step + 1
            if step_result.full_response.strip():
                result.last_message = step_result.full_response.strip()
            if step_result.interrupted:
                result.interrupted = True
                break
            if ctx.end_turn_requested or not step_result.tool_calls:
                break
        else:
            logger.warning(
                "Agent %r hit max steps (%d) -- forcing stop", agent_id, max_steps
            )

        result.history = expire_messages(messages, "agent_step")
        result.output = ctx.output
        return result

    @staticmethod
    def _initial_messages(
        template: AgentTemplate,
        registry: ToolRegistry,
        prompt: str,
        params: dict[str, Any] | None,
        history: Sequence[Message],
    ) -> list[Message]:
        messages: list[Message] = expire_messages(list(history), "user_prompt")
        if not any(isinstance(m, SystemMessage) for m in messages):
            system = template.system_prompt or f"You are the {template.id} agent."
            content = f"{system}\n\nTools:\n{registry.describe()}"
            messages.insert(0, SystemMessage(content=content))
        if params:
            messages.append(
                user_message(
                    with_system_tags(f"Params: {json.dumps(params, sort_keys=True)}"),
                    keep_during="user_prompt",
                )
            )
        messages.append(user_message(prompt))
        return messages


class AgentRuntime:
    """Runs agents defined in a :class:`WeftConfig` against a model client.

    Args:
        config: Validated configuration.
        model: Model client used for every agent.
        working_dir: Root for file and command tools (default: cwd).
        on_event: Receives lifecycle events.
        on_chunk: Receives stream chunks.
        id_factory: Produces tool call ids.
    """

    def __init__(
        self,
        config: WeftConfig,
        model: ModelClient,
        *,
        working_dir: Path | None = None,
        on_event: EventSink | None = None,
        on_chunk: EventSink | None = None,
        id_factory: Callable[[], str] = compact_id,
    ) -> None:
        self.config = config
        self.model = model
        self.working_dir = (working_dir or Path.cwd()).resolve()
        self.on_event = on_event
        self.on_chunk = on_chunk
        self.id_factory = id_factory
        self._extra_tools: dict[str, ToolDefinition] = {}

    def register_tool(self, definition: ToolDefinition) -> None:
        """Make a Python-handled tool available to every agent."""
        self._extra_tools[definition.name] = definition

    def build_registry(self, template: AgentTemplate) -> ToolRegistry:
        registry = ToolRegistry(template)
        for definition in self._extra_tools.values():
            registry.register(definition)
        return registry

    def tool_names(self) -> frozenset[str]:
        """Every tag name any configured agent may invoke."""
        return known_tool_names(self.config.agents.values()) | frozenset(
            self._extra_tools
        )

    async def run(
        self,
        prompt: str,
        *,
        agent_type: str | None = None,
        params: dict[str, Any] | None = None,
        history: Sequence[Message] = (),
        signal: AbortSignal | None = None,
    ) -> RunResult:
        """Run the entry agent (or *agent_type*) on *prompt*."""
        wanted = agent_type or self.config.entry or ""
        template = self.config.resolve_agent(wanted)
        if template is None:
            msg = f"Unknown agent '{wanted}'"
            raise ValueError(msg)

        session = RunSession(self, signal or AbortSignal(), uuid.uuid4().hex[:8])
        logger.info("Run %s: starting %s", session.run_id, template.id)
        result = await session.run_agent(
            template, prompt, params=params, history=history
        )

        if result.error is not None:
            await emit(self.on_event, ErrorEvent(message=result.error))
        await emit(self.on_event, FinishEvent())
        logger.info(
            "Run %s: %s after %d step(s)",
            session.run_id,
            "interrupted" if result.interrupted else "finished",
            result.steps,
        )
        return result
