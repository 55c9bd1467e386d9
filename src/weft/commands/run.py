"""weft run — run an agent against the scripted model and show its block tree."""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from dataclasses import dataclass
from pathlib import Path

import click

from weft.client.router import ClientSession, EventRouter
from weft.commands.init import TRANSCRIPT_FILENAME
from weft.commands.render import render_tree
from weft.config.models import WeftConfig
from weft.config.parser import ConfigError, load_config
from weft.runtime.abort import AbortSignal
from weft.runtime.agent import AgentRuntime, RunResult
from weft.runtime.model import ModelClient, ScriptedModel, TranscriptError
from weft.session.models import LifecycleEvent, StreamChunk, ToolResultEvent
from weft.session.recorder import EndReason, SessionRecorder

logger = logging.getLogger(__name__)


@dataclass
class RunOutcome:
    """Everything the command needs after a run completes."""

    result: RunResult
    session: ClientSession
    session_file: Path | None


def end_reason(result: RunResult) -> EndReason:
    if result.interrupted:
        return "interrupted"
    if result.error is not None:
        return "error"
    return "complete"


async def run_session(
    config: WeftConfig,
    model: ModelClient,
    prompt: str,
    *,
    agent_type: str | None = None,
    working_dir: Path,
    record: bool = True,
    verbose: bool = False,
) -> RunOutcome:
    """Run *prompt*, feeding every event to a recorder and a live router.

    SIGINT/SIGTERM abort the run; what finished before the signal is kept.
    """
    recorder: SessionRecorder | None = None
    if record:
        recorder = SessionRecorder(
            agent=agent_type or config.entry or "",
            prompt=prompt,
            sessions_dir=working_dir / config.sessions_dir,
            verbose=verbose,
        )

    def on_event(event: LifecycleEvent) -> None:
        if recorder is not None:
            recorder.record(event)
            if isinstance(event, ToolResultEvent):
                recorder.record_verbose(
                    event.seq, event.model_dump(mode="json", by_alias=True)
                )
        router.dispatch(event)

    def on_chunk(chunk: StreamChunk) -> None:
        if recorder is not None:
            recorder.record_chunk(chunk)
        router.handle_chunk(chunk)

    runtime = AgentRuntime(
        config,
        model,
        working_dir=working_dir,
        on_event=on_event,
        on_chunk=on_chunk,
    )
    router = EventRouter(config.display, tool_names=runtime.tool_names())

    abort = AbortSignal()
    loop = asyncio.get_running_loop()
    signals = (signal.SIGINT, signal.SIGTERM)
    for sig in signals:
        loop.add_signal_handler(sig, abort.abort, f"Received {sig.name}")

    try:
        result = await runtime.run(prompt, agent_type=agent_type, signal=abort)
    except Exception:
        if recorder is not None:
            recorder.end("error")
        raise
    finally:
        for sig in signals:
            loop.remove_signal_handler(sig)

    router.flush()
    if result.interrupted:
        router.mark_interrupted()
    if recorder is not None:
        recorder.end(end_reason(result))
        logger.info(
            "Recorded %d event(s) to %s", recorder.event_count, recorder.session_file
        )
    return RunOutcome(
        result=result,
        session=router.session,
        session_file=recorder.session_file if recorder is not None else None,
    )


@click.command()
@click.argument("prompt")
@click.option(
    "-f",
    "--file",
    "config_file",
    type=click.Path(exists=True, path_type=Path),
    help="Path to config file (default: ./weft.yaml).",
)
@click.option(
    "-t",
    "--transcript",
    "transcript_file",
    type=click.Path(path_type=Path),
    help=(
        f"Scripted model transcript (default: {TRANSCRIPT_FILENAME} "
        "beside the config)."
    ),
)
@click.option("--agent", "agent_type", help="Agent type to run instead of the entry.")
@click.option("--no-record", is_flag=True, help="Do not write a session file.")
@click.option("--json", "as_json", is_flag=True, help="Print the block tree as JSON.")
@click.option(
    "-v", "--verbose", is_flag=True, help="Also record full tool results to a sidecar."
)
def run(
    prompt: str,
    config_file: Path | None,
    transcript_file: Path | None,
    agent_type: str | None,
    no_record: bool,
    as_json: bool,
    verbose: bool,
) -> None:
    """Run an agent on PROMPT and print the resulting block tree."""
    try:
        config = load_config(config_file)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    base_dir = (config_file.parent if config_file else Path.cwd()).resolve()
    transcript_path = transcript_file or base_dir / TRANSCRIPT_FILENAME
    try:
        model = ScriptedModel.from_file(transcript_path)
    except TranscriptError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    if agent_type is not None and config.resolve_agent(agent_type) is None:
        raise click.ClickException(f"Unknown agent '{agent_type}'")

    outcome = asyncio.run(
        run_session(
            config,
            model,
            prompt,
            agent_type=agent_type,
            working_dir=base_dir,
            record=not no_record,
            verbose=verbose,
        )
    )

    if as_json:
        click.echo(json.dumps(outcome.session.tree.snapshot(), indent=2))
    else:
        for line in render_tree(outcome.session.tree):
            click.echo(line)

    if outcome.session_file is not None:
        click.echo(f"\nSession recorded: {outcome.session_file}", err=True)
    if outcome.result.error is not None:
        raise SystemExit(1)
