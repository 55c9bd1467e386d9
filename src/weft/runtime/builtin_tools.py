"""Built-in tools that agents can use out of the box.

Tool inputs arrive as string-valued tag attributes; each handler reads what
it needs and returns a list of tool result output parts.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import re
import shlex
from pathlib import Path
from typing import TYPE_CHECKING, Any

from weft.config.models import bare_agent_name
from weft.constants import END_TURN_TOOL, SPAWN_AGENTS_TOOL
from weft.session.models import TextOutput, ToolResultOutput, json_tool_result

if TYPE_CHECKING:
    from weft.runtime.tools import ToolContext

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30
_MAX_TIMEOUT = 300
_MAX_READ_SIZE = 10 * 1024 * 1024  # 10 MB
_MAX_LISTING = 500
_MAX_OUTPUT_CHARS = 20_000

_PATH_SPLIT_RE = re.compile(r"[\n,]+")


class PathNotAllowedError(ValueError):
    """Raised when a tool path escapes the working directory."""


# ------------------------------------------------------------------ #
# Tool descriptions (shown to the model)
# ------------------------------------------------------------------ #

BUILTIN_TOOL_DESCRIPTIONS: dict[str, str] = {
    "read_files": "Read one or more files. <paths> is newline or comma separated.",
    "write_file": "Write <content> to the file at <path>, creating directories.",
    "list_directory": "List the entries of the directory at <path>.",
    "run_terminal_command": (
        "Run <command> in the project directory. Optional <timeout_seconds>."
    ),
    "set_output": "Set this agent's final output to the JSON in <output>.",
    END_TURN_TOOL: "End your turn; no further steps will run.",
    SPAWN_AGENTS_TOOL: (
        "Spawn child agents. <agents> is a JSON array of "
        '{"agent_type": ..., "prompt": ..., "params": {...}}.'
    ),
}


# ------------------------------------------------------------------ #
# Path validation
# ------------------------------------------------------------------ #


def validate_path(
    path_str: str,
    working_dir: Path,
    allowed_paths: list[Path] | None = None,
) -> Path:
    """Resolve *path_str* against *working_dir* and reject path traversal.

    Paths under *working_dir* or any entry in *allowed_paths* are permitted.
    """
    expanded = Path(path_str).expanduser()
    if expanded.is_absolute():
        resolved = expanded.resolve()
    else:
        resolved = (working_dir / expanded).resolve()

    for root in [working_dir, *(allowed_paths or [])]:
        root_resolved = root.resolve()
        if resolved == root_resolved or resolved.is_relative_to(root_resolved):
            return resolved

    msg = f"Path '{path_str}' escapes the working directory"
    raise PathNotAllowedError(msg)


# ------------------------------------------------------------------ #
# Input parsing
# ------------------------------------------------------------------ #


def parse_spawn_agents_input(raw: dict[str, Any]) -> dict[str, Any]:
    """Normalise ``spawn_agents`` input; ``agents`` may be a JSON string."""
    agents = raw.get("agents", [])
    if isinstance(agents, str):
        try:
            agents = json.loads(agents)
        except json.JSONDecodeError as exc:
            msg = f"'agents' is not valid JSON: {exc.msg}"
            raise ValueError(msg) from exc
    if not isinstance(agents, list) or not agents:
        msg = "'agents' must be a non-empty list"
        raise ValueError(msg)
    normalised: list[dict[str, Any]] = []
    for entry in agents:
        if not isinstance(entry, dict) or not entry.get("agent_type"):
            msg = "each entry in 'agents' needs an 'agent_type'"
            raise ValueError(msg)
        normalised.append(dict(entry))
    return {**raw, "agents": normalised}


# ------------------------------------------------------------------ #
# Tool implementations
# ------------------------------------------------------------------ #


async def handle_read_files(
    arguments: dict[str, Any],
    ctx: ToolContext,
) -> list[ToolResultOutput]:
    """Read each requested file; unreadable ones report an error entry."""
    raw_paths = arguments.get("paths", "")
    if isinstance(raw_paths, str):
        paths = [p.strip() for p in _PATH_SPLIT_RE.split(raw_paths) if p.strip()]
    else:
        paths = [str(p) for p in raw_paths]
    if not paths:
        msg = "No paths given"
        raise ValueError(msg)

    results: list[dict[str, Any]] = []
    for path_str in paths:
        try:
            resolved = validate_path(path_str, ctx.working_dir, ctx.allowed_paths)
            if not resolved.is_file():
                msg = f"File not found: {path_str}"
                raise FileNotFoundError(msg)
            size = resolved.stat().st_size
            if size > _MAX_READ_SIZE:
                msg = f"File too large: {size} bytes (max {_MAX_READ_SIZE})"
                raise ValueError(msg)
            content = resolved.read_text(encoding="utf-8", errors="replace")
            results.append({"path": path_str, "content": content})
        except (OSError, ValueError) as exc:
            results.append({"path": path_str, "errorMessage": str(exc)})
    return json_tool_result(results)


async def handle_write_file(
    arguments: dict[str, Any],
    ctx: ToolContext,
) -> list[ToolResultOutput]:
    """Write content to a local file."""
    path_str = arguments.get("path", "")
    content = arguments.get("content", "")
    if not path_str:
        msg = "No path given"
        raise ValueError(msg)
    resolved = validate_path(path_str, ctx.working_dir, ctx.allowed_paths)

    resolved.parent.mkdir(parents=True, exist_ok=True)
    resolved.write_text(content, encoding="utf-8")
    return json_tool_result(
        {"file": path_str, "bytesWritten": len(content.encode("utf-8"))}
    )


async def handle_list_directory(
    arguments: dict[str, Any],
    ctx: ToolContext,
) -> list[ToolResultOutput]:
    path_str = arguments.get("path", ".") or "."
    resolved = validate_path(path_str, ctx.working_dir, ctx.allowed_paths)
    if not resolved.is_dir():
        msg = f"Not a directory: {path_str}"
        raise NotADirectoryError(msg)

    files: list[str] = []
    directories: list[str] = []
    for entry in sorted(resolved.iterdir())[:_MAX_LISTING]:
        (directories if entry.is_dir() else files).append(entry.name)
    return json_tool_result(
        {"path": path_str, "files": files, "directories": directories}
    )


async def handle_run_terminal_command(
    arguments: dict[str, Any],
    ctx: ToolContext,
) -> list[ToolResultOutput]:
    """Run a shell command in the working directory with a timeout."""
    command = arguments.get("command", "")
    if not command.strip():
        msg = "No command given"
        raise ValueError(msg)
    try:
        timeout = min(
            float(arguments.get("timeout_seconds", _DEFAULT_TIMEOUT)),
            _MAX_TIMEOUT,
        )
    except ValueError:
        timeout = _DEFAULT_TIMEOUT

    proc = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=ctx.working_dir,
        env={**os.environ, "PAGER": "cat"},
    )
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            proc.communicate(), timeout=timeout
        )
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        return json_tool_result(
            {
                "command": command,
                "exitCode": -1,
                "stdout": "",
                "stderr": f"Command timed out after {timeout:.0f}s",
                "timedOut": True,
            }
        )
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        raise

    return json_tool_result(
        {
            "command": command,
            "exitCode": proc.returncode,
            "stdout": _truncate(stdout_bytes.decode("utf-8", errors="replace")),
            "stderr": _truncate(stderr_bytes.decode("utf-8", errors="replace")),
            "timedOut": False,
        }
    )


async def handle_set_output(
    arguments: dict[str, Any],
    ctx: ToolContext,
) -> list[ToolResultOutput]:
    raw = arguments.get("output", "")
    try:
        value: Any = json.loads(raw) if isinstance(raw, str) else raw
    except json.JSONDecodeError:
        value = raw
    ctx.output = value
    return json_tool_result({"message": "Output set"})


async def handle_end_turn(
    arguments: dict[str, Any],
    ctx: ToolContext,
) -> list[ToolResultOutput]:
    ctx.end_turn_requested = True
    return json_tool_result({"message": "Turn ended."})


async def handle_spawn_agents(
    arguments: dict[str, Any],
    ctx: ToolContext,
) -> list[ToolResultOutput]:
    """Run every requested child agent concurrently and collect their outputs."""
    if ctx.spawner is None:
        msg = "This agent cannot spawn sub-agents"
        raise RuntimeError(msg)

    agents: list[dict[str, Any]] = arguments.get("agents", [])
    allowed = set(ctx.template.spawnable_agents)
    tasks = []
    for entry in agents:
        agent_type = str(entry.get("agent_type", ""))
        if not _is_spawnable(agent_type, allowed):
            tasks.append(_not_spawnable(agent_type, ctx))
            continue
        tasks.append(
            ctx.spawner.spawn(
                agent_type=agent_type,
                prompt=str(entry.get("prompt", "")),
                params=entry.get("params"),
                parent=ctx,
            )
        )
    results = await asyncio.gather(*tasks)
    return json_tool_result(list(results))


async def run_command_tool(
    command: str,
    arguments: dict[str, Any],
    ctx: ToolContext,
    timeout: float,
) -> list[ToolResultOutput]:
    """Run a custom tool's shell command with the input as JSON on stdin."""
    proc = await asyncio.create_subprocess_exec(
        *shlex.split(command),
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=ctx.working_dir,
    )
    payload = json.dumps(arguments).encode()
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            proc.communicate(input=payload), timeout=timeout
        )
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        msg = f"Command timed out after {timeout:.0f}s"
        raise RuntimeError(msg) from None

    if proc.returncode != 0:
        stderr_text = stderr_bytes.decode(errors="replace").strip()
        lines = [line for line in stderr_text.splitlines() if line.strip()][-5:]
        msg = f"Command exited with code {proc.returncode}"
        if lines:
            msg += ": " + " | ".join(lines)
        raise RuntimeError(msg)

    return [TextOutput(text=_truncate(stdout_bytes.decode(errors="replace").strip()))]


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _is_spawnable(agent_type: str, allowed: set[str]) -> bool:
    if agent_type in allowed:
        return True
    bare = bare_agent_name(agent_type)
    return any(bare_agent_name(a) == bare for a in allowed)


async def _not_spawnable(agent_type: str, ctx: ToolContext) -> dict[str, Any]:
    logger.warning(
        "%s tried to spawn %r which is not in spawnable_agents",
        ctx.template.id,
        agent_type,
    )
    return {
        "agentType": agent_type,
        "value": {
            "type": "error",
            "errorMessage": f"Agent '{agent_type}' is not spawnable by this agent",
        },
    }


def _truncate(text: str) -> str:
    if len(text) <= _MAX_OUTPUT_CHARS:
        return text
    dropped = len(text) - _MAX_OUTPUT_CHARS
    return text[:_MAX_OUTPUT_CHARS] + f"\n[... {dropped:,} chars truncated]"
