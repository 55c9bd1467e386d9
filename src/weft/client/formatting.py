"""Rendering of tool outputs and spawn results for display."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, NamedTuple

import yaml

from weft.session.models import JsonOutput, TextOutput, ToolResultOutput


class SpawnResultContent(NamedTuple):
    content: str
    has_error: bool


def to_yaml(value: Any) -> str:
    """Readable block-style YAML for a JSON value."""
    if isinstance(value, str):
        return value
    return yaml.safe_dump(
        value,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    ).rstrip("\n")


def format_tool_output(output: Sequence[ToolResultOutput]) -> str:
    """Join output parts; JSON as YAML, error values as their message."""
    parts: list[str] = []
    for item in output:
        match item:
            case JsonOutput(value={"errorMessage": message}):
                parts.append(str(message))
            case JsonOutput(value=value):
                parts.append(to_yaml(value))
            case TextOutput(text=text):
                parts.append(text)
    return "\n".join(parts)


def error_message(output: Sequence[ToolResultOutput]) -> str | None:
    """The ``errorMessage`` carried by an error-shaped output, if any."""
    for item in output:
        if isinstance(item, JsonOutput) and isinstance(item.value, dict):
            message = item.value.get("errorMessage")
            if message is not None:
                return str(message)
    return None


def format_tool_result(
    tool_name: str,
    output: Sequence[ToolResultOutput],
    error: str | None = None,
) -> str:
    """Text shown in a tool block once its result arrives."""
    error = error or error_message(output)
    if error:
        return f"**Error:** {error}"
    if tool_name == "run_terminal_command" and output:
        first = output[0]
        value = first.value if isinstance(first, JsonOutput) else None
        if isinstance(value, dict) and (value.get("stdout") or value.get("stderr")):
            return (value.get("stdout") or "") + (value.get("stderr") or "")
    return format_tool_output(output)


def spawn_results(output: Sequence[ToolResultOutput]) -> list[Any] | None:
    """The per-agent results if *output* is a ``spawn_agents`` result."""
    if not output or not isinstance(output[0], JsonOutput):
        return None
    value = output[0].value
    if not isinstance(value, list):
        return None
    if any(
        isinstance(v, dict) and ("agentName" in v or "agentType" in v) for v in value
    ):
        return value
    return None


def extract_spawn_result_content(value: Any) -> SpawnResultContent:
    """Text for a spawned agent's result ``value`` and whether it failed."""
    has_error = isinstance(value, dict) and (
        value.get("type") == "error" or "errorMessage" in value
    )
    if isinstance(value, str):
        content = value
    elif isinstance(value, dict) and isinstance(value.get("value"), str):
        content = value["value"]
    elif isinstance(value, dict) and value.get("message"):
        content = str(value["message"])
    elif isinstance(value, dict) and value.get("errorMessage"):
        content = str(value["errorMessage"])
    elif isinstance(value, dict) and "value" in value:
        content = to_yaml(value["value"])
    else:
        content = to_yaml(value)
    return SpawnResultContent(content, has_error)
