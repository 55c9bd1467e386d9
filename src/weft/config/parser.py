"""Load weft.yaml and resolve the file references it contains."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from weft.config.models import WeftConfig

DEFAULT_CONFIG_NAME = "weft.yaml"
ENV_FILE_NAME = ".env"

#: Prefixes marking a ``system_prompt`` as a file reference, not inline text.
PROMPT_FILE_PREFIXES = ("./", "../", "/")

_FRIENDLY_ERRORS = {
    "missing": "This field is required",
    "extra_forbidden": "Unknown field",
}


class ConfigError(Exception):
    """User-facing configuration error."""


def load_config(path: Path | None = None) -> WeftConfig:
    """Load a weft project config.

    ``system_prompt`` values starting with ``./`` are read from files inside
    the project directory (the config's directory), and relative
    ``allowed_paths`` are anchored there too. A ``.env`` beside the config is
    loaded into the environment so custom tool commands can see it.

    Raises:
        ConfigError: On a missing file, bad YAML, an unreadable or escaping
            prompt file, or a validation failure.
    """
    config_path = find_config(path)
    project_dir = config_path.parent.resolve()
    raw = _read_mapping(config_path)

    agents = raw.get("agents")
    if isinstance(agents, dict):
        for name, agent in agents.items():
            if isinstance(agent, dict):
                _resolve_agent_files(str(name), agent, project_dir)

    env_file = project_dir / ENV_FILE_NAME
    if env_file.is_file():
        load_dotenv(env_file)

    try:
        return WeftConfig.model_validate(raw)
    except ValidationError as exc:
        lines = "\n".join(f"  {_describe(err)}" for err in exc.errors())
        msg = f"{config_path.name} validation failed:\n{lines}"
        raise ConfigError(msg) from exc


def find_config(path: Path | None = None) -> Path:
    """The config file to load: *path*, or weft.yaml in the working directory."""
    if path is not None:
        if not Path(path).is_file():
            msg = f"Config file not found: {path}"
            raise ConfigError(msg)
        return Path(path)

    default = Path.cwd() / DEFAULT_CONFIG_NAME
    if not default.is_file():
        msg = (
            f"No {DEFAULT_CONFIG_NAME} found in {Path.cwd()}. "
            "Run `weft init` to create one."
        )
        raise ConfigError(msg)
    return default


def _read_mapping(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark else ""
        msg = f"Invalid YAML in {path.name}{where}"
        raise ConfigError(msg) from exc

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)
    return data


def _resolve_agent_files(name: str, agent: dict[str, Any], project_dir: Path) -> None:
    prompt = agent.get("system_prompt")
    if isinstance(prompt, str) and prompt.startswith(PROMPT_FILE_PREFIXES):
        prompt_file = _inside_project(project_dir, prompt, f"Prompt file of '{name}'")
        try:
            agent["system_prompt"] = prompt_file.read_text(encoding="utf-8").strip()
        except FileNotFoundError as exc:
            msg = f"Prompt file not found for agent '{name}': {prompt}"
            raise ConfigError(msg) from exc
        except OSError as exc:
            msg = f"Cannot read prompt file for agent '{name}': {exc}"
            raise ConfigError(msg) from exc

    allowed = agent.get("allowed_paths")
    if isinstance(allowed, list):
        agent["allowed_paths"] = [
            _anchor(project_dir, p) if isinstance(p, str) else p for p in allowed
        ]


def _inside_project(project_dir: Path, ref: str, what: str) -> Path:
    resolved = (project_dir / ref).resolve()
    if not resolved.is_relative_to(project_dir):
        msg = f"{what} escapes project directory: {ref}"
        raise ConfigError(msg)
    return resolved


def _anchor(project_dir: Path, ref: str) -> str:
    """Make a relative allowed path absolute against the project directory."""
    expanded = Path(ref).expanduser()
    if expanded.is_absolute():
        return str(expanded)
    return str((project_dir / expanded).resolve())


def _describe(err: Any) -> str:
    where = ".".join(str(part) for part in err["loc"]) or "config"
    text = _FRIENDLY_ERRORS.get(err["type"], err["msg"])
    return f"{where}: {text.removeprefix('Value error, ')}"
