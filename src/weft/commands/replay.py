"""weft replay — rebuild a recorded run's block tree."""

from __future__ import annotations

import json
from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import click
from pydantic import TypeAdapter, ValidationError

from weft.client.router import ClientSession, EventRouter
from weft.commands.render import render_tree
from weft.config.models import DisplayConfig, WeftConfig
from weft.config.parser import DEFAULT_CONFIG_NAME, ConfigError, load_config
from weft.runtime.tools import known_tool_names
from weft.session.models import RunEndEvent, RunRecord, RunStartEvent

_RECORD_ADAPTER: TypeAdapter[Any] = TypeAdapter(RunRecord)


@dataclass
class SessionMetadata:
    """Metadata extracted from a session file."""

    run_id: str
    agent: str
    prompt: str
    start_ts: datetime | None
    duration_ms: int | None
    end_reason: str | None
    record_count: int
    file_path: Path

    @property
    def is_complete(self) -> bool:
        return self.end_reason is not None

    @property
    def duration_str(self) -> str:
        """Human-readable duration string."""
        if self.duration_ms is None:
            return "in progress"
        seconds = self.duration_ms / 1000
        if seconds < 60:
            return f"{seconds:.1f}s"
        return f"{seconds / 60:.1f}m"


@dataclass
class SessionData:
    """Parsed session records ready for replay."""

    metadata: SessionMetadata
    records: list[RunRecord]
    parse_warnings: list[str]


def parse_record(raw: dict[str, Any]) -> RunRecord:
    """Validate one decoded JSONL line into its record model."""
    return _RECORD_ADAPTER.validate_python(raw)


def parse_session_file(file_path: Path) -> SessionData:
    """Parse a session JSONL file, collecting a warning per malformed line."""
    records: list[RunRecord] = []
    warnings: list[str] = []

    with file_path.open("r", encoding="utf-8") as fh:
        for line_num, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(parse_record(json.loads(line)))
            except json.JSONDecodeError as e:
                warnings.append(f"Line {line_num}: Invalid JSON: {e}")
            except ValidationError as e:
                warnings.append(
                    f"Line {line_num}: Validation error: {e.error_count()} error(s)"
                )

    return SessionData(
        metadata=_extract_metadata(file_path, records),
        records=records,
        parse_warnings=warnings,
    )


def _parse_ts(ts: str) -> datetime | None:
    if not ts:
        return None
    try:
        return datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except ValueError:
        return None


def _extract_metadata(file_path: Path, records: list[RunRecord]) -> SessionMetadata:
    metadata = SessionMetadata(
        run_id="unknown",
        agent="unknown",
        prompt="",
        start_ts=None,
        duration_ms=None,
        end_reason=None,
        record_count=len(records),
        file_path=file_path,
    )
    for record in records:
        if isinstance(record, RunStartEvent):
            metadata.run_id = record.run_id
            metadata.agent = record.agent
            metadata.prompt = record.prompt
            metadata.start_ts = _parse_ts(record.ts)
        elif isinstance(record, RunEndEvent):
            metadata.duration_ms = record.duration_ms
            metadata.end_reason = record.reason
    return metadata


def replay_records(
    records: list[RunRecord],
    display: DisplayConfig | None = None,
    tool_names: Collection[str] = (),
) -> ClientSession:
    """Apply recorded records to a fresh router and return its session."""
    router = EventRouter(display, tool_names=tool_names)
    router.apply_records(records)
    router.flush()
    return router.session


def session_files(sessions_dir: Path) -> list[Path]:
    """Session files in *sessions_dir*, most recent first (sidecars excluded)."""
    if not sessions_dir.is_dir():
        return []
    files = [
        f
        for f in sessions_dir.glob("*.jsonl")
        if not f.name.endswith(".verbose.jsonl")
    ]
    return sorted(files, key=lambda p: p.stat().st_mtime, reverse=True)


def find_session(sessions_dir: Path, ref: str) -> Path | None:
    """Resolve *ref* as a path, or as a run id contained in a file name."""
    candidate = Path(ref)
    if candidate.is_file():
        return candidate
    for path in session_files(sessions_dir):
        if ref in path.stem:
            return path
    return None


def load_optional_config(config_file: Path | None) -> WeftConfig | None:
    """Load *config_file*, or ./weft.yaml when present; None when neither exists."""
    if config_file is None and not (Path.cwd() / DEFAULT_CONFIG_NAME).is_file():
        return None
    try:
        return load_config(config_file)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc


def _format_session_list(sessions_dir: Path) -> None:
    files = session_files(sessions_dir)
    if not files:
        click.echo("No sessions found. Run `weft run` to create one.")
        return

    click.echo(f"Found {len(files)} session(s):\n")
    header = (
        f"{'RUN ID':<14} {'AGENT':<20} {'START':<20} "
        f"{'DURATION':<12} {'END':<12}"
    )
    click.echo(header)
    click.echo("-" * len(header))
    for path in files:
        meta = parse_session_file(path).metadata
        start = meta.start_ts.strftime("%Y-%m-%d %H:%M:%S") if meta.start_ts else "?"
        click.echo(
            f"{meta.run_id:<14} {meta.agent:<20} {start:<20} "
            f"{meta.duration_str:<12} {meta.end_reason or '-':<12}"
        )


@click.command()
@click.argument("session", required=False)
@click.option(
    "-f",
    "--file",
    "config_file",
    type=click.Path(exists=True, path_type=Path),
    help="Config file with display settings (default: ./weft.yaml if present).",
)
@click.option(
    "--sessions-dir",
    type=click.Path(path_type=Path),
    help="Directory holding session files (default: from config).",
)
@click.option("--json", "as_json", is_flag=True, help="Print the block tree as JSON.")
def replay(
    session: str | None,
    config_file: Path | None,
    sessions_dir: Path | None,
    as_json: bool,
) -> None:
    """Rebuild and print the block tree of a recorded SESSION.

    SESSION is a session file path or a run id. Without it, recorded
    sessions are listed.
    """
    config = load_optional_config(config_file)
    if sessions_dir is None:
        base_dir = config_file.parent if config_file else Path.cwd()
        sessions_dir = base_dir / (config.sessions_dir if config else "sessions")

    if session is None:
        _format_session_list(sessions_dir)
        return

    path = find_session(sessions_dir, session)
    if path is None:
        click.echo(f"Error: Session not found: {session}", err=True)
        raise SystemExit(1)

    data = parse_session_file(path)
    for warning in data.parse_warnings:
        click.echo(f"Warning: {warning}", err=True)

    display = config.display if config else None
    tool_names = known_tool_names(config.agents.values() if config else ())
    result = replay_records(data.records, display, tool_names)

    if as_json:
        click.echo(json.dumps(result.tree.snapshot(), indent=2))
        return

    meta = data.metadata
    click.echo(
        click.style(f"Run {meta.run_id}", bold=True)
        + f" ({meta.agent}, {meta.duration_str}, {meta.end_reason or 'unfinished'})"
    )
    if meta.prompt:
        click.echo(click.style(f"> {meta.prompt}", dim=True))
    click.echo()
    for line in render_tree(result.tree):
        click.echo(line)
    if result.total_cost is not None:
        click.echo(f"\nTotal cost: {result.total_cost}")
