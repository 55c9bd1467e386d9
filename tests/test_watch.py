"""Tests for the watch command and TUI."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner
from textual.widgets import Tree

from weft.client.blocks import (
    AgentBlock,
    AgentListBlock,
    AgentListEntry,
    TextBlock,
    ToolBlock,
)
from weft.commands.watch import WatchApp, block_label, watch

RECORDS = [
    {"seq": 0, "type": "run_start", "run_id": "r1", "agent": "base"},
    {"seq": 1, "type": "root_chunk", "chunk": "Looking."},
    {
        "seq": 2,
        "type": "subagent_start",
        "agentId": "child-1",
        "agentType": "file-picker",
    },
    {
        "seq": 3,
        "type": "tool_call",
        "toolCallId": "c1",
        "toolName": "list_directory",
        "agentId": "child-1",
    },
]

RUN_END = {"seq": 4, "type": "run_end", "reason": "complete", "duration_ms": 10}


def _lines(*records: dict) -> str:
    return "".join(json.dumps(r) + "\n" for r in records)


def test_block_labels():
    """Each block kind gets a distinct tree label."""
    agent = AgentBlock(id="a", agent_type="file-picker", status="complete")
    assert block_label(agent) == "[bold]file-picker[/bold] [green]complete[/green]"
    assert block_label(ToolBlock(id="t", tool_name="read_files")) == (
        "[cyan]read_files[/cyan]"
    )
    assert block_label(TextBlock(id="x", content="hi")) == "text"
    assert block_label(TextBlock(id="r", text_type="reasoning")) == (
        "[dim]reasoning[/dim]"
    )
    listing = AgentListBlock(
        id="l", agents=[AgentListEntry(agent_id="b", agent_type="base")]
    )
    assert block_label(listing) == "agents (1)"


def test_label_escapes_markup():
    agent = AgentBlock(id="a", agent_type="[weird]")
    assert block_label(agent).startswith(r"[bold]\[weird]")


def test_watch_app_initialization(tmp_path: Path):
    """A fresh app has read nothing yet."""
    session_file = tmp_path / "s.jsonl"
    app = WatchApp(session_file=session_file)
    assert app.session_file == session_file
    assert app.record_count == 0
    assert app.run_ended is False
    assert app.read_new_records() == 0


def test_read_new_records_incremental(tmp_path: Path):
    """Records are applied once; later appends are picked up on the next read."""
    session_file = tmp_path / "s.jsonl"
    session_file.write_text(_lines(*RECORDS))
    app = WatchApp(session_file=session_file)

    assert app.read_new_records() == 4
    assert app.read_new_records() == 0
    roots = app.router.tree.snapshot()
    assert [b["type"] for b in roots] == ["text", "agent"]
    assert roots[1]["blocks"][0]["toolName"] == "list_directory"

    with session_file.open("a") as fh:
        fh.write(_lines(RUN_END))
    assert app.read_new_records() == 1
    assert app.run_ended is True
    assert app.record_count == 5


def test_partial_trailing_line_waits(tmp_path: Path):
    """A line still being written is left for the next poll."""
    session_file = tmp_path / "s.jsonl"
    full = json.dumps(RECORDS[1])
    session_file.write_text(_lines(RECORDS[0]) + full[:10])
    app = WatchApp(session_file=session_file)

    assert app.read_new_records() == 1
    with session_file.open("a") as fh:
        fh.write(full[10:] + "\n")
    assert app.read_new_records() == 1
    assert app.router.tree.snapshot()[0]["content"] == "Looking."


def test_unreadable_lines_counted(tmp_path: Path):
    session_file = tmp_path / "s.jsonl"
    session_file.write_text("{oops\n" + _lines({"type": "teleport"}, RECORDS[1]))
    app = WatchApp(session_file=session_file)
    assert app.read_new_records() == 1
    assert app.warning_count == 2


async def test_tree_rendered(tmp_path: Path):
    """The mounted app shows the block tree."""
    session_file = tmp_path / "s.jsonl"
    session_file.write_text(_lines(*RECORDS, RUN_END))
    app = WatchApp(session_file=session_file)
    async with app.run_test() as pilot:
        await pilot.pause(0.3)
        tree = app.query_one("#block-tree", Tree)
        labels = [str(node.label) for node in tree.root.children]
        assert labels[0] == "Looking."
        assert labels[1].startswith("file-picker")
        assert app.record_count == 5
        assert app.run_ended is True


def test_watch_no_session(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """weft watch without any recorded session exits with an error."""
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(watch, [])
    assert result.exit_code == 1
    assert "No session found. Run `weft run` first." in result.output
