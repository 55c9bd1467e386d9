"""weft watch — live TUI tree of a session file as it is written."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Collection
from pathlib import Path
from typing import assert_never

import click
from pydantic import ValidationError
from textual import work
from textual.app import App, ComposeResult
from textual.widgets import Footer, Header, Static, Tree
from textual.widgets.tree import TreeNode

from weft.client.blocks import AgentBlock, AgentListBlock, Block, TextBlock, ToolBlock
from weft.client.router import EventRouter
from weft.commands.replay import load_optional_config, parse_record, session_files
from weft.config.models import DisplayConfig
from weft.runtime.tools import known_tool_names

#: Seconds between polls of the session file.
POLL_INTERVAL = 0.2

_STATUS_STYLES = {"running": "yellow", "complete": "green", "failed": "red"}


def _plain(text: str) -> str:
    """Escape markup so block content renders literally."""
    return text.replace("[", r"\[")


def block_label(block: Block) -> str:
    """Tree label (markup) for one block."""
    match block:
        case AgentBlock():
            style = _STATUS_STYLES.get(block.status, "white")
            return (
                f"[bold]{_plain(block.agent_type)}[/bold] "
                f"[{style}]{block.status}[/{style}]"
            )
        case ToolBlock():
            return f"[cyan]{_plain(block.tool_name)}[/cyan]"
        case TextBlock(text_type="reasoning"):
            return "[dim]reasoning[/dim]"
        case TextBlock():
            return "text"
        case AgentListBlock():
            return f"agents ({len(block.agents)})"
        case _:
            assert_never(block)


def _content_lines(block: Block) -> list[str]:
    match block:
        case TextBlock():
            return block.content.splitlines()
        case ToolBlock():
            return (block.output or "").splitlines()
        case AgentListBlock():
            return [a.agent_type for a in block.agents]
        case _:
            return []


class WatchApp(App[None]):
    """Live TUI showing the block tree of a run being recorded."""

    CSS = """
    #block-tree {
        border: solid $primary;
        height: 1fr;
    }

    #status {
        height: 1;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "toggle_reasoning", "Toggle reasoning"),
    ]

    def __init__(
        self,
        session_file: Path,
        display: DisplayConfig | None = None,
        tool_names: Collection[str] = (),
    ) -> None:
        super().__init__()
        self.session_file = session_file
        self.router = EventRouter(display, tool_names=tool_names)
        self.show_reasoning = False
        self.last_position = 0
        self.record_count = 0
        self.warning_count = 0
        self.run_ended = False
        self._stop_watching = False

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Tree("run", id="block-tree")
        yield Static("", id="status")
        yield Footer()

    def on_mount(self) -> None:
        self.title = f"weft watch: {self.session_file.name}"
        self.watch_session_file()

    def on_unmount(self) -> None:
        self._stop_watching = True

    def action_toggle_reasoning(self) -> None:
        self.show_reasoning = not self.show_reasoning
        self.refresh_tree()

    @work(exclusive=True)
    async def watch_session_file(self) -> None:
        """Poll the session file and redraw when new records arrive."""
        while not self._stop_watching:
            try:
                changed = self.read_new_records()
            except OSError as e:
                self.notify(f"Error reading session file: {e}", severity="error")
            else:
                if changed:
                    self.refresh_tree()
            await asyncio.sleep(POLL_INTERVAL)

    def read_new_records(self) -> int:
        """Apply complete lines written since the last read; return how many.

        A trailing line without a newline is still being written and is left
        for the next poll.
        """
        if not self.session_file.exists():
            return 0
        applied = 0
        with self.session_file.open("r", encoding="utf-8") as fh:
            fh.seek(self.last_position)
            while True:
                line = fh.readline()
                if not line.endswith("\n"):
                    break
                self.last_position = fh.tell()
                line = line.strip()
                if not line:
                    continue
                try:
                    record = parse_record(json.loads(line))
                except (json.JSONDecodeError, ValidationError):
                    self.warning_count += 1
                    continue
                self.router.apply_record(record)
                if record.type == "run_end":
                    self.run_ended = True
                applied += 1
        self.record_count += applied
        return applied

    def refresh_tree(self) -> None:
        tree: Tree[None] = self.query_one("#block-tree", Tree)
        tree.clear()
        self._add_children(tree.root, None)
        tree.root.expand()

        session = self.router.session
        state = "ended" if self.run_ended else "live"
        parts = [f"{self.record_count} records", state]
        if session.interrupted:
            parts.append("interrupted")
        if self.warning_count:
            parts.append(f"{self.warning_count} unreadable line(s)")
        if session.total_cost is not None:
            parts.append(f"cost {session.total_cost}")
        self.query_one("#status", Static).update(" | ".join(parts))

    def _add_children(self, node: TreeNode[None], parent_id: str | None) -> None:
        for block in self.router.tree.children_of(parent_id):
            if isinstance(block, TextBlock):
                if block.text_type == "reasoning" and not self.show_reasoning:
                    continue
                for line in _content_lines(block):
                    if line.strip():
                        node.add_leaf(_plain(line))
                continue
            child = node.add(block_label(block), expand=True)
            if isinstance(block, AgentBlock):
                self._add_children(child, block.id)
            else:
                for line in _content_lines(block):
                    child.add_leaf(_plain(line))


@click.command()
@click.option(
    "--session",
    "session_file",
    type=click.Path(exists=True, path_type=Path),
    help="Specific session file to watch (latest if omitted).",
)
@click.option(
    "-f",
    "--file",
    "config_file",
    type=click.Path(exists=True, path_type=Path),
    help="Config file with display settings (default: ./weft.yaml if present).",
)
def watch(session_file: Path | None, config_file: Path | None) -> None:
    """Watch a run's block tree grow in a live TUI."""
    config = load_optional_config(config_file)
    if session_file is None:
        base_dir = config_file.parent if config_file else Path.cwd()
        sessions_dir = base_dir / (config.sessions_dir if config else "sessions")
        files = session_files(sessions_dir)
        if not files:
            click.echo("Error: No session found. Run `weft run` first.", err=True)
            raise SystemExit(1)
        session_file = files[0]
        click.echo(f"Watching: {session_file}")

    app = WatchApp(
        session_file=session_file,
        display=config.display if config else None,
        tool_names=known_tool_names(config.agents.values() if config else ()),
    )
    app.run()
