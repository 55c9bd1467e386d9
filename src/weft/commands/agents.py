"""weft agents — list the agents a config defines."""

from __future__ import annotations

from pathlib import Path

import click

from weft.client.blocks import AgentListBlock, AgentListEntry, BlockTree
from weft.commands.render import render_tree
from weft.config.models import WeftConfig
from weft.config.parser import ConfigError, load_config


def agent_list_block(config: WeftConfig) -> AgentListBlock:
    """One agent-list block covering every configured agent, entry first."""
    order = sorted(config.agents, key=lambda name: name != config.entry)
    return AgentListBlock(
        id="agents",
        agents=[
            AgentListEntry(
                agent_id=name,
                agent_type=name,
                description=config.agents[name].description,
            )
            for name in order
        ],
    )


@click.command()
@click.option(
    "-f",
    "--file",
    "config_file",
    type=click.Path(exists=True, path_type=Path),
    help="Path to config file (default: ./weft.yaml).",
)
def agents(config_file: Path | None) -> None:
    """List configured agents."""
    try:
        config = load_config(config_file)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    tree = BlockTree()
    tree.append(agent_list_block(config))
    for line in render_tree(tree):
        click.echo(line)
    click.echo(f"\nEntry agent: {config.entry}")
