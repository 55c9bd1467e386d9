"""Root CLI group and version flag."""

import click

from weft import __version__
from weft.commands.agents import agents
from weft.commands.init import init
from weft.commands.replay import replay
from weft.commands.run import run
from weft.commands.watch import watch


@click.group()
@click.version_option(version=__version__, prog_name="weft")
def cli() -> None:
    """weft: streaming agent runtime with ordered tool calls and block trees."""


cli.add_command(init)
cli.add_command(run)
cli.add_command(agents)
cli.add_command(replay)
cli.add_command(watch)
