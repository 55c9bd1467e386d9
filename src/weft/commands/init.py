"""weft init — scaffold a new weft project."""

from __future__ import annotations

from pathlib import Path

import click

from weft.config.parser import DEFAULT_CONFIG_NAME

TRANSCRIPT_FILENAME = "transcript.yaml"
ENV_EXAMPLE_FILENAME = ".env.example"

TEMPLATE_YAML = """\
# weft agent configuration
version: "1"

# Which agent receives the prompt (default: first listed)
entry: base

# Upper bound on model steps per agent run
# max_agent_steps: 20

agents:
  # The entry agent: reads files and delegates exploration
  base:
    description: General coding assistant
    system_prompt: |
      You are a coding assistant. Use the file picker to find relevant
      files, read them, then answer the user.
    tools:
      - read_files
      - run_terminal_command
    spawnable_agents:
      - weft/file-picker@0.1.0

  # A helper agent the base agent can spawn
  file-picker:
    description: Finds files relevant to a request
    system_prompt: |
      List the project directories and report the files that matter.
    tools:
      - list_directory

# Client display settings
# display:
#   hidden_tools: [end_turn, set_output]
#   hidden_agents: []
"""

TEMPLATE_TRANSCRIPT = """\
# Scripted model responses for offline runs, one list of steps per agent.
# Each step is the raw model output, tool-call markup included.
chunk_size: 12
delay: 0.02

agents:
  base:
    - |
      Let me find the files first.
      <file_picker>
      <prompt>Find the project entry points</prompt>
      </file_picker>
    - |
      The file picker has reported back. Done for now.
      <end_turn>
      </end_turn>
  file-picker:
    - |
      <list_directory>
      <path>.</path>
      </list_directory>
    - The listing above shows the top-level layout.
"""

TEMPLATE_ENV_EXAMPLE = """\
# Environment for custom tool commands.
# Copy this file to .env next to weft.yaml; weft loads it automatically.

# WEFT_EXAMPLE_TOKEN=
"""


def _write(path: Path, content: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Cannot write {path.name}: {exc}") from exc
    click.echo(f"  Created {path.name}")


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing weft.yaml and transcript.yaml if they exist.",
)
def init(force: bool) -> None:
    """Scaffold a new weft project in the current directory."""
    cwd = Path.cwd()
    config_path = cwd / DEFAULT_CONFIG_NAME
    transcript_path = cwd / TRANSCRIPT_FILENAME
    env_example_path = cwd / ENV_EXAMPLE_FILENAME

    if config_path.exists() and not force:
        raise click.ClickException(
            f"{DEFAULT_CONFIG_NAME} already exists. Use --force to overwrite."
        )

    _write(config_path, TEMPLATE_YAML)

    for path, content in (
        (transcript_path, TEMPLATE_TRANSCRIPT),
        (env_example_path, TEMPLATE_ENV_EXAMPLE),
    ):
        if path.exists() and not force:
            click.echo(f"  Skipped {path.name} (already exists)")
        else:
            _write(path, content)

    click.echo()
    click.echo("Next steps:")
    click.echo(f"  1. Edit {DEFAULT_CONFIG_NAME} to configure your agents")
    click.echo(f"  2. Edit {TRANSCRIPT_FILENAME} to script the model's replies")
    click.echo('  3. Run `weft run "your prompt"` to start a run')
