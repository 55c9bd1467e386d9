"""Configuration models and parser for weft.yaml."""

from weft.config.models import (
    AgentTemplate,
    CustomToolConfig,
    DisplayConfig,
    WeftConfig,
    bare_agent_name,
)
from weft.config.parser import ConfigError, load_config

__all__ = [
    "AgentTemplate",
    "ConfigError",
    "CustomToolConfig",
    "DisplayConfig",
    "WeftConfig",
    "bare_agent_name",
    "load_config",
]
