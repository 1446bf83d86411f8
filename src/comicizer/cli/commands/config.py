"""Configuration CLI commands.

- config show: Show current effective configuration
- config path: Show the configuration file in use
"""

from __future__ import annotations

import json
from typing import Any

import click
from rich.syntax import Syntax

from comicizer.cli.console import get_console
from comicizer.config import ConfigManager
from comicizer.security import mask_secret


def _mask_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Mask literal API keys; env: references are shown as is."""
    for section in data.values():
        if not isinstance(section, dict):
            continue
        key = section.get("api_key")
        if isinstance(key, str) and not key.startswith("env:"):
            section["api_key"] = mask_secret(key)
    return data


@click.group()
def config() -> None:
    """Configuration management commands."""


@config.command("show")
@click.pass_obj
def config_show(obj: dict[str, Any]) -> None:
    """Show current effective configuration."""
    manager: ConfigManager = obj["manager"]
    config_dict = _mask_keys(manager.config.model_dump(mode="json", exclude_none=True))
    config_json = json.dumps(config_dict, indent=2, ensure_ascii=False)
    get_console().print(
        Syntax(config_json, "json", theme="monokai", line_numbers=False)
    )


@config.command("path")
@click.pass_obj
def config_path(obj: dict[str, Any]) -> None:
    """Show the configuration file in use."""
    manager: ConfigManager = obj["manager"]
    path = manager.config_path
    get_console().print(str(path) if path else "No configuration file (defaults)")
