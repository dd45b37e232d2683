"""Effective configuration command."""

from __future__ import annotations

import yaml  # type: ignore[import-untyped]
from rich.console import Console
from rich.markup import escape

from pubflow.config import ConfigManager

console = Console()


def show_config_command(config: str | None = None) -> dict[str, object]:
    """Load defaults + YAML + env and print the merged configuration."""
    manager = ConfigManager.load(config_path=config)
    data = manager.get().model_dump(mode="json")
    console.print("[bold]Effective configuration[/bold]")
    console.print(escape(yaml.safe_dump(data, sort_keys=False)), highlight=False)
    return data
