"""userlink config — show or initialise the configuration file."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console

from userlink.core.config import UserlinkConfig, config_file_path, config_to_dict, save_config
from userlink.core.constants import ExitCode


def cmd_config_show(config: UserlinkConfig, as_json: bool) -> None:
    data = config_to_dict(config)
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    import tomli_w

    click.echo(tomli_w.dumps(data))


def cmd_config_init(path: Path | None, force: bool, console: Console) -> int:
    """Write a config file holding the built-in defaults."""
    cfg_path = path or config_file_path()
    if cfg_path.exists() and not force:
        console.print(f"[yellow]Config already exists:[/yellow] {cfg_path}")
        console.print("Use [cyan]--force[/cyan] to overwrite it.")
        return ExitCode.ERROR

    save_config(config_to_dict(UserlinkConfig(), reveal_secrets=True), cfg_path)
    console.print(f"[green]Config written:[/green] {cfg_path}")
    return ExitCode.SUCCESS
