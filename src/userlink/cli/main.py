"""
userlink CLI entry point.

Commands:
  userlink probe [URL]          — check whether the backend answers
  userlink login --username U   — authenticate over the selected transport
  userlink listen               — print inbound messages as they arrive
  userlink config show          — show the effective configuration
  userlink config init          — write a default config file
  userlink config path          — show the config file location
  userlink version              — show version
"""

from __future__ import annotations

import sys

import click
from rich.console import Console

from userlink import __version__
from userlink.core.config import UserlinkConfig
from userlink.core.constants import ExitCode

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="userlink %(version)s")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Config file (default: $USERLINK_CONFIG or ~/.userlink/config.toml)",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """userlink — connect to a user-service WebSocket, or simulate one offline."""
    from pathlib import Path

    from userlink.core.config import load_config
    from userlink.core.exceptions import ConfigError, ConfigNotFoundError
    from userlink.core.logging import configure_logging

    try:
        config = load_config(Path(config_path) if config_path else None)
    except ConfigNotFoundError as exc:
        # `config init` is how a missing file gets created
        if ctx.invoked_subcommand != "config":
            err_console.print(f"[red]Config error:[/red] {exc}")
            sys.exit(ExitCode.CONFIG_ERROR)
        config = UserlinkConfig()
    except ConfigError as exc:
        err_console.print(f"[red]Config error:[/red] {exc}")
        sys.exit(ExitCode.CONFIG_ERROR)

    if verbose:
        config.logging.level = "DEBUG"
    configure_logging(config.logging)
    ctx.obj = config


# ---------------------------------------------------------------------------
# probe
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("url", required=False)
@click.option("--timeout", type=float, default=None, help="Probe timeout in seconds")
@click.option("--json", "as_json", is_flag=True, default=False)
@click.pass_obj
def probe(config: UserlinkConfig, url: str | None, timeout: float | None, as_json: bool) -> None:
    """Check whether the backend endpoint completes a WebSocket handshake."""
    from userlink.cli._probe import cmd_probe

    code = cmd_probe(config=config, url=url, timeout=timeout, as_json=as_json, console=console)
    sys.exit(code)


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--username", "-u", required=True)
@click.option("--password", "-p", prompt=True, hide_input=True)
@click.option("--url", default=None, help="Endpoint URL (default: transport.url)")
@click.option("--timeout", type=float, default=10.0, help="Seconds to wait for auth_response")
@click.option("--json", "as_json", is_flag=True, default=False)
@click.pass_obj
def login(
    config: UserlinkConfig,
    username: str,
    password: str,
    url: str | None,
    timeout: float,
    as_json: bool,
) -> None:
    """Send an auth_request and report the auth_response."""
    from userlink.cli._login import cmd_login

    code = cmd_login(
        config=config,
        username=username,
        password=password,
        url=url,
        timeout=timeout,
        as_json=as_json,
        console=console,
    )
    sys.exit(code)


# ---------------------------------------------------------------------------
# listen
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--url", default=None, help="Endpoint URL (default: transport.url)")
@click.option("--count", "-n", type=int, default=0, help="Stop after N messages (0 = forever)")
@click.option("--json", "as_json", is_flag=True, default=False)
@click.pass_obj
def listen(config: UserlinkConfig, url: str | None, count: int, as_json: bool) -> None:
    """Print inbound messages until interrupted."""
    from userlink.cli._listen import cmd_listen

    code = cmd_listen(config=config, url=url, count=count, as_json=as_json, console=console)
    sys.exit(code)


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.group("config")
def config_group() -> None:
    """Inspect configuration."""


@config_group.command("show")
@click.option("--json", "as_json", is_flag=True, default=False)
@click.pass_obj
def config_show(config: UserlinkConfig, as_json: bool) -> None:
    """Show the effective configuration (secrets masked)."""
    from userlink.cli._config_cmd import cmd_config_show

    cmd_config_show(config=config, as_json=as_json)


@config_group.command("init")
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing file")
@click.pass_context
def config_init(ctx: click.Context, force: bool) -> None:
    """Write a config file with the default settings."""
    from pathlib import Path

    from userlink.cli._config_cmd import cmd_config_init
    from userlink.core.exceptions import ConfigError

    root_path = ctx.find_root().params.get("config_path")
    try:
        code = cmd_config_init(
            path=Path(root_path) if root_path else None, force=force, console=console
        )
    except ConfigError as exc:
        err_console.print(f"[red]Config error:[/red] {exc}")
        code = ExitCode.CONFIG_ERROR
    sys.exit(code)


@config_group.command("path")
@click.pass_context
def config_path_cmd(ctx: click.Context) -> None:
    """Print the config file path."""
    from userlink.core.config import config_file_path

    root_path = ctx.find_root().params.get("config_path")
    click.echo(root_path or str(config_file_path()))


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command()
def version() -> None:
    """Show the userlink version."""
    console.print(f"userlink {__version__}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
