"""Configuration file commands for dockyard.

This module provides CLI commands for viewing and initializing the
dockyard configuration file.
"""

from __future__ import annotations

import json

import click
import yaml

from dockyard.cli.context import Context, pass_context
from dockyard.core.config import ConfigManager
from dockyard.core.exceptions import ConfigurationError
from dockyard.utils.output import console, print_error, print_info, print_success


@click.group()
def settings() -> None:
    """Manage dockyard configuration.

    Commands for viewing and initializing the configuration file.
    """


@settings.command("show")
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    help="Output format.",
)
@pass_context
def settings_show(ctx: Context, fmt: str) -> None:
    """Show current configuration.

    Values not set in the file are shown with their defaults, along with
    the storage paths they resolve to.

    Examples:

        $ dockyard settings show

        $ dockyard settings show --format json
    """
    config_manager = ctx.init_config()
    data = config_manager.to_dict()

    storage = ctx.storage()
    data["resolved_paths"] = {
        "store": str(storage.store_path),
        "ca_cert": str(storage.ca_cert_path),
        "ca_key": str(storage.ca_key_path),
        "client_cert": str(storage.client_cert_path),
        "client_key": str(storage.client_key_path),
    }

    if fmt == "json":
        console.print_json(json.dumps(data, indent=2, default=str))
    else:
        console.print(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))

    console.print(f"\n[dim]Config file: {config_manager.path}[/dim]")


@settings.command("init")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing configuration.",
)
@pass_context
def settings_init(ctx: Context, force: bool) -> None:
    """Create a default configuration file.

    Examples:

        $ dockyard settings init

        $ dockyard settings init --force
    """
    config_path = ctx.init_config().path

    if config_path.exists() and not force:
        print_error(f"Configuration already exists: {config_path}")
        print_info("Use --force to overwrite.")
        raise SystemExit(1)

    try:
        path = ConfigManager.create_example_config(config_path)
    except (OSError, ConfigurationError) as e:
        print_error(f"Failed to create configuration: {e}")
        raise SystemExit(1) from e

    print_success(f"Created configuration at: {path}")


@settings.command("path")
@pass_context
def settings_path(ctx: Context) -> None:
    """Show the configuration file path.

    Examples:

        $ dockyard settings path
    """
    path = ctx.init_config().path
    console.print(str(path))

    if path.exists():
        console.print("[dim](file exists)[/dim]")
    else:
        console.print("[dim](file does not exist)[/dim]")
