"""Main CLI entry point for dockyard.

This module defines the main CLI group and global options that are
shared across all commands.
"""

from __future__ import annotations

import os
import sys
import traceback
from pathlib import Path

import click
from rich.console import Console

from dockyard import __version__
from dockyard.cli.context import Context, pass_context
from dockyard.cli.create import create
from dockyard.cli.machines import (
    active,
    config,
    env,
    inspect,
    ip,
    kill,
    ls,
    regenerate_certs,
    restart,
    rm,
    ssh,
    start,
    stop,
    upgrade,
    url,
)
from dockyard.cli.settings import settings
from dockyard.core.config import ConfigManager, get_default_config_path
from dockyard.core.exceptions import DockyardError
from dockyard.utils.logging import configure_logging
from dockyard.utils.output import error_console, print_error


def version_callback(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
    """Print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    console = Console()
    console.print(f"dockyard version [cyan]{__version__}[/cyan]")
    ctx.exit()


@click.group()
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Increase verbosity (-v, -vv, -vvv for more).",
)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Show full error tracebacks.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(),
    envvar="DOCKYARD_CONFIG",
    help=f"Path to config file (default: {get_default_config_path()}).",
)
@click.option(
    "--storage-path",
    "-s",
    type=click.Path(),
    envvar="MACHINE_STORAGE_PATH",
    help="Directory holding machine state (default: ~/.docker/machines).",
)
@click.option(
    "--version",
    is_flag=True,
    callback=version_callback,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@pass_context
@click.pass_context
def cli(
    click_ctx: click.Context,
    ctx: Context,
    verbose: int,
    debug: bool,
    config_path: str | None,
    storage_path: str | None,
) -> None:
    """dockyard - Create and manage Docker hosts.

    Creates machines with a driver, installs a TLS-secured Docker engine
    on them and manages their lifecycle. Commands that take an optional
    NAME act on the active machine when it is omitted.

    Use -v, -vv, or -vvv for increasing levels of verbosity.

    Examples:

        # Create a machine on an existing server

        $ dockyard create generic web-1 --generic-ip-address 10.0.0.5 \\
            --generic-ssh-key ~/.ssh/id_rsa

        # List machines

        $ dockyard ls

        # Point the docker client at a machine

        $ eval "$(dockyard env web-1)"
    """
    ctx.verbose = verbose
    ctx.debug = debug
    ctx.storage_path = storage_path

    if config_path:
        ctx.config = ConfigManager(Path(config_path))
    config_manager = ctx.init_config()

    log_config = config_manager.config.logging
    configure_logging(
        verbosity=verbose,
        log_file=log_config.file,
        log_level=None if verbose else log_config.level,
    )

    click_ctx.call_on_close(ctx.cleanup)


# Register subcommands
cli.add_command(create)
cli.add_command(ls)
cli.add_command(active)
cli.add_command(config)
cli.add_command(env)
cli.add_command(inspect)
cli.add_command(ip)
cli.add_command(url)
cli.add_command(start)
cli.add_command(stop)
cli.add_command(restart)
cli.add_command(kill)
cli.add_command(upgrade)
cli.add_command(rm)
cli.add_command(ssh)
cli.add_command(regenerate_certs)
cli.add_command(settings)


def _debug_enabled() -> bool:
    return bool(os.environ.get("DOCKYARD_DEBUG")) or "--debug" in sys.argv


def main() -> None:
    """Main entry point with error handling."""
    try:
        cli(standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        error_console.print("\n[dim]Aborted[/dim]")
        sys.exit(1)
    except DockyardError as e:
        if _debug_enabled():
            traceback.print_exc()
        print_error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        error_console.print("\n[dim]Interrupted[/dim]")
        sys.exit(130)
    except Exception as e:
        if _debug_enabled():
            traceback.print_exc()
        else:
            print_error(f"Unexpected error: {e}")
            error_console.print("[dim]Use --debug for full traceback[/dim]")
        sys.exit(1)


if __name__ == "__main__":
    main()
