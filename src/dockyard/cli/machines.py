"""Machine commands for dockyard.

Listing, inspection, the docker client helpers (``config`` and ``env``)
and lifecycle operations. Commands taking an optional NAME fall back to
the active machine.
"""

from __future__ import annotations

import os

import click

from dockyard.cli.context import Context, pass_context
from dockyard.core.exceptions import DockyardError
from dockyard.core.ssh import ssh_command_args
from dockyard.utils.output import (
    OutputFormat,
    OutputFormatter,
    confirm,
    create_spinner_progress,
    print_error,
    print_info,
    print_success,
)

timeout_option = click.option(
    "--timeout",
    "-t",
    type=float,
    default=None,
    help="Seconds to wait for the machine to reach its new state (default: from config).",
)


@click.command("ls")
@click.option("--quiet", "-q", is_flag=True, help="Only show machine names.")
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["table", "json", "yaml"]),
    default="table",
    help="Output format.",
)
@pass_context
def ls(ctx: Context, quiet: bool, fmt: str) -> None:
    """List machines.

    Every machine's state is queried concurrently.

    Examples:

        $ dockyard ls

        $ dockyard ls -q
    """
    provider = ctx.init_provider()

    if quiet:
        for name in provider.store.names():
            click.echo(name)
        return

    items = provider.list_host_items()
    if not items:
        print_info("No machines found")
        return

    OutputFormatter(OutputFormat(fmt)).print_hosts(items)


@click.command("active")
@click.argument("name", required=False)
@pass_context
def active(ctx: Context, name: str | None) -> None:
    """Print or set the active machine.

    Without NAME, prints the active machine's name. With NAME, makes it
    the active machine.

    Examples:

        $ dockyard active

        $ dockyard active web-1
    """
    provider = ctx.init_provider()
    try:
        if name:
            provider.set_active(name)
            print_success(f"Active machine is now '{name}'")
            return
        host = provider.get_active()
    except DockyardError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    if host is not None:
        click.echo(host.name)


@click.command("config")
@click.argument("name", required=False)
@pass_context
def config(ctx: Context, name: str | None) -> None:
    """Print docker client TLS flags for a machine.

    Examples:

        $ docker $(dockyard config web-1) ps
    """
    try:
        machine_config = ctx.init_provider().machine_config(name)
    except DockyardError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    click.echo(machine_config.tls_args())


@click.command("env")
@click.argument("name", required=False)
@pass_context
def env(ctx: Context, name: str | None) -> None:
    """Print shell exports pointing docker at a machine.

    Examples:

        $ eval "$(dockyard env web-1)"
    """
    try:
        machine_config = ctx.init_provider().machine_config(name)
    except DockyardError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    for line in machine_config.env_lines():
        click.echo(line)


@click.command("inspect")
@click.argument("name", required=False)
@pass_context
def inspect(ctx: Context, name: str | None) -> None:
    """Print a machine's stored configuration as JSON."""
    try:
        host = ctx.init_provider().resolve(name)
    except DockyardError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    click.echo(host.to_config().model_dump_json(indent=4))


@click.command("ip")
@click.argument("name", required=False)
@pass_context
def ip(ctx: Context, name: str | None) -> None:
    """Print a machine's IP address."""
    try:
        address = ctx.init_provider().resolve(name).driver.get_ip()
    except DockyardError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    click.echo(address)


@click.command("url")
@click.argument("name", required=False)
@pass_context
def url(ctx: Context, name: str | None) -> None:
    """Print a machine's docker engine URL."""
    try:
        machine_url = ctx.init_provider().resolve(name).get_url()
    except DockyardError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    click.echo(machine_url)


def _run_lifecycle(ctx: Context, name: str | None, action: str, timeout: float | None) -> None:
    """Resolve a machine and run one lifecycle method under a spinner."""
    try:
        host = ctx.init_provider().resolve(name)
        with create_spinner_progress() as progress:
            progress.add_task(f"Running {action} on '{host.name}'...", total=None)
            getattr(host, action)(state_timeout=timeout)
    except DockyardError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    print_success(f"Machine '{host.name}': {action} complete")


@click.command("start")
@click.argument("name", required=False)
@timeout_option
@pass_context
def start(ctx: Context, name: str | None, timeout: float | None) -> None:
    """Start a machine and wait until it is running.

    Examples:

        $ dockyard start web-1

        $ dockyard start web-1 --timeout 120
    """
    _run_lifecycle(ctx, name, "start", timeout)


@click.command("stop")
@click.argument("name", required=False)
@timeout_option
@pass_context
def stop(ctx: Context, name: str | None, timeout: float | None) -> None:
    """Stop a machine and wait until it is stopped."""
    _run_lifecycle(ctx, name, "stop", timeout)


@click.command("restart")
@click.argument("name", required=False)
@timeout_option
@pass_context
def restart(ctx: Context, name: str | None, timeout: float | None) -> None:
    """Stop then start a machine."""
    _run_lifecycle(ctx, name, "restart", timeout)


@click.command("kill")
@click.argument("name", required=False)
@timeout_option
@pass_context
def kill(ctx: Context, name: str | None, timeout: float | None) -> None:
    """Forcefully stop a machine."""
    _run_lifecycle(ctx, name, "kill", timeout)


@click.command("upgrade")
@click.argument("name", required=False)
@pass_context
def upgrade(ctx: Context, name: str | None) -> None:
    """Upgrade the docker engine on a machine."""
    try:
        ctx.init_provider().resolve(name).upgrade()
    except DockyardError as e:
        print_error(str(e))
        raise SystemExit(1) from e


@click.command("rm")
@click.argument("names", nargs=-1, required=True)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Remove local state even if the driver fails to remove the machine.",
)
@pass_context
def rm(ctx: Context, names: tuple[str, ...], force: bool) -> None:
    """Remove one or more machines.

    Each machine is removed from its backend and then from the local store.

    Examples:

        $ dockyard rm web-1 web-2

        $ dockyard rm -f web-1
    """
    provider = ctx.init_provider()
    failed = False

    for name in names:
        try:
            provider.remove(name, force=force)
            print_success(f"Removed machine '{name}'")
        except DockyardError as e:
            print_error(f"Error removing machine {name}: {e}")
            failed = True

    if failed:
        print_error(
            "There was an error removing a machine. To force remove it, pass the -f option. "
            "Warning: this might leave it running on the provider."
        )
        raise SystemExit(1)


@click.command("ssh", context_settings={"ignore_unknown_options": True})
@click.argument("name")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
@pass_context
def ssh(ctx: Context, name: str, command: tuple[str, ...]) -> None:
    """Log into a machine or run a command on it.

    Replaces this process with the system ``ssh`` client.

    Examples:

        $ dockyard ssh web-1

        $ dockyard ssh web-1 -- docker ps
    """
    try:
        target = ctx.init_provider().get(name).get_ssh_target()
    except DockyardError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    args = ssh_command_args(target, list(command))
    ctx.cleanup()
    os.execvp(args[0], args)


@click.command("regenerate-certs")
@click.argument("names", nargs=-1, required=True)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@pass_context
def regenerate_certs(ctx: Context, names: tuple[str, ...], yes: bool) -> None:
    """Issue new TLS server certificates for machines.

    The docker engine on each machine is restarted with the new certificate.

    Examples:

        $ dockyard regenerate-certs web-1 --yes
    """
    if not yes and not confirm("Regenerate TLS machine certs? Warning: this is irreversible."):
        print_info("Cancelled")
        return

    provider = ctx.init_provider()
    for name in names:
        try:
            host = provider.get(name)
            with create_spinner_progress() as progress:
                progress.add_task(f"Regenerating certificates for '{name}'...", total=None)
                host.configure_auth()
        except DockyardError as e:
            print_error(f"Error regenerating certificates for {name}: {e}")
            raise SystemExit(1) from e

        print_success(f"Regenerated certificates for '{name}'")
