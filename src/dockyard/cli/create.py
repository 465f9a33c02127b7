"""The ``create`` command group.

One subcommand per registered driver, each carrying the driver's own
flags plus the shared swarm options. Flag values are collected into a
:class:`~dockyard.models.options.DriverOptions` bag for the driver.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import click

from dockyard.cli.context import Context, pass_context
from dockyard.core.exceptions import DockyardError, InvalidInputError
from dockyard.drivers.registry import DriverRegistry, default_registry
from dockyard.models.options import DriverFlag, DriverOptions, FlagKind, SwarmOptions
from dockyard.utils.output import (
    create_spinner_progress,
    print_error,
    print_info,
    print_success,
    print_warning,
)


def swarm_params() -> list[click.Parameter]:
    """Options shared by every create subcommand."""
    return [
        click.Option(["--swarm"], is_flag=True, help="Configure the machine with swarm."),
        click.Option(["--swarm-master"], is_flag=True, help="Make the machine the swarm master."),
        click.Option(
            ["--swarm-discovery"], default="", help="Discovery service to use with swarm."
        ),
        click.Option(["--swarm-addr"], default="", help="Address to advertise for swarm."),
        click.Option(
            ["--swarm-host"],
            default="tcp://0.0.0.0:3376",
            show_default=True,
            help="ip/socket to listen on for the swarm master.",
        ),
        click.Option(
            ["--swarm-image"],
            default="swarm:latest",
            show_default=True,
            help="Swarm image to run.",
        ),
    ]


def flag_to_option(flag: DriverFlag) -> click.Option:
    """Translate a driver flag into a click option.

    Non-boolean options default to None so that values from the config
    file can fill them in; the driver's own default is shown in help.
    """
    decl = [f"--{flag.name}"]
    if flag.kind == FlagKind.BOOL:
        return click.Option(
            decl, is_flag=True, default=bool(flag.default), envvar=flag.envvar, help=flag.usage
        )
    if flag.kind == FlagKind.STRING_SLICE:
        return click.Option(decl, multiple=True, envvar=flag.envvar, help=flag.usage)

    return click.Option(
        decl,
        type=int if flag.kind == FlagKind.INT else str,
        default=None,
        envvar=flag.envvar,
        show_default=str(flag.default) if flag.default not in (None, "") else False,
        help=flag.usage,
    )


def swarm_options_from(values: dict[str, Any]) -> SwarmOptions:
    return SwarmOptions(
        is_swarm=values["swarm"],
        master=values["swarm_master"],
        discovery=values["swarm_discovery"],
        addr=values["swarm_addr"],
        host=values["swarm_host"],
        image=values["swarm_image"],
    )


def _make_callback(driver_name: str) -> Callable[..., None]:
    @pass_context
    def callback(ctx: Context, name: str, **values: Any) -> None:
        swarm_options = swarm_options_from(values)

        option_values = ctx.fleet_defaults()
        option_values.update({k: v for k, v in values.items() if v is not None})
        # Swarm flags are also visible to drivers, which may record them.
        driver_options = DriverOptions(option_values, driver_name=driver_name)

        provider = ctx.init_provider()
        try:
            with create_spinner_progress() as progress:
                progress.add_task(f"Creating machine '{name}' with {driver_name}...", total=None)
                host = provider.create(name, driver_name, driver_options, swarm_options)
            provider.set_active(host)
        except InvalidInputError as e:
            print_error(str(e))
            raise SystemExit(1) from e
        except DockyardError as e:
            print_error(f"Error creating machine: {e}")
            print_warning(
                "You will want to check the provider to make sure the machine "
                "and associated resources were properly removed."
            )
            raise SystemExit(1) from e

        print_success(f"Machine '{name}' has been created and is now the active machine.")
        print_info(
            f'To point your Docker client at it, run in your shell: eval "$(dockyard env {name})"'
        )

    return callback


def build_create_group(registry: DriverRegistry) -> click.Group:
    """Build the ``create`` group with one subcommand per registered driver.

    Args:
        registry: Registry whose drivers and flags become subcommands.

    Returns:
        The click group.
    """
    group = click.Group(
        "create",
        help="Create a machine.\n\nPick a driver subcommand; each has its own flags.",
    )

    for driver_name in registry.driver_names():
        driver_cls = registry.driver_class(driver_name)
        params: list[click.Parameter] = [click.Argument(["name"])]
        params.extend(flag_to_option(flag) for flag in driver_cls.get_create_flags())
        params.extend(swarm_params())

        group.add_command(
            click.Command(
                driver_name,
                callback=_make_callback(driver_name),
                params=params,
                help=f"Create a machine with the {driver_name} driver.",
            )
        )

    return group


create = build_create_group(default_registry())
