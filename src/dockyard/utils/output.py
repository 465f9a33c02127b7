"""Rich terminal output utilities for dockyard.

Machine listings, spinners and the colored one-line status messages
used by every command.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import TYPE_CHECKING

import yaml
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from dockyard.models.state import State

if TYPE_CHECKING:
    from dockyard.core.provider import HostListItem

# Global console instance
console = Console()
error_console = Console(stderr=True)


class OutputFormat(str, Enum):
    """Supported output formats."""

    TABLE = "table"
    JSON = "json"
    YAML = "yaml"


class OutputFormatter:
    """Formats machine data as a table, JSON or YAML.

    Args:
        format_type: Output format to use (table, json, yaml).
        output_console: Rich console instance for output.

    Example:
        >>> formatter = OutputFormatter(OutputFormat.TABLE)
        >>> formatter.print_hosts(provider.list_host_items())
    """

    def __init__(
        self,
        format_type: OutputFormat = OutputFormat.TABLE,
        output_console: Console | None = None,
    ) -> None:
        self.format_type = format_type
        self.console = output_console or console

    def print_hosts(self, items: list[HostListItem]) -> None:
        """Print machine listing rows.

        Args:
            items: Rows from :meth:`Provider.list_host_items`.
        """
        if self.format_type == OutputFormat.JSON:
            data = [item.to_dict() for item in items]
            self.console.print_json(json.dumps(data, indent=2))
        elif self.format_type == OutputFormat.YAML:
            data = [item.to_dict() for item in items]
            self.console.print(yaml.safe_dump(data, default_flow_style=False))
        else:
            self._print_hosts_table(items)

    def _print_hosts_table(self, items: list[HostListItem]) -> None:
        table = Table(show_header=True, box=None, pad_edge=False)
        table.add_column("NAME", style="cyan", no_wrap=True)
        table.add_column("ACTIVE", justify="center")
        table.add_column("DRIVER", style="white")
        table.add_column("STATE")
        table.add_column("URL", style="dim")

        for item in items:
            table.add_row(
                item.name,
                "*" if item.active else "",
                item.driver_name,
                format_state(item.state),
                item.url,
            )

        self.console.print(table)


def format_state(state: State) -> Text:
    """Format a machine state with its color and symbol.

    ``NONE`` renders as an empty cell.
    """
    if state is State.NONE:
        return Text("")
    text = Text(f"{state.symbol} {state.display}")
    text.stylize(state.color)
    return text


def print_success(message: str) -> None:
    """Print a success message.

    Args:
        message: Success message to display.
    """
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message to stderr.

    Args:
        message: Error message to display.
    """
    error_console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message to stderr."""
    error_console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    console.print(f"[blue]ℹ[/blue] {message}")


def create_spinner_progress() -> Progress:
    """Create a simple spinner progress for indeterminate operations.

    The spinner writes to stderr so that command output stays scriptable.

    Returns:
        Progress instance with just spinner and description.
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=error_console,
        transient=True,
    )


def confirm(message: str, default: bool = False) -> bool:
    """Prompt user for confirmation.

    Args:
        message: Question to ask.
        default: Default value if user presses enter.

    Returns:
        True if confirmed, False otherwise.
    """
    suffix = "[Y/n]" if default else "[y/N]"
    response = console.input(f"{message} {suffix} ").strip().lower()

    if not response:
        return default

    return response in ("y", "yes")
