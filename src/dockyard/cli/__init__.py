"""CLI module for dockyard.

This package contains all Click command definitions for the dockyard CLI.
"""

from dockyard.cli.main import cli, main

__all__ = ["cli", "main"]
