"""Machine state model for dockyard."""

from __future__ import annotations

from enum import Enum


class State(str, Enum):
    """Lifecycle state reported by a driver.

    ``DEGRADED`` is only produced by fleet drivers whose members disagree;
    ``ERROR`` means the state could not be queried at all.
    """

    NONE = "none"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    DEGRADED = "degraded"
    ERROR = "error"

    @property
    def color(self) -> str:
        """Rich color for this state."""
        colors = {
            State.RUNNING: "green",
            State.STOPPED: "red",
            State.STARTING: "yellow",
            State.DEGRADED: "magenta",
            State.ERROR: "bold red",
            State.NONE: "dim",
        }
        return colors.get(self, "white")

    @property
    def symbol(self) -> str:
        """Unicode status symbol for this state."""
        symbols = {
            State.RUNNING: "●",
            State.STOPPED: "○",
            State.STARTING: "◐",
            State.DEGRADED: "◑",
            State.ERROR: "✗",
            State.NONE: "?",
        }
        return symbols.get(self, "?")

    @property
    def display(self) -> str:
        """Capitalized name used in listings (e.g. ``Running``)."""
        if self is State.NONE:
            return ""
        return self.value.capitalize()
