"""Data models for dockyard."""

from dockyard.models.options import (
    AuthOptions,
    DockerConfig,
    DriverFlag,
    DriverOptions,
    FlagKind,
    SwarmOptions,
)
from dockyard.models.ssh import SSHTarget, ssh_target_from_driver
from dockyard.models.state import State

__all__ = [
    "AuthOptions",
    "DockerConfig",
    "DriverFlag",
    "DriverOptions",
    "FlagKind",
    "SSHTarget",
    "State",
    "SwarmOptions",
    "ssh_target_from_driver",
]
