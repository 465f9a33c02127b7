"""Core functionality for dockyard.

This package contains configuration management, the SSH layer, the
certificate authority, the machine lifecycle and the machine store.
Import the submodules directly; only configuration and exceptions are
re-exported here.
"""

from dockyard.core.config import Config, ConfigManager
from dockyard.core.exceptions import (
    ConfigurationError,
    DockyardError,
    DriverError,
    HostNotFoundError,
    ProvisionError,
    SSHConnectionError,
)

__all__ = [
    "Config",
    "ConfigManager",
    "ConfigurationError",
    "DockyardError",
    "DriverError",
    "HostNotFoundError",
    "ProvisionError",
    "SSHConnectionError",
]
