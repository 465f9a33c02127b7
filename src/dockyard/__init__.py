"""dockyard - create and manage Docker hosts across backends.

dockyard creates machines through pluggable drivers, installs and secures
the Docker engine on them over SSH, and manages their lifecycle, including
fleets of machines driven as one.

Example:
    $ dockyard create generic web-1 --generic-ip-address 10.0.0.5 --generic-ssh-key ~/.ssh/id_rsa
    $ dockyard ls
    $ eval "$(dockyard env web-1)"
"""

__version__ = "0.1.0"

from dockyard.core.exceptions import (
    ConfigurationError,
    DockyardError,
    DriverError,
    HostNotFoundError,
    ProvisionError,
    SSHConnectionError,
)

__all__ = [
    "ConfigurationError",
    "DockyardError",
    "DriverError",
    "HostNotFoundError",
    "ProvisionError",
    "SSHConnectionError",
    "__version__",
]
