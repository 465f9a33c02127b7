"""SSH endpoint model for dockyard.

Drivers expose their SSH details through individual accessors; this model
bundles them so that :class:`~dockyard.core.ssh.SSHManager` can open and
pool connections by a stable key.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from dockyard.drivers.base import Driver


class SSHTarget(BaseModel):
    """Where and how to reach a machine over SSH.

    Args:
        name: Machine name, used in log and error messages.
        hostname: IP address or hostname for the SSH connection.
        username: SSH username.
        port: SSH port number.
        ssh_key: Path to the private key file.

    Example:
        >>> target = SSHTarget(
        ...     name="web-1",
        ...     hostname="10.0.0.5",
        ...     username="root",
        ...     ssh_key="~/.docker/machines/web-1/id_rsa",
        ... )
    """

    name: Annotated[str, Field(min_length=1, description="Machine name")]
    hostname: Annotated[str, Field(min_length=1, description="IP address or hostname")]
    username: str | None = Field(default=None, description="SSH username")
    port: Annotated[int, Field(ge=1, le=65535)] = Field(default=22, description="SSH port")
    ssh_key: str | None = Field(default=None, description="Path to SSH private key")

    @field_validator("ssh_key")
    @classmethod
    def expand_ssh_key_path(cls, v: str | None) -> str | None:
        """Expand ~ in SSH key path."""
        if v:
            return str(Path(v).expanduser())
        return None

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.username or ''}@{self.hostname}:{self.port})"

    @property
    def pool_key(self) -> str:
        return f"{self.username}@{self.hostname}:{self.port}"


def ssh_target_from_driver(driver: Driver) -> SSHTarget:
    """Build an :class:`SSHTarget` from a driver's SSH accessors.

    Raises:
        NotSupportedError: If the driver has no SSH endpoint.
    """
    return SSHTarget(
        name=driver.get_machine_name(),
        hostname=driver.get_ssh_hostname(),
        username=driver.get_ssh_username(),
        port=driver.get_ssh_port(),
        ssh_key=driver.get_ssh_key_path() or None,
    )
