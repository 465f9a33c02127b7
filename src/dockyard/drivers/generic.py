"""Driver for machines that already exist and are reachable over SSH."""

from __future__ import annotations

from pathlib import Path

from dockyard.core.exceptions import DriverError, NotSupportedError
from dockyard.core.ssh import is_port_open
from dockyard.drivers.base import Driver
from dockyard.models.options import DriverFlag, DriverOptions, FlagKind
from dockyard.models.state import State
from dockyard.utils.logging import get_logger
from dockyard.utils.paths import copy_file

logger = get_logger("drivers.generic")


class GenericDriver(Driver):
    """An existing host; dockyard only installs and configures docker on it.

    Power operations are not available since nothing controls the host's
    power state.
    """

    name = "generic"

    ip_address: str = ""
    ssh_user: str = "root"
    ssh_port: int = 22
    ssh_key: str = ""

    @classmethod
    def get_create_flags(cls) -> list[DriverFlag]:
        return [
            DriverFlag("generic-ip-address", "IP address of the machine"),
            DriverFlag("generic-ssh-user", "SSH user", default="root"),
            DriverFlag("generic-ssh-port", "SSH port", kind=FlagKind.INT, default=22),
            DriverFlag("generic-ssh-key", "SSH private key path"),
        ]

    def set_config_from_flags(self, opts: DriverOptions) -> None:
        self.ip_address = opts.require("generic-ip-address")
        self.ssh_key = opts.require("generic-ssh-key")
        self.ssh_user = opts.get_string("generic-ssh-user", "root")
        self.ssh_port = opts.get_int("generic-ssh-port", 22)

    def pre_create_check(self) -> None:
        if not Path(self.ssh_key).expanduser().is_file():
            raise DriverError(
                f"SSH key does not exist: {self.ssh_key}", details={"driver": self.name}
            )

    def create(self) -> None:
        logger.info(f"Importing SSH key for {self.machine_name}")
        copy_file(Path(self.ssh_key).expanduser(), self.get_ssh_key_path())
        Path(self.get_ssh_key_path()).chmod(0o600)

    def remove(self) -> None:
        logger.debug(f"Nothing to remove for generic machine {self.machine_name}")

    def get_ip(self) -> str:
        return self.ip_address

    def get_url(self) -> str:
        return self.docker_url()

    def get_state(self) -> State:
        if is_port_open(self.ip_address, self.ssh_port):
            return State.RUNNING
        return State.STOPPED

    def start(self) -> None:
        raise NotSupportedError(self.name, "start")

    def stop(self) -> None:
        raise NotSupportedError(self.name, "stop")

    def restart(self) -> None:
        raise NotSupportedError(self.name, "restart")

    def kill(self) -> None:
        raise NotSupportedError(self.name, "kill")

    def get_ssh_hostname(self) -> str:
        return self.ip_address

    def get_ssh_port(self) -> int:
        return self.ssh_port

    def get_ssh_username(self) -> str:
        return self.ssh_user
