"""Provisioner contract and the registry used to pick one for a machine.

A provisioner knows how to drive one OS family over SSH: manage services
and packages, set the hostname and lay out the docker daemon configuration.
Which provisioner applies is decided by reading ``/etc/os-release`` on the
machine and asking each registered provisioner in order.
"""

from __future__ import annotations

import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar

from dockyard.core.exceptions import (
    ProvisionerAlreadyRegisteredError,
    RemoteCommandError,
    UnknownOSError,
)
from dockyard.core.ssh import SSHManager, SSHResult
from dockyard.drivers.base import Driver
from dockyard.models.options import AuthOptions, DockerConfig, SwarmOptions
from dockyard.models.ssh import SSHTarget, ssh_target_from_driver
from dockyard.utils.logging import get_logger

logger = get_logger("provision")

DEFAULT_COMMAND_TIMEOUT = 600


class ServiceAction(str, Enum):
    START = "start"
    STOP = "stop"
    RESTART = "restart"


class PackageAction(str, Enum):
    INSTALL = "install"
    REMOVE = "remove"
    UPGRADE = "upgrade"


@dataclass
class OsRelease:
    """Parsed contents of ``/etc/os-release``.

    Args:
        id: Lower-case OS identifier (``ubuntu``, ``boot2docker``).
        id_like: Related OS identifiers.
        name: OS name.
        version_id: Version identifier.
        pretty_name: Human-readable name.
        fields: Every key found in the file.
    """

    id: str = ""
    id_like: list[str] = field(default_factory=list)
    name: str = ""
    version_id: str = ""
    pretty_name: str = ""
    fields: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, content: str) -> OsRelease:
        """Parse ``KEY=value`` lines, honouring shell quoting.

        Blank lines, comments and lines without ``=`` are ignored.
        """
        values: dict[str, str] = {}
        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, raw = line.partition("=")
            try:
                parts = shlex.split(raw)
            except ValueError:
                parts = [raw.strip("\"'")]
            values[key.strip()] = " ".join(parts)

        return cls(
            id=values.get("ID", "").lower(),
            id_like=values.get("ID_LIKE", "").split(),
            name=values.get("NAME", ""),
            version_id=values.get("VERSION_ID", ""),
            pretty_name=values.get("PRETTY_NAME", ""),
            fields=values,
        )


class Provisioner(ABC):
    """Drives one OS family over SSH.

    Args:
        driver: The machine's driver, source of its SSH endpoint.
        ssh: Connection manager used for every remote call.
        os_release: Detected OS information.
        command_timeout: Timeout for a single remote command.
    """

    name: ClassVar[str] = ""

    def __init__(
        self,
        driver: Driver,
        ssh: SSHManager,
        os_release: OsRelease | None = None,
        command_timeout: int = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self.driver = driver
        self.ssh = ssh
        self.os_release = os_release or OsRelease()
        self.command_timeout = command_timeout
        self._target: SSHTarget | None = None

    @property
    def target(self) -> SSHTarget:
        if self._target is None:
            self._target = ssh_target_from_driver(self.driver)
        return self._target

    def ssh_command(self, command: str) -> SSHResult:
        """Run ``command`` on the machine.

        Raises:
            RemoteCommandError: If the command exits non-zero.
        """
        result = self.ssh.run(self.target, command, timeout=self.command_timeout)
        if not result.success:
            raise RemoteCommandError(self.target.name, command, result.exit_code, result.output)
        return result

    def write_file(self, path: str, data: bytes, mode: int | None = None) -> None:
        """Write ``data`` to ``path`` on the machine as root.

        Raises:
            RemoteCommandError: If the write fails.
        """
        result = self.ssh.write_file(
            self.target, path, data, mode=mode, timeout=self.command_timeout
        )
        if not result.success:
            raise RemoteCommandError(
                self.target.name, result.command, result.exit_code, result.output
            )

    def hostname(self) -> str:
        return self.ssh_command("hostname").stdout

    @abstractmethod
    def set_hostname(self, hostname: str) -> None: ...

    @abstractmethod
    def service(self, name: str, action: ServiceAction) -> None: ...

    @abstractmethod
    def package(self, name: str, action: PackageAction) -> None: ...

    @abstractmethod
    def get_docker_config_dir(self) -> str: ...

    @abstractmethod
    def generate_docker_config(self, docker_port: int, auth: AuthOptions) -> DockerConfig: ...

    @abstractmethod
    def compatible_with_host(self) -> bool: ...

    def provision(self, swarm: SwarmOptions, auth: AuthOptions) -> None:
        """Bring the machine to a TLS-secured docker engine.

        Steps run in order and the first failure aborts: set hostname,
        install docker, configure TLS, join the swarm.
        """
        from dockyard.provision.generic import (
            configure_auth,
            configure_swarm,
            install_docker_generic,
        )

        logger.info(f"Provisioning {self.driver.get_machine_name()} with {self.name}")
        self.set_hostname(self.driver.get_machine_name())
        install_docker_generic(self)
        configure_auth(self, auth)
        configure_swarm(self, swarm)


class ProvisionerRegistry:
    """Ordered name to provisioner-class mapping.

    Detection asks provisioners in registration order, so more specific
    ones should be registered first.
    """

    def __init__(self) -> None:
        self._provisioners: dict[str, type[Provisioner]] = {}

    def register(self, name: str, provisioner_cls: type[Provisioner]) -> None:
        if name in self._provisioners:
            raise ProvisionerAlreadyRegisteredError(name)
        self._provisioners[name] = provisioner_cls

    def names(self) -> list[str]:
        return list(self._provisioners)

    def detect(
        self,
        driver: Driver,
        ssh: SSHManager,
        command_timeout: int = DEFAULT_COMMAND_TIMEOUT,
    ) -> Provisioner:
        """Pick the provisioner for a machine from its ``/etc/os-release``.

        Raises:
            UnknownOSError: If no registered provisioner is compatible.
            RemoteCommandError: If os-release cannot be read.
        """
        target = ssh_target_from_driver(driver)
        result = ssh.run(target, "cat /etc/os-release", timeout=command_timeout)
        if not result.success:
            raise RemoteCommandError(target.name, result.command, result.exit_code, result.output)

        os_release = OsRelease.parse(result.stdout)
        logger.debug(f"Detected OS {os_release.id or 'unknown'} on {target.name}")

        for name, provisioner_cls in self._provisioners.items():
            provisioner = provisioner_cls(driver, ssh, os_release, command_timeout)
            provisioner._target = target
            if provisioner.compatible_with_host():
                logger.debug(f"Using provisioner {name} for {target.name}")
                return provisioner

        raise UnknownOSError(os_release.id or None)


def default_provisioners() -> ProvisionerRegistry:
    """Build a registry with the built-in provisioners."""
    from dockyard.provision.boot2docker import Boot2DockerProvisioner
    from dockyard.provision.ubuntu import UbuntuProvisioner

    registry = ProvisionerRegistry()
    registry.register(Boot2DockerProvisioner.name, Boot2DockerProvisioner)
    registry.register(UbuntuProvisioner.name, UbuntuProvisioner)
    return registry
