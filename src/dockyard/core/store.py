"""On-disk machine store.

Layout::

    <path>/<name>/config.json   one directory per machine
    <path>/.active              name of the active machine
    <path>/.client/             CA and client certificate (default location)

Directories starting with a dot are never machines.
"""

from __future__ import annotations

from pathlib import Path

from dockyard.core.config import DefaultsConfig
from dockyard.core.exceptions import HostNotFoundError
from dockyard.core.host import CONFIG_FILE, Host
from dockyard.core.ssh import SSHManager
from dockyard.drivers.registry import DriverRegistry
from dockyard.models.options import AuthOptions, SwarmOptions
from dockyard.provision.base import ProvisionerRegistry
from dockyard.utils.logging import get_logger

logger = get_logger("store")

ACTIVE_FILE = ".active"


class FilesystemStore:
    """Machines kept as directories under ``path``.

    Every host handed out has its driver bound to this store, so fleet
    drivers can resolve their members.

    Args:
        path: Store directory.
        ca_cert_path: CA certificate used for new machines.
        ca_key_path: CA private key used for new machines.
        registry: Driver registry for decoding machines.
        ssh: Shared SSH connection manager.
        provisioners: Provisioner registry handed to every host.
        defaults: Retry counts and timeouts handed to every host.
    """

    def __init__(
        self,
        path: str | Path,
        ca_cert_path: str | Path,
        ca_key_path: str | Path,
        registry: DriverRegistry,
        ssh: SSHManager | None = None,
        provisioners: ProvisionerRegistry | None = None,
        defaults: DefaultsConfig | None = None,
    ) -> None:
        self.path = Path(path)
        self.ca_cert_path = Path(ca_cert_path)
        self.ca_key_path = Path(ca_key_path)
        self.registry = registry
        self.ssh = ssh or SSHManager()
        self.provisioners = provisioners
        self.defaults = defaults or DefaultsConfig()

    def host_path(self, name: str) -> Path:
        return self.path / name

    def _host_kwargs(self) -> dict:
        return {"ssh": self.ssh, "provisioners": self.provisioners, "defaults": self.defaults}

    def exists(self, name: str) -> bool:
        return self.host_path(name).exists()

    def new_host(
        self,
        name: str,
        driver_name: str,
        auth_options: AuthOptions,
        swarm_options: SwarmOptions,
    ) -> Host:
        """Build an unsaved host with a fresh driver bound to this store.

        Raises:
            UnknownDriverError: If ``driver_name`` is not registered.
        """
        store_path = self.host_path(name)
        driver = self.registry.new_driver(
            driver_name, name, store_path, auth_options.ca_cert_path, auth_options.private_key_path
        )
        driver.bind_store(self)
        return Host(
            name=name,
            driver=driver,
            store_path=store_path,
            auth_options=auth_options,
            swarm_options=swarm_options,
            **self._host_kwargs(),
        )

    def load(self, name: str) -> Host:
        """Load a machine by name.

        Raises:
            HostNotFoundError: If no such machine exists.
        """
        host = Host.load(name, self.host_path(name), self.registry, **self._host_kwargs())
        host.driver.bind_store(self)
        return host

    def get(self, name: str) -> Host:
        return self.load(name)

    def names(self) -> list[str]:
        """Names of every stored machine, sorted."""
        if not self.path.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.path.iterdir()
            if entry.is_dir() and not entry.name.startswith(".") and (entry / CONFIG_FILE).is_file()
        )

    def list(self) -> list[Host]:
        return [self.load(name) for name in self.names()]

    def _active_path(self) -> Path:
        return self.path / ACTIVE_FILE

    def get_active(self) -> Host | None:
        """The active machine, or None when none is set or it is gone."""
        active_path = self._active_path()
        if not active_path.is_file():
            return None
        name = active_path.read_text().strip()
        if not name or not self.exists(name):
            return None
        return self.load(name)

    def set_active(self, host: Host | str) -> None:
        """Mark a machine as active.

        Raises:
            HostNotFoundError: If the machine does not exist.
        """
        name = host if isinstance(host, str) else host.name
        if not self.exists(name):
            raise HostNotFoundError(name)
        self.path.mkdir(parents=True, exist_ok=True)
        self._active_path().write_text(name)
        logger.debug(f"Active machine is now {name}")

    def remove_active(self) -> None:
        self._active_path().unlink(missing_ok=True)

    def is_active(self, host: Host | str) -> bool:
        name = host if isinstance(host, str) else host.name
        active_path = self._active_path()
        return active_path.is_file() and active_path.read_text().strip() == name

    def remove(self, name: str, force: bool = False) -> None:
        """Remove a machine from its backend and from the store.

        Raises:
            HostNotFoundError: If the machine does not exist.
        """
        host = self.load(name)
        was_active = self.is_active(name)
        host.remove(force)
        if was_active:
            self.remove_active()
