"""Orchestration facade over the machine store.

:class:`Provider` sequences machine creation (validate, certificates,
driver, provisioning) and gathers listing data concurrently. Everything
else is delegated to the store.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dockyard.core.certs import setup_machine_certificates
from dockyard.core.exceptions import (
    DockyardError,
    HostExistsError,
    HostNotRunningError,
    NotSupportedError,
)
from dockyard.core.host import Host, validate_host_name
from dockyard.core.store import FilesystemStore
from dockyard.models.options import AuthOptions, DriverOptions, SwarmOptions
from dockyard.models.state import State
from dockyard.utils.logging import get_logger

logger = get_logger("provider")

MAX_LIST_WORKERS = 32


@dataclass
class HostListItem:
    """One row of ``ls`` output.

    Args:
        name: Machine name.
        active: Whether this is the active machine.
        driver_name: Driver the machine uses.
        state: Current state (``ERROR`` when it could not be read).
        url: Engine URL, empty when the machine is not running.
    """

    name: str
    active: bool
    driver_name: str
    state: State
    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "active": self.active,
            "driver": self.driver_name,
            "state": self.state.value,
            "url": self.url,
        }


@dataclass
class MachineConfig:
    """What the docker client needs to talk to a machine."""

    machine_url: str
    ca_cert_path: str
    client_cert_path: str
    client_key_path: str
    client_cert_dir: str

    def tls_args(self) -> str:
        return (
            f"--tls --tlscacert={self.ca_cert_path} --tlscert={self.client_cert_path} "
            f'--tlskey={self.client_key_path} -H="{self.machine_url}"'
        )

    def env_lines(self) -> list[str]:
        return [
            "export DOCKER_TLS_VERIFY=yes",
            f"export DOCKER_CERT_PATH={self.client_cert_dir}",
            f"export DOCKER_HOST={self.machine_url}",
        ]


class Provider:
    """Creates machines and answers questions about them.

    Args:
        store: The machine store.
        client_cert_path: Client certificate path.
        client_key_path: Client private key path.
        key_bits: RSA key size for new certificates.

    Example:
        >>> provider = Provider(store, client_cert, client_key)
        >>> host = provider.create("web-1", "generic", DriverOptions({...}))
        >>> provider.set_active(host)
    """

    def __init__(
        self,
        store: FilesystemStore,
        client_cert_path: str | Path,
        client_key_path: str | Path,
        key_bits: int = 2048,
    ) -> None:
        self.store = store
        self.client_cert_path = Path(client_cert_path)
        self.client_key_path = Path(client_key_path)
        self.key_bits = key_bits

    @property
    def client_cert_dir(self) -> Path:
        return self.client_cert_path.parent

    def auth_options_for(self, name: str) -> AuthOptions:
        return AuthOptions(
            store_path=str(self.store.host_path(name)),
            ca_cert_path=str(self.store.ca_cert_path),
            private_key_path=str(self.store.ca_key_path),
            client_cert_path=str(self.client_cert_path),
            client_key_path=str(self.client_key_path),
            client_cert_dir=str(self.client_cert_dir),
        )

    def setup_certificates(self) -> None:
        setup_machine_certificates(
            self.store.ca_cert_path,
            self.store.ca_key_path,
            self.client_cert_path,
            self.client_key_path,
            machine_dir=self.store.path,
            bits=self.key_bits,
        )

    def create(
        self,
        name: str,
        driver_name: str,
        driver_options: DriverOptions,
        swarm_options: SwarmOptions | None = None,
    ) -> Host:
        """Create, provision and persist a new machine.

        Raises:
            InvalidHostNameError: If ``name`` has invalid characters.
            HostExistsError: If the name is taken.
            UnknownDriverError: If the driver is not registered.
            MissingOptionError: If a required driver option is missing.
            DockyardError: From any later step; the machine may be partially
                created at that point.
        """
        validate_host_name(name)
        if self.store.exists(name):
            raise HostExistsError(name)

        self.setup_certificates()

        host = self.store.new_host(
            name, driver_name, self.auth_options_for(name), swarm_options or SwarmOptions()
        )
        host.driver.set_config_from_flags(driver_options)
        host.create()
        return host

    def exists(self, name: str) -> bool:
        return self.store.exists(name)

    def get(self, name: str) -> Host:
        return self.store.get(name)

    def list(self) -> list[Host]:
        return self.store.list()

    def get_active(self) -> Host | None:
        return self.store.get_active()

    def set_active(self, host: Host | str) -> None:
        self.store.set_active(host)

    def is_active(self, host: Host | str) -> bool:
        return self.store.is_active(host)

    def remove(self, name: str, force: bool = False) -> None:
        self.store.remove(name, force)

    def _host_list_item(self, name: str) -> HostListItem:
        try:
            host = self.store.get(name)
        except DockyardError as e:
            logger.error(f"error loading host {name}: {e}")
            return HostListItem(name=name, active=False, driver_name="", state=State.ERROR)

        try:
            state = host.get_state()
        except DockyardError as e:
            logger.error(f"error getting state for host {name}: {e}")
            state = State.ERROR

        url = ""
        try:
            url = host.get_url()
        except (HostNotRunningError, NotSupportedError):
            pass
        except DockyardError as e:
            logger.error(f"error getting URL for host {name}: {e}")

        return HostListItem(
            name=name,
            active=self.store.is_active(name),
            driver_name=host.driver_name,
            state=state,
            url=url,
        )

    def list_host_items(self) -> list[HostListItem]:
        """Query every machine concurrently, one task per machine.

        Returns:
            Items sorted case-insensitively by name.
        """
        names = self.store.names()
        if not names:
            return []

        items: list[HostListItem] = []
        with ThreadPoolExecutor(max_workers=min(len(names), MAX_LIST_WORKERS)) as executor:
            futures = [executor.submit(self._host_list_item, name) for name in names]
            for future in as_completed(futures):
                items.append(future.result())

        return sorted(items, key=lambda item: item.name.lower())

    def machine_config(self, name: str | None = None) -> MachineConfig:
        """Client TLS paths and engine URL for a machine.

        Args:
            name: Machine name; the active machine when omitted.

        Raises:
            HostNotFoundError: If the machine does not exist.
        """
        host = self.resolve(name)
        return MachineConfig(
            machine_url=host.get_url(),
            ca_cert_path=str(self.client_cert_dir / "ca.pem"),
            client_cert_path=str(self.client_cert_path),
            client_key_path=str(self.client_key_path),
            client_cert_dir=str(self.client_cert_dir),
        )

    def resolve(self, name: str | None = None) -> Host:
        """The named machine, or the active one when ``name`` is empty.

        Raises:
            HostNotFoundError: If there is no such machine or no active one.
        """
        if name:
            return self.store.get(name)
        host = self.store.get_active()
        if host is None:
            raise DockyardError("No active host. Specify a machine name or set one with 'active'.")
        return host
