"""Driver contract shared by every machine backend.

A driver is a pydantic model: its fields are exactly what gets persisted in
the machine's ``config.json`` under ``driver``. The store path is private
state supplied at construction or load time and is never serialized.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar, Protocol

from pydantic import BaseModel, ConfigDict, PrivateAttr

from dockyard.core.exceptions import UpgradeDeferredError
from dockyard.models.options import DriverFlag, DriverOptions
from dockyard.models.state import State

if TYPE_CHECKING:
    from dockyard.core.host import Host

DEFAULT_DOCKER_PORT = 2376


class HostLookup(Protocol):
    """What a driver may ask of the host store."""

    def get(self, name: str) -> Host: ...


class Driver(BaseModel, ABC):
    """Base class for machine drivers.

    Subclasses set :attr:`name`, declare their persisted fields and
    implement every abstract operation. An operation the backend cannot
    perform raises :class:`NotSupportedError`.

    Attributes:
        name: Registry name of the driver (``generic``, ``rivet``...).
        requires_provisioning: Whether ``Host.create`` waits for SSH and
            provisions docker after the driver's own ``create``.
        waits_for_state: Whether ``Host`` polls for RUNNING or STOPPED after
            a power operation. Drivers that already wait per member, like
            the fleet driver, turn this off.
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    name: ClassVar[str] = ""
    requires_provisioning: ClassVar[bool] = True
    waits_for_state: ClassVar[bool] = True

    machine_name: str = ""
    ca_cert_path: str = ""
    private_key_path: str = ""

    _store_path: str = PrivateAttr(default="")

    def driver_name(self) -> str:
        return self.name

    @property
    def store_path(self) -> str:
        return self._store_path

    def set_store_path(self, path: str | Path) -> None:
        self._store_path = str(path)

    def bind_store(self, store: HostLookup) -> None:
        """Give the driver access to other machines in the store.

        Most drivers ignore this; fleet drivers resolve members through it.
        """

    @classmethod
    def get_create_flags(cls) -> list[DriverFlag]:
        return []

    @abstractmethod
    def set_config_from_flags(self, opts: DriverOptions) -> None:
        """Populate driver fields from create-time options.

        Raises:
            MissingOptionError: If a required option is absent.
        """

    def get_machine_name(self) -> str:
        return self.machine_name

    def get_docker_config_dir(self) -> str:
        return "/etc/docker"

    @abstractmethod
    def get_url(self) -> str: ...

    @abstractmethod
    def get_ip(self) -> str: ...

    @abstractmethod
    def get_state(self) -> State: ...

    def pre_create_check(self) -> None:
        """Validate that creation can succeed before anything is allocated."""

    @abstractmethod
    def create(self) -> None: ...

    @abstractmethod
    def remove(self) -> None: ...

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...

    @abstractmethod
    def restart(self) -> None: ...

    @abstractmethod
    def kill(self) -> None: ...

    def upgrade(self) -> None:
        raise UpgradeDeferredError()

    @abstractmethod
    def get_ssh_hostname(self) -> str: ...

    def get_ssh_port(self) -> int:
        return 22

    def get_ssh_username(self) -> str:
        return "root"

    def get_ssh_key_path(self) -> str:
        return str(Path(self.store_path) / "id_rsa")

    def docker_url(self) -> str:
        """``tcp://<ip>:2376`` for drivers whose engine listens on the default port."""
        return f"tcp://{self.get_ip()}:{DEFAULT_DOCKER_PORT}"
