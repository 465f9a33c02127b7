"""Machine entity and lifecycle.

A :class:`Host` ties a name to its driver, TLS options and swarm options,
and sequences the driver calls that make up create, start, stop, kill,
restart and remove. State is never cached: every query goes to the driver.

Each machine is persisted as ``<store_path>/config.json``. The record is
decoded in two passes: the first reads only ``driver_name``, which selects
the driver class from the registry; the second validates the ``driver``
section into that class.
"""

from __future__ import annotations

import re
import shutil
import threading
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dockyard.core.config import DefaultsConfig
from dockyard.core.exceptions import (
    ConfigurationError,
    DockyardError,
    HostNotFoundError,
    InvalidHostNameError,
    LifecycleError,
    OperationCancelledError,
    StateTimeoutError,
    TooManyRetriesError,
)
from dockyard.core.ssh import SSHManager, SSHResult, is_port_open
from dockyard.drivers.base import Driver
from dockyard.drivers.registry import DriverRegistry
from dockyard.models.options import AuthOptions, SwarmOptions
from dockyard.models.ssh import SSHTarget, ssh_target_from_driver
from dockyard.models.state import State
from dockyard.provision.base import Provisioner, ProvisionerRegistry, default_provisioners
from dockyard.utils.logging import get_logger
from dockyard.utils.retry import poll, wait_until

logger = get_logger("host")

CONFIG_FILE = "config.json"
VALID_HOST_NAME = re.compile(r"^[a-zA-Z0-9\-.]+$")


def validate_host_name(name: str) -> str:
    """Return ``name`` if it only uses letters, digits, ``.`` and ``-``.

    Raises:
        InvalidHostNameError: Otherwise.
    """
    if not VALID_HOST_NAME.match(name):
        raise InvalidHostNameError(name)
    return name


class HostHeader(BaseModel):
    """First decoding pass: just enough to pick the driver class."""

    model_config = ConfigDict(extra="ignore")

    driver_name: str


class HostConfig(BaseModel):
    """The persisted form of a machine.

    Args:
        name: Machine name.
        driver_name: Registry name of the driver; selects how ``driver``
            is decoded.
        driver: The driver's own fields.
        auth_options: TLS paths.
        swarm_options: Swarm settings.
    """

    name: str
    driver_name: str
    driver: dict[str, Any] = Field(default_factory=dict)
    auth_options: AuthOptions = Field(default_factory=AuthOptions)
    swarm_options: SwarmOptions = Field(default_factory=SwarmOptions)


def wait_for_ssh(
    driver: Driver,
    ssh: SSHManager,
    max_retries: int = 60,
    interval: float = 1.0,
) -> None:
    """Wait until a machine accepts SSH and can run ``exit 0``.

    Each attempt resolves the SSH endpoint, probes the port over TCP and
    then runs ``exit 0`` over a fresh connection. Exactly ``max_retries``
    attempts are made, ``interval`` seconds apart.

    Raises:
        TooManyRetriesError: If no attempt succeeds; carries the last error.
    """
    last_error: list[str] = ["no attempt made"]
    machine = driver.get_machine_name()

    def ssh_available() -> bool:
        try:
            target = ssh_target_from_driver(driver)
        except DockyardError as e:
            last_error[0] = f"error getting SSH endpoint: {e}"
            logger.debug(last_error[0])
            return False

        if not is_port_open(target.hostname, target.port):
            last_error[0] = f"{target.hostname}:{target.port} not reachable"
            logger.debug(last_error[0])
            return False

        ok, message = ssh.test_connection(target)
        if not ok:
            last_error[0] = f"error running 'exit 0': {message}"
            logger.debug(last_error[0])
        return ok

    logger.info(f"Waiting for SSH on {machine}...")
    if not poll(ssh_available, max_retries, interval):
        raise TooManyRetriesError(machine, max_retries, last_error[0])


class Host:
    """A named machine and its lifecycle.

    Args:
        name: Machine name.
        driver: The machine's driver.
        store_path: The machine's store directory.
        auth_options: TLS paths.
        swarm_options: Swarm settings.
        ssh: Connection manager for provisioning and ``ssh``.
        provisioners: Registry used to detect the machine's OS.
        defaults: Retry counts and timeouts.
    """

    def __init__(
        self,
        name: str,
        driver: Driver,
        store_path: str | Path,
        auth_options: AuthOptions | None = None,
        swarm_options: SwarmOptions | None = None,
        ssh: SSHManager | None = None,
        provisioners: ProvisionerRegistry | None = None,
        defaults: DefaultsConfig | None = None,
    ) -> None:
        self.name = name
        self.driver = driver
        self.store_path = Path(store_path)
        self.auth_options = auth_options or AuthOptions(store_path=str(store_path))
        self.swarm_options = swarm_options or SwarmOptions()
        self.ssh = ssh or SSHManager()
        self.provisioners = provisioners or default_provisioners()
        self.defaults = defaults or DefaultsConfig()

    def __repr__(self) -> str:
        return f"Host(name={self.name!r}, driver={self.driver_name!r})"

    @property
    def driver_name(self) -> str:
        return self.driver.driver_name()

    @property
    def config_path(self) -> Path:
        return self.store_path / CONFIG_FILE

    def to_config(self) -> HostConfig:
        return HostConfig(
            name=self.name,
            driver_name=self.driver_name,
            driver=self.driver.model_dump(mode="json"),
            auth_options=self.auth_options,
            swarm_options=self.swarm_options,
        )

    def save_config(self) -> None:
        """Write ``config.json`` with mode 0600."""
        self.store_path.mkdir(mode=0o700, parents=True, exist_ok=True)
        self.config_path.write_text(self.to_config().model_dump_json(indent=2))
        self.config_path.chmod(0o600)
        logger.debug(f"Saved config for {self.name}")

    @classmethod
    def load(
        cls,
        name: str,
        store_path: str | Path,
        registry: DriverRegistry,
        **kwargs: Any,
    ) -> Host:
        """Load a machine from its store directory.

        Args:
            name: Machine name.
            store_path: The machine's store directory.
            registry: Driver registry used to decode the driver.
            **kwargs: Passed to the :class:`Host` constructor.

        Raises:
            HostNotFoundError: If the directory does not exist.
            UnknownDriverError: If the recorded driver is not registered.
            ConfigurationError: If ``config.json`` cannot be decoded.
        """
        store_path = Path(store_path)
        if not store_path.is_dir():
            raise HostNotFoundError(name)

        config_path = store_path / CONFIG_FILE
        try:
            data = config_path.read_text()
            header = HostHeader.model_validate_json(data)
            driver_cls = registry.driver_class(header.driver_name)
            record = HostConfig.model_validate_json(data)
            driver = driver_cls.model_validate(record.driver)
        except OSError as e:
            raise ConfigurationError(
                f"Unable to read machine config: {e}", details={"path": str(config_path)}
            ) from e
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid machine config for '{name}': {e}", details={"path": str(config_path)}
            ) from e

        driver.set_store_path(store_path)
        if not driver.machine_name:
            driver.machine_name = name

        return cls(
            name=name,
            driver=driver,
            store_path=store_path,
            auth_options=record.auth_options,
            swarm_options=record.swarm_options,
            **kwargs,
        )

    def get_state(self) -> State:
        return self.driver.get_state()

    def get_url(self) -> str:
        return self.driver.get_url()

    def get_ssh_target(self) -> SSHTarget:
        return ssh_target_from_driver(self.driver)

    def run_ssh(self, command: str) -> SSHResult:
        return self.ssh.run(self.get_ssh_target(), command, timeout=self.defaults.command_timeout)

    def detect_provisioner(self) -> Provisioner:
        return self.provisioners.detect(self.driver, self.ssh, self.defaults.command_timeout)

    def create(self) -> None:
        """Create the machine and, when the driver needs it, provision docker.

        The config is saved right after the driver's create, so a machine
        that fails to provision can still be inspected and removed.
        """
        self.driver.pre_create_check()
        self.store_path.mkdir(mode=0o700, parents=True, exist_ok=True)

        logger.info(f"Creating machine {self.name} with driver {self.driver_name}")
        self.driver.create()
        self.save_config()

        if not self.driver.requires_provisioning:
            return

        wait_for_ssh(
            self.driver,
            self.ssh,
            max_retries=self.defaults.ssh_max_retries,
            interval=self.defaults.ssh_retry_interval,
        )
        provisioner = self.detect_provisioner()
        provisioner.provision(self.swarm_options, self.auth_options)
        self.save_config()

    def configure_auth(self) -> None:
        """Issue a new server certificate and restart docker with it."""
        from dockyard.provision.generic import configure_auth

        configure_auth(self.detect_provisioner(), self.auth_options)
        self.save_config()

    def wait_for_state(
        self,
        desired: State,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """Poll the driver until it reports ``desired``.

        Query errors count as "not yet" and are logged at debug level.

        Raises:
            StateTimeoutError: If the deadline passes first.
            OperationCancelledError: If ``cancel`` is set first.
        """
        timeout = self.defaults.state_timeout if timeout is None else timeout

        def in_state() -> bool:
            try:
                return self.driver.get_state() == desired
            except DockyardError as e:
                logger.debug(f"Error getting machine state: {e}")
                return False

        if wait_until(in_state, timeout, self.defaults.state_poll_interval, cancel):
            return
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError(self.name)
        raise StateTimeoutError(self.name, desired.value, timeout)

    def start(
        self, state_timeout: float | None = None, cancel: threading.Event | None = None
    ) -> None:
        self.driver.start()
        self.save_config()
        if self.driver.waits_for_state:
            self.wait_for_state(State.RUNNING, state_timeout, cancel)

    def stop(
        self, state_timeout: float | None = None, cancel: threading.Event | None = None
    ) -> None:
        self.driver.stop()
        self.save_config()
        if self.driver.waits_for_state:
            self.wait_for_state(State.STOPPED, state_timeout, cancel)

    def kill(
        self, state_timeout: float | None = None, cancel: threading.Event | None = None
    ) -> None:
        self.driver.kill()
        self.save_config()
        if self.driver.waits_for_state:
            self.wait_for_state(State.STOPPED, state_timeout, cancel)

    def restart(
        self, state_timeout: float | None = None, cancel: threading.Event | None = None
    ) -> None:
        self.stop(state_timeout, cancel)
        self.start(state_timeout, cancel)
        self.save_config()

    def upgrade(self) -> None:
        """Upgrade docker on the machine.

        Raises:
            UpgradeDeferredError: Unless the driver fans the upgrade out.
        """
        self.driver.upgrade()
        self.save_config()

    def remove(self, force: bool = False) -> None:
        """Remove the machine from its backend, then delete its store directory.

        Args:
            force: Delete local state even if the backend removal fails.

        Raises:
            DockyardError: From the driver, when ``force`` is False.
            LifecycleError: If the store path is not a directory.
        """
        try:
            self.driver.remove()
        except DockyardError as e:
            if not force:
                raise
            logger.warning(f"Error removing {self.name} from {self.driver_name}, continuing: {e}")

        if not self.store_path.is_dir():
            raise LifecycleError(
                f"'{self.store_path}' is not a directory", details={"host_name": self.name}
            )
        shutil.rmtree(self.store_path)
        logger.info(f"Removed machine {self.name}")
