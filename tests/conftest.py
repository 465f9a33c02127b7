"""Pytest configuration and fixtures for dockyard tests.

This module provides shared fixtures for testing dockyard components,
including an in-memory driver, a temporary machine store, a mocked SSH
manager and sample configuration files.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import yaml

from dockyard.core.config import DefaultsConfig
from dockyard.core.exceptions import DriverError, HostNotRunningError
from dockyard.core.host import Host
from dockyard.core.ssh import SSHManager, SSHResult
from dockyard.core.store import FilesystemStore
from dockyard.drivers.base import Driver
from dockyard.drivers.cluster import ClusterDriver
from dockyard.drivers.registry import DriverRegistry
from dockyard.models.options import AuthOptions, DriverFlag, DriverOptions, SwarmOptions
from dockyard.models.state import State
from dockyard.provision.base import ProvisionerRegistry


class FakeDriver(Driver):
    """Driver whose backend is its own fields; no network access."""

    name = "fake"
    requires_provisioning = False

    ip_address: str = "10.0.0.5"
    state: State = State.RUNNING
    fail_state: bool = False
    fail_remove: bool = False
    created: bool = False

    @classmethod
    def get_create_flags(cls) -> list[DriverFlag]:
        return [DriverFlag("fake-ip", "IP address")]

    def set_config_from_flags(self, opts: DriverOptions) -> None:
        self.ip_address = opts.require("fake-ip")

    def get_url(self) -> str:
        if self.state != State.RUNNING:
            raise HostNotRunningError(self.machine_name)
        return self.docker_url()

    def get_ip(self) -> str:
        return self.ip_address

    def get_state(self) -> State:
        if self.fail_state:
            raise DriverError("backend unavailable")
        return self.state

    def create(self) -> None:
        self.created = True

    def remove(self) -> None:
        if self.fail_remove:
            raise DriverError("backend refused removal")

    def start(self) -> None:
        self.state = State.RUNNING

    def stop(self) -> None:
        self.state = State.STOPPED

    def restart(self) -> None:
        self.state = State.RUNNING

    def kill(self) -> None:
        self.state = State.STOPPED

    def get_ssh_hostname(self) -> str:
        return self.ip_address


@pytest.fixture
def fake_driver_cls() -> type[FakeDriver]:
    """The in-memory driver class."""
    return FakeDriver


@pytest.fixture
def registry() -> DriverRegistry:
    """Registry holding the fake and cluster drivers."""
    registry = DriverRegistry()
    registry.register("fake", FakeDriver)
    registry.register("cluster", ClusterDriver)
    return registry


@pytest.fixture
def mock_ssh() -> MagicMock:
    """SSH manager whose commands all succeed."""
    ssh = MagicMock(spec=SSHManager)
    ssh.run.side_effect = lambda target, command, **kwargs: SSHResult(
        stdout="", stderr="", exit_code=0, host=target.name, command=command
    )
    ssh.test_connection.return_value = (True, "connected")
    return ssh


@pytest.fixture
def fast_defaults() -> DefaultsConfig:
    """Defaults with short waits so lifecycle tests finish quickly."""
    return DefaultsConfig(
        ssh_max_retries=3,
        ssh_retry_interval=0,
        state_timeout=2,
        state_poll_interval=0.01,
    )


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    return tmp_path / "machines"


@pytest.fixture
def store(
    store_dir: Path,
    registry: DriverRegistry,
    mock_ssh: MagicMock,
    fast_defaults: DefaultsConfig,
) -> FilesystemStore:
    """Empty machine store under a temporary directory."""
    return FilesystemStore(
        store_dir,
        store_dir / ".client" / "ca.pem",
        store_dir / ".client" / "ca-key.pem",
        registry,
        ssh=mock_ssh,
        provisioners=ProvisionerRegistry(),
        defaults=fast_defaults,
    )


@pytest.fixture
def add_host(store: FilesystemStore) -> Callable[..., Host]:
    """Factory that saves a fake-driver machine into the store.

    Keyword arguments set fields on the driver.
    """

    def _add(name: str, driver_name: str = "fake", **fields: Any) -> Host:
        host = store.new_host(
            name,
            driver_name,
            AuthOptions(store_path=str(store.host_path(name))),
            SwarmOptions(),
        )
        for key, value in fields.items():
            setattr(host.driver, key, value)
        host.save_config()
        return host

    return _add


@pytest.fixture
def sample_config_data(tmp_path: Path) -> dict[str, Any]:
    """Sample configuration data."""
    return {
        "storage": {"path": str(tmp_path / "machines")},
        "defaults": {
            "ssh_max_retries": 5,
            "state_timeout": 60,
            "key_bits": 2048,
        },
        "fleet": {"max_workers": 4, "member_timeout": 120},
        "logging": {"level": "ERROR"},
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, sample_config_data: dict[str, Any]) -> Path:
    """Create a temporary config file."""
    config_path = tmp_path / "config.yaml"
    with config_path.open("w") as f:
        yaml.safe_dump(sample_config_data, f)
    return config_path
