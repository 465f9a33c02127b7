"""Tests for the generic (existing host) driver."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from dockyard.core.exceptions import (
    DriverError,
    MissingOptionError,
    NotSupportedError,
    UpgradeDeferredError,
)
from dockyard.drivers.generic import GenericDriver
from dockyard.models.options import DriverOptions
from dockyard.models.state import State


@pytest.fixture
def driver(tmp_path: Path) -> GenericDriver:
    key = tmp_path / "id_ed25519"
    key.write_text("PRIVATE KEY")
    driver = GenericDriver(machine_name="web-1", ip_address="10.0.0.5", ssh_key=str(key))
    driver.set_store_path(tmp_path / "machines" / "web-1")
    return driver


class TestGenericDriver:
    def test_flags(self) -> None:
        driver = GenericDriver(machine_name="web-1")

        driver.set_config_from_flags(
            DriverOptions(
                {
                    "generic-ip-address": "10.0.0.5",
                    "generic-ssh-key": "~/.ssh/id_rsa",
                    "generic-ssh-port": 2222,
                }
            )
        )

        assert driver.get_ip() == "10.0.0.5"
        assert driver.get_ssh_username() == "root"
        assert driver.get_ssh_port() == 2222
        assert driver.get_url() == "tcp://10.0.0.5:2376"

    def test_ip_required(self) -> None:
        with pytest.raises(MissingOptionError, match="--generic-ip-address"):
            GenericDriver().set_config_from_flags(DriverOptions(driver_name="generic"))

    def test_missing_key_fails_check(self, driver: GenericDriver, tmp_path: Path) -> None:
        driver.ssh_key = str(tmp_path / "nope")

        with pytest.raises(DriverError, match="SSH key does not exist"):
            driver.pre_create_check()

    def test_create_imports_key(self, driver: GenericDriver) -> None:
        """The key is copied into the machine directory with mode 0600."""
        driver.pre_create_check()
        driver.create()

        key_path = Path(driver.get_ssh_key_path())
        assert key_path.read_text() == "PRIVATE KEY"
        assert key_path.stat().st_mode & 0o777 == 0o600

    @pytest.mark.parametrize(
        ("reachable", "state"), [(True, State.RUNNING), (False, State.STOPPED)]
    )
    def test_state_from_ssh_port(
        self, driver: GenericDriver, reachable: bool, state: State
    ) -> None:
        with patch("dockyard.drivers.generic.is_port_open", return_value=reachable) as mock_port:
            assert driver.get_state() == state

        mock_port.assert_called_once_with("10.0.0.5", 22)

    @pytest.mark.parametrize("operation", ["start", "stop", "restart", "kill"])
    def test_power_not_supported(self, driver: GenericDriver, operation: str) -> None:
        with pytest.raises(NotSupportedError):
            getattr(driver, operation)()

    def test_upgrade_deferred(self, driver: GenericDriver) -> None:
        with pytest.raises(UpgradeDeferredError):
            driver.upgrade()
