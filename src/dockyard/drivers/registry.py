"""Driver registry.

A :class:`DriverRegistry` maps driver names to driver classes. Callers own
their registry instance; :func:`default_registry` builds one holding the
built-in drivers.
"""

from __future__ import annotations

from pathlib import Path

from dockyard.core.exceptions import DriverAlreadyRegisteredError, UnknownDriverError
from dockyard.drivers.base import Driver
from dockyard.models.options import DriverFlag
from dockyard.utils.logging import get_logger

logger = get_logger("drivers.registry")


class DriverRegistry:
    """Name to driver-class mapping.

    Example:
        >>> registry = DriverRegistry()
        >>> registry.register("generic", GenericDriver)
        >>> driver = registry.new_driver("generic", "web-1", "/tmp/web-1", "", "")
    """

    def __init__(self) -> None:
        self._drivers: dict[str, type[Driver]] = {}

    def register(self, name: str, driver_cls: type[Driver]) -> None:
        """Register a driver class under ``name``.

        Raises:
            DriverAlreadyRegisteredError: If the name is already taken.
        """
        if name in self._drivers:
            raise DriverAlreadyRegisteredError(name)
        self._drivers[name] = driver_cls
        logger.debug(f"Registered driver {name}")

    def __contains__(self, name: object) -> bool:
        return name in self._drivers

    def driver_class(self, name: str) -> type[Driver]:
        """Look up a driver class.

        Raises:
            UnknownDriverError: If ``name`` is not registered.
        """
        try:
            return self._drivers[name]
        except KeyError:
            raise UnknownDriverError(name, self.driver_names()) from None

    def new_driver(
        self,
        name: str,
        machine_name: str,
        store_path: str | Path,
        ca_cert_path: str | Path,
        private_key_path: str | Path,
    ) -> Driver:
        """Construct a fresh driver for a new machine.

        Args:
            name: Registered driver name.
            machine_name: Name of the machine.
            store_path: The machine's store directory.
            ca_cert_path: CA certificate path.
            private_key_path: CA private key path.

        Returns:
            An unconfigured driver instance.

        Raises:
            UnknownDriverError: If ``name`` is not registered.
        """
        driver_cls = self.driver_class(name)
        driver = driver_cls(
            machine_name=machine_name,
            ca_cert_path=str(ca_cert_path),
            private_key_path=str(private_key_path),
        )
        driver.set_store_path(store_path)
        return driver

    def driver_names(self) -> list[str]:
        return sorted(self._drivers)

    def create_flags(self) -> list[DriverFlag]:
        """Every registered driver's create flags, sorted by flag name."""
        flags: list[DriverFlag] = []
        for driver_cls in self._drivers.values():
            flags.extend(driver_cls.get_create_flags())
        return sorted(flags, key=lambda flag: flag.name)


def default_registry() -> DriverRegistry:
    """Build a registry with the built-in drivers."""
    from dockyard.drivers.cluster import ClusterDriver
    from dockyard.drivers.generic import GenericDriver
    from dockyard.drivers.rivet import RivetDriver

    registry = DriverRegistry()
    for driver_cls in (ClusterDriver, GenericDriver, RivetDriver):
        registry.register(driver_cls.name, driver_cls)
    return registry
