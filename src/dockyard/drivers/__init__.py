"""Machine drivers for dockyard."""

from dockyard.drivers.base import Driver
from dockyard.drivers.registry import DriverRegistry, default_registry

__all__ = [
    "Driver",
    "DriverRegistry",
    "default_registry",
]
