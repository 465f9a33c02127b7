"""OS provisioners for dockyard."""

from dockyard.provision.base import (
    OsRelease,
    PackageAction,
    Provisioner,
    ProvisionerRegistry,
    ServiceAction,
    default_provisioners,
)

__all__ = [
    "OsRelease",
    "PackageAction",
    "Provisioner",
    "ProvisionerRegistry",
    "ServiceAction",
    "default_provisioners",
]
