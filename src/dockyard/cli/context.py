"""CLI context for dockyard.

This module defines the shared context object passed to all CLI commands,
extracted to avoid circular imports.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click

from dockyard.core.config import ConfigManager, StorageConfig
from dockyard.core.provider import Provider
from dockyard.core.ssh import SSHManager
from dockyard.core.store import FilesystemStore
from dockyard.drivers.registry import DriverRegistry, default_registry
from dockyard.provision.base import default_provisioners


class Context:
    """CLI context object passed to all commands.

    Holds shared state including configuration, the SSH manager, the
    driver registry and the machine store, all built on first use.

    Attributes:
        config: ConfigManager instance.
        ssh: SSHManager instance.
        registry: Driver registry.
        store: Machine store.
        provider: Orchestration facade over the store.
        storage_path: Store directory given on the command line.
        verbose: Verbosity level (0-3).
        debug: Whether to show debug tracebacks.
    """

    def __init__(self) -> None:
        self.config: ConfigManager | None = None
        self.ssh: SSHManager | None = None
        self.registry: DriverRegistry | None = None
        self.store: FilesystemStore | None = None
        self.provider: Provider | None = None
        self.storage_path: str | None = None
        self.verbose: int = 0
        self.debug: bool = False

    def init_config(self) -> ConfigManager:
        """Initialize configuration manager.

        Returns:
            ConfigManager instance.
        """
        if self.config is None:
            self.config = ConfigManager()
        return self.config

    def init_ssh(self) -> SSHManager:
        if self.ssh is None:
            self.ssh = SSHManager()
        return self.ssh

    def init_registry(self) -> DriverRegistry:
        if self.registry is None:
            self.registry = default_registry()
        return self.registry

    def storage(self) -> StorageConfig:
        """Storage settings with the command-line store path applied."""
        storage = self.init_config().storage
        if self.storage_path:
            storage = storage.model_copy(update={"path": str(Path(self.storage_path).expanduser())})
        return storage

    def init_store(self) -> FilesystemStore:
        """Initialize the machine store.

        Returns:
            FilesystemStore instance.
        """
        if self.store is None:
            config = self.init_config()
            storage = self.storage()
            self.store = FilesystemStore(
                storage.store_path,
                storage.ca_cert_path,
                storage.ca_key_path,
                self.init_registry(),
                ssh=self.init_ssh(),
                provisioners=default_provisioners(),
                defaults=config.defaults,
            )
        return self.store

    def init_provider(self) -> Provider:
        """Initialize the orchestration facade.

        Returns:
            Provider instance.
        """
        if self.provider is None:
            storage = self.storage()
            self.provider = Provider(
                self.init_store(),
                storage.client_cert_path,
                storage.client_key_path,
                key_bits=self.init_config().defaults.key_bits,
            )
        return self.provider

    def fleet_defaults(self) -> dict[str, Any]:
        """Driver option values taken from the ``fleet`` config section."""
        fleet = self.init_config().fleet
        return {
            "cluster_max_workers": fleet.max_workers,
            "cluster_member_timeout": fleet.member_timeout,
        }

    def cleanup(self) -> None:
        """Clean up resources."""
        if self.ssh:
            self.ssh.close_all()


pass_context = click.make_pass_decorator(Context, ensure=True)
