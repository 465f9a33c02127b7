"""Configuration management for dockyard.

This module provides a Pydantic-based configuration system that supports:
- YAML configuration files
- Environment variable overrides for the config location
- Default values with validation
- Automatic directory creation

The default config location is ~/.dockyard/config.yaml, which can be
overridden with the DOCKYARD_CONFIG environment variable. Storage paths
left unset fall back to the machine directory layout in
:mod:`dockyard.utils.paths`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, Field, field_validator

from dockyard.core.exceptions import ConfigNotFoundError, ConfigurationError
from dockyard.utils.paths import get_machine_client_cert_dir, get_machine_dir


def get_default_config_path() -> Path:
    """Get the default configuration file path.

    The path can be overridden by setting the DOCKYARD_CONFIG
    environment variable.

    Returns:
        Path to the configuration file.
    """
    env_path = os.environ.get("DOCKYARD_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".dockyard" / "config.yaml"


def get_default_log_path() -> Path:
    return Path.home() / ".dockyard" / "logs" / "dockyard.log"


class LoggingConfig(BaseModel):
    """Logging configuration.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        file: Path to log file (optional).
    """

    level: str = Field(default="WARNING", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


class StorageConfig(BaseModel):
    """Where machines and trust material are stored locally.

    Every path is optional; unset paths resolve under the machine
    directory (``$MACHINE_DIR/.docker/machines`` or the home equivalent).

    Args:
        path: Directory holding one sub-directory per machine.
        ca_cert: CA certificate path.
        ca_key: CA private key path.
        client_cert: Client certificate path.
        client_key: Client private key path.
    """

    path: str | None = Field(default=None, description="Machine store directory")
    ca_cert: str | None = Field(default=None, description="CA certificate")
    ca_key: str | None = Field(default=None, description="CA private key")
    client_cert: str | None = Field(default=None, description="Client certificate")
    client_key: str | None = Field(default=None, description="Client private key")

    @staticmethod
    def _resolve(value: str | None, fallback: Path) -> Path:
        return Path(value).expanduser() if value else fallback

    @property
    def store_path(self) -> Path:
        return self._resolve(self.path, get_machine_dir())

    @property
    def client_cert_dir(self) -> Path:
        if self.path:
            return self.store_path / ".client"
        return get_machine_client_cert_dir()

    @property
    def ca_cert_path(self) -> Path:
        return self._resolve(self.ca_cert, self.client_cert_dir / "ca.pem")

    @property
    def ca_key_path(self) -> Path:
        return self._resolve(self.ca_key, self.client_cert_dir / "ca-key.pem")

    @property
    def client_cert_path(self) -> Path:
        return self._resolve(self.client_cert, self.client_cert_dir / "cert.pem")

    @property
    def client_key_path(self) -> Path:
        return self._resolve(self.client_key, self.client_cert_dir / "key.pem")


class DefaultsConfig(BaseModel):
    """Timeouts, retry counts and key sizes used by machine operations.

    Args:
        ssh_max_retries: Attempts made while waiting for SSH to come up.
        ssh_retry_interval: Seconds between SSH attempts.
        state_timeout: Seconds to wait for a start/stop/kill to settle.
        state_poll_interval: Seconds between state queries.
        docker_max_retries: Attempts made while waiting for a docker port.
        command_timeout: Timeout in seconds for a single remote command.
        key_bits: RSA key size for certificates and SSH keys.
    """

    ssh_max_retries: Annotated[int, Field(ge=1, le=1000)] = Field(
        default=60, description="Wait-for-SSH attempts"
    )
    ssh_retry_interval: Annotated[float, Field(ge=0, le=60)] = Field(
        default=1.0, description="Seconds between SSH attempts"
    )
    state_timeout: Annotated[int, Field(ge=1, le=7200)] = Field(
        default=300, description="State transition timeout in seconds"
    )
    state_poll_interval: Annotated[float, Field(ge=0, le=60)] = Field(
        default=1.0, description="Seconds between state queries"
    )
    docker_max_retries: Annotated[int, Field(ge=1, le=1000)] = Field(
        default=60, description="Wait-for-docker attempts"
    )
    command_timeout: Annotated[int, Field(ge=1, le=7200)] = Field(
        default=600, description="Remote command timeout in seconds"
    )
    key_bits: Annotated[int, Field(ge=1024, le=8192)] = Field(
        default=2048, description="RSA key size"
    )


class FleetConfig(BaseModel):
    """Defaults for the cluster driver's member fan-out.

    Args:
        max_workers: Upper bound on concurrent member operations.
        member_timeout: Seconds allowed for one member operation.
    """

    max_workers: Annotated[int, Field(ge=1, le=256)] = Field(
        default=8, description="Concurrent member operations"
    )
    member_timeout: Annotated[int, Field(ge=1, le=86400)] = Field(
        default=600, description="Per-member timeout in seconds"
    )


class Config(BaseModel):
    """Main configuration model for dockyard.

    Args:
        storage: Local machine store and TLS paths.
        defaults: Timeouts and retry counts.
        fleet: Cluster fan-out settings.
        logging: Logging configuration.

    Example config.yaml:
        ```yaml
        storage:
          path: ~/.docker/machines

        defaults:
          ssh_max_retries: 60
          state_timeout: 300

        fleet:
          max_workers: 8
          member_timeout: 600

        logging:
          level: WARNING
          file: ~/.dockyard/logs/dockyard.log
        ```
    """

    storage: StorageConfig = Field(default_factory=StorageConfig, description="Storage paths")
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig, description="Default values")
    fleet: FleetConfig = Field(default_factory=FleetConfig, description="Fleet fan-out")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging config")


class ConfigManager:
    """Manages reading and writing dockyard configuration.

    This class handles:
    - Loading configuration from YAML files
    - Saving configuration changes
    - Validating configuration with Pydantic
    - Creating default configuration directories

    A missing file is not an error; the defaults apply.

    Args:
        path: Optional path to config file. Uses default if not specified.

    Attributes:
        path: Path to the configuration file.
        config: The loaded and validated Config object.

    Example:
        >>> cm = ConfigManager()
        >>> cm.config.defaults.state_timeout
        300
    """

    def __init__(self, path: Path | str | None = None) -> None:
        if path is None:
            self.path = get_default_config_path()
        else:
            self.path = Path(path).expanduser()

        self.config = self._load_or_create()

    def _load_or_create(self) -> Config:
        if self.path.exists():
            return self._load()
        return Config()

    def _load(self) -> Config:
        """Load and validate configuration from file.

        Returns:
            Validated Config object.

        Raises:
            ConfigurationError: If the config file is invalid.
            ConfigNotFoundError: If the config file doesn't exist.
        """
        if not self.path.exists():
            raise ConfigNotFoundError(str(self.path))

        try:
            with self.path.open("r") as f:
                data = yaml.safe_load(f) or {}
            return Config.model_validate(data)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in config file: {e}",
                details={"path": str(self.path)},
            ) from e
        except Exception as e:
            raise ConfigurationError(
                f"Failed to load config: {e}",
                details={"path": str(self.path)},
            ) from e

    def save(self) -> None:
        """Save current configuration to file.

        Raises:
            ConfigurationError: If saving fails.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w") as f:
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to save config: {e}",
                details={"path": str(self.path)},
            ) from e

    def reload(self) -> None:
        """Reload configuration from disk."""
        self.config = self._load_or_create()

    @property
    def storage(self) -> StorageConfig:
        return self.config.storage

    @property
    def defaults(self) -> DefaultsConfig:
        return self.config.defaults

    @property
    def fleet(self) -> FleetConfig:
        return self.config.fleet

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Dictionary representation of the config.
        """
        return self.config.model_dump(exclude_none=True)

    @classmethod
    def create_example_config(cls, path: Path | None = None) -> Path:
        """Create an example configuration file.

        Args:
            path: Optional path for the config. Uses default if not specified.

        Returns:
            Path to the created config file.
        """
        path = get_default_config_path() if path is None else Path(path).expanduser()

        path.parent.mkdir(parents=True, exist_ok=True)

        example_config = {
            "storage": {
                "path": str(get_machine_dir()),
            },
            "defaults": DefaultsConfig().model_dump(),
            "fleet": FleetConfig().model_dump(),
            "logging": {
                "level": "WARNING",
                "file": str(get_default_log_path()),
            },
        }

        with path.open("w") as f:
            yaml.safe_dump(example_config, f, default_flow_style=False, sort_keys=False)

        return path
