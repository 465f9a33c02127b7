"""Option models shared by drivers, provisioners and the host store.

This module defines:

- :class:`AuthOptions`: where TLS material lives locally and remotely.
- :class:`SwarmOptions`: swarm membership for a provisioned engine.
- :class:`DriverFlag`: declaration of a driver's create-time flag.
- :class:`DriverOptions`: the typed option bag handed to
  ``Driver.set_config_from_flags``.
- :class:`DockerConfig`: a rendered daemon options file.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from dockyard.core.exceptions import MissingOptionError

DEFAULT_SWARM_IMAGE = "swarm:latest"


class AuthOptions(BaseModel):
    """Local and remote TLS paths for one machine.

    The CA private key (``private_key_path``) is used locally to sign server
    certificates and is never uploaded to a machine.

    Args:
        store_path: The machine's store directory.
        ca_cert_path: Local CA certificate.
        private_key_path: Local CA private key.
        client_cert_path: Client certificate used by the docker client.
        client_key_path: Client private key.
        client_cert_dir: Directory holding the client trust material.
        server_cert_path: Local copy of the machine's server certificate.
        server_key_path: Local copy of the machine's server key.
        ca_cert_remote_path: CA certificate path on the machine.
        server_cert_remote_path: Server certificate path on the machine.
        server_key_remote_path: Server key path on the machine.
    """

    store_path: str = ""
    ca_cert_path: str = ""
    private_key_path: str = ""
    client_cert_path: str = ""
    client_key_path: str = ""
    client_cert_dir: str = ""
    server_cert_path: str = ""
    server_key_path: str = ""
    ca_cert_remote_path: str = ""
    server_cert_remote_path: str = ""
    server_key_remote_path: str = ""


class SwarmOptions(BaseModel):
    """Swarm settings for a machine.

    Args:
        is_swarm: Join the machine to a swarm.
        discovery: Discovery token or URL.
        addr: Advertised ``host:port`` of the machine's engine.
        master: Also run the swarm manager on this machine.
        host: Listen URL of the swarm manager (e.g. ``tcp://0.0.0.0:3376``).
        image: Swarm image to pull.
    """

    is_swarm: bool = False
    discovery: str = ""
    addr: str = ""
    master: bool = False
    host: str = "tcp://0.0.0.0:3376"
    image: str = Field(default=DEFAULT_SWARM_IMAGE)


class FlagKind(str, Enum):
    """Value type of a driver flag."""

    STRING = "string"
    INT = "int"
    BOOL = "bool"
    STRING_SLICE = "string_slice"


@dataclass(frozen=True)
class DriverFlag:
    """A create-time option a driver accepts.

    Args:
        name: Flag name without leading dashes (``rivet-address``).
        usage: Help text.
        kind: Value type.
        default: Default value, or None.
        envvar: Environment variable that supplies the value.
    """

    name: str
    usage: str
    kind: FlagKind = FlagKind.STRING
    default: Any = None
    envvar: str | None = None

    @property
    def key(self) -> str:
        """Identifier form of the name used as the option-bag key."""
        return self.name.replace("-", "_")


class DriverOptions:
    """Typed read access to the values collected for driver flags.

    Keys may be given with dashes or underscores; both spellings resolve to
    the same value.

    Args:
        values: Mapping of flag name to value.
        driver_name: Driver the options belong to, used in error messages.

    Example:
        >>> opts = DriverOptions({"rivet-cpu": 2}, driver_name="rivet")
        >>> opts.get_int("rivet-cpu")
        2
    """

    def __init__(self, values: Mapping[str, Any] | None = None, driver_name: str = "") -> None:
        self._values = {self._normalize(k): v for k, v in (values or {}).items()}
        self.driver_name = driver_name

    @staticmethod
    def _normalize(key: str) -> str:
        return key.replace("-", "_")

    def get(self, key: str, default: Any = None) -> Any:
        value = self._values.get(self._normalize(key))
        return default if value is None else value

    def get_string(self, key: str, default: str = "") -> str:
        return str(self.get(key, default))

    def get_int(self, key: str, default: int = 0) -> int:
        return int(self.get(key, default))

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key, default)
        if isinstance(value, str):
            return value.lower() in ("1", "true", "yes", "on")
        return bool(value)

    def get_string_slice(self, key: str) -> list[str]:
        value = self.get(key, [])
        if isinstance(value, str):
            return [value] if value else []
        return [str(v) for v in value]

    def require(self, key: str) -> str:
        """Return a string option, raising if it is missing or empty.

        Raises:
            MissingOptionError: If the option has no value.
        """
        value = self.get_string(key)
        if not value:
            raise MissingOptionError(self.driver_name, key.replace("_", "-"))
        return value

    def to_dict(self) -> dict[str, Any]:
        return dict(self._values)


@dataclass(frozen=True)
class DockerConfig:
    """Rendered docker daemon options file and where it belongs on the machine.

    Args:
        engine_config: File contents.
        engine_config_path: Absolute path on the machine.
    """

    engine_config: str
    engine_config_path: str
