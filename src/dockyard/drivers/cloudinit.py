"""Cloud-init bootstrap for backends that accept user data.

Instead of provisioning over SSH after boot, a driver can hand the backend a
``#cloud-config`` document that installs docker, drops the daemon options
file and TLS material in place and restarts docker.
"""

from __future__ import annotations

import base64
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from dockyard.core.certs import issue_cert
from dockyard.drivers.base import Driver
from dockyard.models.options import DockerConfig
from dockyard.utils.logging import get_logger

logger = get_logger("drivers.cloudinit")

DEFAULT_ENGINE_HOST = "tcp://0.0.0.0:2376"
PROFILE_DRIVERS = frozenset({"virtualbox", "vmwarefusion", "vmwarevsphere"})
FINAL_MESSAGE = "dockyard provisioning complete"


@dataclass
class MachineOptions:
    """Engine listen address, labels and remote TLS paths.

    Args:
        host: Engine listen URL.
        labels: Engine labels.
        ca_cert_path: CA certificate path on the machine.
        server_cert_path: Server certificate path on the machine.
        server_key_path: Server key path on the machine.
    """

    host: str = DEFAULT_ENGINE_HOST
    labels: list[str] = field(default_factory=list)
    ca_cert_path: str = ""
    server_cert_path: str = ""
    server_key_path: str = ""

    @classmethod
    def for_driver(cls, driver: Driver) -> MachineOptions:
        """Defaults rooted in the driver's docker config directory."""
        config_dir = driver.get_docker_config_dir()
        return cls(
            ca_cert_path=posixpath.join(config_dir, "ca.pem"),
            server_cert_path=posixpath.join(config_dir, "server.pem"),
            server_key_path=posixpath.join(config_dir, "server-key.pem"),
        )


def generate_docker_config(driver: Driver, opts: MachineOptions) -> DockerConfig:
    """Render the daemon options file for a driver.

    Hypervisor drivers that boot a boot2docker image get its ``profile``;
    everything else gets ``/etc/default/docker``.
    """
    tls_opts = (
        f"--tlsverify --tlscacert={opts.ca_cert_path} "
        f"--tlskey={opts.server_key_path} --tlscert={opts.server_cert_path}"
    )
    label_opts = "".join(f" --label={label}" for label in opts.labels)

    if driver.driver_name() in PROFILE_DRIVERS:
        daemon_opts = f"{tls_opts}{label_opts} -H {opts.host}"
        return DockerConfig(
            engine_config=(
                f"EXTRA_ARGS='{daemon_opts}'\n"
                f"CACERT={opts.ca_cert_path}\n"
                f"SERVERCERT={opts.server_cert_path}\n"
                f"SERVERKEY={opts.server_key_path}\n"
                "DOCKER_TLS=no"
            ),
            engine_config_path=posixpath.join(driver.get_docker_config_dir(), "profile"),
        )

    daemon_opts = f"{tls_opts}{label_opts} --host=unix:///var/run/docker.sock --host={opts.host}"
    return DockerConfig(
        engine_config=f"export DOCKER_OPTS='{daemon_opts}'",
        engine_config_path="/etc/default/docker",
    )


def generate_machine_certs(driver: Driver, hosts: list[str] | None = None) -> tuple[bytes, bytes]:
    """Issue a server certificate for a machine that has no IP yet.

    Args:
        driver: The machine's driver; its CA paths sign the certificate.
        hosts: SAN entries, ``["*"]`` when omitted.

    Returns:
        Tuple of (certificate PEM, key PEM); empty for the ``none`` driver.
    """
    if driver.driver_name() == "none":
        return b"", b""

    logger.debug(f"Generating server cert for {driver.get_machine_name()}")
    return issue_cert(
        hosts or ["*"],
        driver.ca_cert_path,
        driver.private_key_path,
        org=driver.get_machine_name(),
    )


def _write_file(path: str, content: bytes) -> dict[str, Any]:
    return {
        "encoding": "base64",
        "content": base64.b64encode(content).decode("ascii"),
        "path": path,
        "permissions": "0644",
    }


def generate_cloud_init(driver: Driver, opts: MachineOptions | None = None) -> str:
    """Build the ``#cloud-config`` document for a machine.

    Args:
        driver: The machine's driver.
        opts: Engine options; defaults to :meth:`MachineOptions.for_driver`.

    Returns:
        The YAML document, or ``""`` for the ``none`` driver.

    Raises:
        CertificateError: If the CA cannot be read.
    """
    if driver.driver_name() == "none":
        return ""

    opts = opts or MachineOptions.for_driver(driver)
    server_cert, server_key = generate_machine_certs(driver)
    ca_cert = Path(driver.ca_cert_path).read_bytes()
    docker_config = generate_docker_config(driver, opts)

    document = {
        "apt_update": True,
        "apt_sources": [
            {
                "source": "deb https://get.docker.com/ubuntu docker main",
                "filename": "docker.list",
                "keyserver": "keyserver.ubuntu.com",
                "keyid": "A88D21E9",
            }
        ],
        "package_update": True,
        "packages": ["lxc-docker"],
        "write_files": [
            _write_file(docker_config.engine_config_path, docker_config.engine_config.encode()),
            _write_file(opts.ca_cert_path, ca_cert),
            _write_file(opts.server_cert_path, server_cert),
            _write_file(opts.server_key_path, server_key),
        ],
        "runcmd": [["stop", "docker"], ["start", "docker"]],
        "final_message": FINAL_MESSAGE,
    }

    config = "#cloud-config\n" + yaml.safe_dump(document, default_flow_style=False, sort_keys=False)
    logger.debug(f"cloud config:\n{config}")
    return config


def generate_cloud_init_base64(driver: Driver, opts: MachineOptions | None = None) -> str:
    """:func:`generate_cloud_init`, base64 encoded."""
    return base64.b64encode(generate_cloud_init(driver, opts).encode()).decode("ascii")
