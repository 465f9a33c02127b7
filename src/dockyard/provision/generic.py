"""Provisioning steps shared by every OS family."""

from __future__ import annotations

import posixpath
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from dockyard.core.certs import generate_cert
from dockyard.core.exceptions import ProvisionError, RemoteCommandError
from dockyard.core.ssh import is_port_open
from dockyard.drivers.base import DEFAULT_DOCKER_PORT
from dockyard.models.options import AuthOptions, SwarmOptions
from dockyard.provision.base import ServiceAction
from dockyard.utils.logging import get_logger
from dockyard.utils.paths import copy_file
from dockyard.utils.retry import poll

if TYPE_CHECKING:
    from dockyard.provision.base import Provisioner

logger = get_logger("provision.generic")

INSTALL_DOCKER_COMMAND = (
    "if [ ! -e /usr/bin/docker ] && [ ! -e /usr/local/bin/docker ]; then "
    "curl -sSL https://get.docker.com | sh -; fi"
)
DOCKER_WAIT_RETRIES = 60


def install_docker_generic(p: Provisioner) -> None:
    """Install docker with the upstream script unless it is already there.

    Raises:
        ProvisionError: With the script's output when installation fails.
    """
    try:
        p.ssh_command(INSTALL_DOCKER_COMMAND)
    except RemoteCommandError as e:
        raise ProvisionError(
            f"error installing docker: exit code {e.exit_code}\n{e.output}",
            details={"host": e.host},
        ) from e


def get_default_daemon_opts(driver_name: str, auth: AuthOptions) -> str:
    return (
        f"--tlsverify --tlscacert={auth.ca_cert_remote_path} "
        f"--tlskey={auth.server_key_remote_path} "
        f"--tlscert={auth.server_cert_remote_path} "
        f"--label=provider={driver_name}"
    )


def docker_port_from_url(url: str) -> int:
    """Port of a ``tcp://host:port`` URL, 2376 when none is given."""
    port = urlparse(url).port
    return port if port else DEFAULT_DOCKER_PORT


def configure_auth(p: Provisioner, auth: AuthOptions) -> None:
    """Issue the machine's server certificate and switch docker to TLS.

    Updates ``auth`` in place with the local server cert paths and the
    remote locations of the uploaded files.

    Raises:
        CertificateError: If the certificate cannot be issued.
        RemoteCommandError: If a remote step fails.
    """
    driver = p.driver
    machine_name = driver.get_machine_name()
    store_path = Path(auth.store_path or driver.store_path)

    # client-side copies so the store dir works as DOCKER_CERT_PATH
    copy_file(auth.ca_cert_path, store_path / "ca.pem")
    copy_file(auth.client_cert_path, store_path / "cert.pem")
    copy_file(auth.client_key_path, store_path / "key.pem")
    (store_path / "key.pem").chmod(0o600)

    auth.server_cert_path = str(store_path / "server.pem")
    auth.server_key_path = str(store_path / "server-key.pem")

    ip = driver.get_ip()
    logger.debug(
        f"generating server cert: {auth.server_cert_path} ca={auth.ca_cert_path} "
        f"org={machine_name} ip={ip}"
    )
    generate_cert(
        [ip],
        auth.server_cert_path,
        auth.server_key_path,
        auth.ca_cert_path,
        auth.private_key_path,
        org=machine_name,
    )

    p.service("docker", ServiceAction.STOP)

    docker_dir = p.get_docker_config_dir()
    p.ssh_command(f"sudo mkdir -p {docker_dir}")

    auth.ca_cert_remote_path = posixpath.join(docker_dir, "ca.pem")
    auth.server_cert_remote_path = posixpath.join(docker_dir, "server.pem")
    auth.server_key_remote_path = posixpath.join(docker_dir, "server-key.pem")

    p.write_file(auth.ca_cert_remote_path, Path(auth.ca_cert_path).read_bytes(), mode=0o644)
    p.write_file(auth.server_cert_remote_path, Path(auth.server_cert_path).read_bytes(), mode=0o644)
    p.write_file(auth.server_key_remote_path, Path(auth.server_key_path).read_bytes(), mode=0o600)

    docker_port = docker_port_from_url(driver.get_url())
    docker_config = p.generate_docker_config(docker_port, auth)
    p.write_file(docker_config.engine_config_path, docker_config.engine_config.encode() + b"\n")

    p.service("docker", ServiceAction.START)


def wait_for_docker(
    addr: str, max_retries: int = DOCKER_WAIT_RETRIES, interval: float = 1.0
) -> None:
    """Wait until the engine at ``host:port`` accepts TCP connections.

    Raises:
        ProvisionError: If it never does.
    """
    host, _, port = addr.rpartition(":")
    if not host or not port.isdigit():
        raise ProvisionError(f"Invalid docker address: {addr}", details={"addr": addr})

    if not poll(lambda: is_port_open(host, int(port)), max_retries, interval):
        raise ProvisionError(
            f"docker at {addr} not reachable after {max_retries} attempts",
            details={"addr": addr},
        )


def configure_swarm(p: Provisioner, swarm: SwarmOptions) -> None:
    """Run the swarm agent (and manager, for the master) on the machine.

    Raises:
        ProvisionError: If docker never comes up or the manager URL is invalid.
        RemoteCommandError: If a docker command fails.
    """
    if not swarm.is_swarm:
        return

    docker_dir = p.get_docker_config_dir()
    tls_ca_cert = posixpath.join(docker_dir, "ca.pem")
    tls_cert = posixpath.join(docker_dir, "server.pem")
    tls_key = posixpath.join(docker_dir, "server-key.pem")

    port = urlparse(swarm.host).port
    if port is None:
        raise ProvisionError(f"Swarm host has no port: {swarm.host}", details={"host": swarm.host})

    # Advertise the engine's own address unless one was given
    addr = swarm.addr or f"{p.driver.get_ip()}:{docker_port_from_url(p.driver.get_url())}"

    wait_for_docker(addr)
    p.ssh_command(f"sudo docker pull {swarm.image}")

    volume = f"-v {docker_dir}:{docker_dir}"
    if swarm.master:
        master_args = (
            f"--tlsverify --tlscacert={tls_ca_cert} --tlscert={tls_cert} --tlskey={tls_key} "
            f"-H {swarm.host} {swarm.discovery}"
        )
        logger.debug(f"launching swarm master: {master_args}")
        p.ssh_command(
            f"sudo docker run -d -p {port}:{port} --restart=always --name swarm-agent-master "
            f"{volume} {swarm.image} manage {master_args}"
        )

    node_args = f"--addr {addr} {swarm.discovery}"
    logger.debug(f"launching swarm node: {node_args}")
    p.ssh_command(
        f"sudo docker run -d --restart=always --name swarm-agent "
        f"{volume} {swarm.image} join {node_args}"
    )
