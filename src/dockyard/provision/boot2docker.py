"""Provisioner for boot2docker machines."""

from __future__ import annotations

import posixpath
import shlex

from dockyard.models.options import AuthOptions, DockerConfig
from dockyard.provision.base import PackageAction, Provisioner, ServiceAction
from dockyard.provision.generic import get_default_daemon_opts
from dockyard.utils.logging import get_logger

logger = get_logger("provision.boot2docker")

STOP_DOCKER_COMMAND = (
    "if [ -e /var/run/docker.pid ] && [ -d /proc/$(cat /var/run/docker.pid) ]; "
    "then sudo /etc/init.d/docker stop ; exit 0; fi"
)


class Boot2DockerProvisioner(Provisioner):
    """boot2docker keeps its state under /var/lib/boot2docker and has no
    package manager; docker is started through its init script."""

    name = "boot2docker"

    def service(self, name: str, action: ServiceAction) -> None:
        if name == "docker" and action is ServiceAction.STOP:
            self.ssh_command(STOP_DOCKER_COMMAND)
            return
        self.ssh_command(f"sudo /etc/init.d/{shlex.quote(name)} {action.value}")

    def package(self, name: str, action: PackageAction) -> None:
        logger.debug(f"boot2docker has no package manager, skipping {action.value} {name}")

    def set_hostname(self, hostname: str) -> None:
        quoted = shlex.quote(hostname)
        self.ssh_command(
            f"sudo hostname {quoted} && echo {quoted} | sudo tee /var/lib/boot2docker/etc/hostname"
        )

    def get_docker_config_dir(self) -> str:
        return "/var/lib/boot2docker"

    def generate_docker_config(self, docker_port: int, auth: AuthOptions) -> DockerConfig:
        default_opts = get_default_daemon_opts(self.driver.driver_name(), auth)
        opts = f"{default_opts} -H tcp://0.0.0.0:{docker_port}"
        return DockerConfig(
            engine_config=(
                f"EXTRA_ARGS='{opts}'\n"
                f"CACERT={auth.ca_cert_remote_path}\n"
                f"SERVERCERT={auth.server_cert_remote_path}\n"
                f"SERVERKEY={auth.server_key_remote_path}\n"
                "DOCKER_TLS=no"
            ),
            engine_config_path=posixpath.join(self.get_docker_config_dir(), "profile"),
        )

    def compatible_with_host(self) -> bool:
        return self.os_release.id == "boot2docker"
