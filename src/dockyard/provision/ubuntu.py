"""Provisioner for Ubuntu machines."""

from __future__ import annotations

import shlex

from dockyard.models.options import AuthOptions, DockerConfig
from dockyard.provision.base import PackageAction, Provisioner, ServiceAction
from dockyard.provision.generic import get_default_daemon_opts

APT_ENV = "DEBIAN_FRONTEND=noninteractive"


class UbuntuProvisioner(Provisioner):
    """Ubuntu: ``service`` for daemons, ``apt-get`` for packages and
    ``/etc/default/docker`` for the daemon options."""

    name = "ubuntu"

    def service(self, name: str, action: ServiceAction) -> None:
        self.ssh_command(f"sudo service {shlex.quote(name)} {action.value}")

    def package(self, name: str, action: PackageAction) -> None:
        quoted = shlex.quote(name)
        if action is PackageAction.UPGRADE:
            command = f"sudo {APT_ENV} apt-get install -y --only-upgrade {quoted}"
        else:
            command = f"sudo {APT_ENV} apt-get {action.value} -y {quoted}"
        self.ssh_command(f"sudo apt-get update && {command}")

    def set_hostname(self, hostname: str) -> None:
        quoted = shlex.quote(hostname)
        self.ssh_command(f"sudo hostname {quoted} && echo {quoted} | sudo tee /etc/hostname")

    def get_docker_config_dir(self) -> str:
        return "/etc/docker"

    def generate_docker_config(self, docker_port: int, auth: AuthOptions) -> DockerConfig:
        default_opts = get_default_daemon_opts(self.driver.driver_name(), auth)
        opts = (
            f"{default_opts} --host=unix:///var/run/docker.sock "
            f"--host=tcp://0.0.0.0:{docker_port}"
        )
        return DockerConfig(
            engine_config=f"export DOCKER_OPTS='{opts}'",
            engine_config_path="/etc/default/docker",
        )

    def compatible_with_host(self) -> bool:
        return self.os_release.id == "ubuntu"
