"""Tests for cloud-init user data generation."""

from __future__ import annotations

import base64
from pathlib import Path

import pytest
import yaml
from cryptography import x509

from dockyard.core.certs import generate_ca_certificate
from dockyard.drivers.cloudinit import (
    FINAL_MESSAGE,
    MachineOptions,
    generate_cloud_init,
    generate_docker_config,
)

from conftest import FakeDriver


class VirtualBoxDriver(FakeDriver):
    name = "virtualbox"

    def get_docker_config_dir(self) -> str:
        return "/var/lib/boot2docker"


class NoneDriver(FakeDriver):
    name = "none"


@pytest.fixture
def driver(tmp_path: Path) -> FakeDriver:
    ca_cert = tmp_path / "ca.pem"
    ca_key = tmp_path / "ca-key.pem"
    generate_ca_certificate(ca_cert, ca_key, "dockyard", 1024)
    return FakeDriver(
        machine_name="web-1", ca_cert_path=str(ca_cert), private_key_path=str(ca_key)
    )


class TestDockerConfig:
    """Tests for generate_docker_config()."""

    def test_default_file(self, driver: FakeDriver) -> None:
        opts = MachineOptions.for_driver(driver)
        opts.labels = ["env=prod"]

        config = generate_docker_config(driver, opts)

        assert config.engine_config_path == "/etc/default/docker"
        assert config.engine_config == (
            "export DOCKER_OPTS='--tlsverify --tlscacert=/etc/docker/ca.pem "
            "--tlskey=/etc/docker/server-key.pem --tlscert=/etc/docker/server.pem "
            "--label=env=prod --host=unix:///var/run/docker.sock --host=tcp://0.0.0.0:2376'"
        )

    def test_profile_driver(self) -> None:
        """boot2docker-based hypervisor drivers get a profile file."""
        driver = VirtualBoxDriver(machine_name="vb-1")

        config = generate_docker_config(driver, MachineOptions.for_driver(driver))

        assert config.engine_config_path == "/var/lib/boot2docker/profile"
        assert config.engine_config.splitlines()[1:] == [
            "CACERT=/var/lib/boot2docker/ca.pem",
            "SERVERCERT=/var/lib/boot2docker/server.pem",
            "SERVERKEY=/var/lib/boot2docker/server-key.pem",
            "DOCKER_TLS=no",
        ]


class TestCloudInit:
    """Tests for generate_cloud_init()."""

    def test_document(self, driver: FakeDriver) -> None:
        """The document installs docker and drops config and TLS material in place."""
        config = generate_cloud_init(driver)

        assert config.startswith("#cloud-config\n")
        document = yaml.safe_load(config)
        assert document["packages"] == ["lxc-docker"]
        assert document["final_message"] == FINAL_MESSAGE
        assert document["runcmd"] == [["stop", "docker"], ["start", "docker"]]

        files = {entry["path"]: entry for entry in document["write_files"]}
        assert list(files) == [
            "/etc/default/docker",
            "/etc/docker/ca.pem",
            "/etc/docker/server.pem",
            "/etc/docker/server-key.pem",
        ]
        assert all(entry["encoding"] == "base64" for entry in files.values())

        ca = base64.b64decode(files["/etc/docker/ca.pem"]["content"])
        assert ca == Path(driver.ca_cert_path).read_bytes()

    def test_server_cert_wildcard(self, driver: FakeDriver) -> None:
        """The server certificate is issued before the IP is known."""
        document = yaml.safe_load(generate_cloud_init(driver))
        files = {entry["path"]: entry for entry in document["write_files"]}

        cert = x509.load_pem_x509_certificate(
            base64.b64decode(files["/etc/docker/server.pem"]["content"])
        )
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert san.get_values_for_type(x509.DNSName) == ["*"]

    def test_none_driver(self) -> None:
        assert generate_cloud_init(NoneDriver(machine_name="web-1")) == ""
