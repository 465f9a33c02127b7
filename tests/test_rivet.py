"""Tests for the rivet driver and its HTTP client."""

from __future__ import annotations

import base64
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from dockyard.core.certs import generate_ca_certificate
from dockyard.core.exceptions import DriverError, MissingOptionError
from dockyard.drivers.rivet import RivetDriver
from dockyard.drivers.rivet_api import RivetAPI
from dockyard.models.options import DriverOptions
from dockyard.models.state import State


class FakeRivet:
    """In-memory rivet endpoint recording every request."""

    def __init__(self, responses: dict[str, httpx.Response] | None = None) -> None:
        self.responses = responses or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path in self.responses:
            return self.responses[request.url.path]
        return httpx.Response(200, json={"status_code": 200, "response": "ok"})

    def api(self, token: str = "") -> RivetAPI:
        return RivetAPI("http://rivet:8080/", token, transport=httpx.MockTransport(self))


def envelope(response: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(200, json={"status_code": status_code, "response": response})


class TestRivetAPI:
    """Tests for RivetAPI."""

    def test_machine_call(self) -> None:
        """Machine calls send the name as a query parameter and the token as a header."""
        rivet = FakeRivet({"/state": envelope("running")})

        resp = rivet.api("s3cret").get_state("web-1")

        assert resp.ok
        assert resp.response == "running"
        request = rivet.requests[0]
        assert request.method == "GET"
        assert str(request.url) == "http://rivet:8080/state?name=web-1"
        assert request.headers["X-Auth-Token"] == "s3cret"

    def test_no_token_header(self) -> None:
        rivet = FakeRivet()

        rivet.api().stop("web-1")

        assert "X-Auth-Token" not in rivet.requests[0].headers

    def test_create(self) -> None:
        """The public key is the request body; env values repeat."""
        rivet = FakeRivet()

        rivet.api().create(
            "web-1", b"ssh-rsa AAAA", 2, 2048, 20, image="ubuntu", env=["A=1", "B=2"]
        )

        request = rivet.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/create"
        assert request.content == b"ssh-rsa AAAA"
        params = request.url.params
        assert params["name"] == "web-1"
        assert params["cpu"] == "2"
        assert params["memory"] == "2048"
        assert params.get_list("env") == ["A=1", "B=2"]
        assert "userdata" not in params

    def test_unauthorized(self) -> None:
        """A bare 401 becomes an Unauthorized envelope."""
        rivet = FakeRivet({"/ip": httpx.Response(401)})

        resp = rivet.api().get_ip("web-1")

        assert not resp.ok
        assert resp.response == "Unauthorized"

    def test_invalid_body(self) -> None:
        rivet = FakeRivet({"/ip": httpx.Response(500, text="<html>oops</html>")})

        with pytest.raises(DriverError, match="Invalid response"):
            rivet.api().get_ip("web-1")

    def test_unreachable(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        api = RivetAPI("http://rivet:8080", transport=httpx.MockTransport(refuse))

        with pytest.raises(DriverError, match="Failed to reach rivet API"):
            api.kill("web-1")


class TestRivetDriver:
    """Tests for RivetDriver."""

    @pytest.fixture
    def driver(self, tmp_path: Path) -> RivetDriver:
        driver = RivetDriver(
            machine_name="web-1",
            api_endpoint="http://rivet:8080",
            ca_cert_path=str(tmp_path / "ca.pem"),
            private_key_path=str(tmp_path / "ca-key.pem"),
        )
        driver.set_store_path(tmp_path / "web-1")
        return driver

    def test_flags(self) -> None:
        driver = RivetDriver(machine_name="web-1")

        driver.set_config_from_flags(
            DriverOptions(
                {
                    "rivet-address": "http://rivet:8080",
                    "rivet-cpu": 4,
                    "rivet-env": ("A=1",),
                    "rivet-ssh-port": 2222,
                    "rivet-cloud-init": True,
                }
            )
        )

        assert driver.api_endpoint == "http://rivet:8080"
        assert driver.cpu == 4
        assert driver.memory == 1024
        assert driver.env == ["A=1"]
        assert driver.get_ssh_port() == 2222
        assert driver.get_ssh_username() == "root"
        assert driver.cloud_init

    def test_address_required(self) -> None:
        with pytest.raises(MissingOptionError, match="--rivet-address"):
            RivetDriver().set_config_from_flags(DriverOptions(driver_name="rivet"))

    @pytest.mark.parametrize(
        ("value", "state"),
        [
            ("running", State.RUNNING),
            ("stopped", State.STOPPED),
            ("pending", State.STARTING),
            ("rebooting", State.NONE),
        ],
    )
    def test_state(self, driver: RivetDriver, value: str, state: State) -> None:
        rivet = FakeRivet({"/state": envelope(value)})

        with patch.object(RivetDriver, "get_api", return_value=rivet.api()):
            assert driver.get_state() == state

    def test_url_from_ip(self, driver: RivetDriver) -> None:
        rivet = FakeRivet({"/ip": envelope("10.4.0.12")})

        with patch.object(RivetDriver, "get_api", return_value=rivet.api()):
            assert driver.get_url() == "tcp://10.4.0.12:2376"
            assert driver.get_ssh_hostname() == "10.4.0.12"

    def test_error_envelope(self, driver: RivetDriver) -> None:
        """A non-200 envelope raises with the backend's message."""
        rivet = FakeRivet({"/stop": envelope("instance is locked", 409)})

        with (
            patch.object(RivetDriver, "get_api", return_value=rivet.api()),
            pytest.raises(DriverError, match="instance is locked"),
        ):
            driver.stop()

    def test_create(self, driver: RivetDriver) -> None:
        """Create generates an SSH key and uploads its public half."""
        rivet = FakeRivet()

        with patch.object(RivetDriver, "get_api", return_value=rivet.api()):
            driver.create()

        key_path = Path(driver.get_ssh_key_path())
        assert key_path.is_file()
        public_key = Path(f"{key_path}.pub").read_bytes().strip()
        assert rivet.requests[0].content == public_key

    def test_create_with_cloud_init(self, driver: RivetDriver) -> None:
        """With cloud-init on, user data travels base64 encoded."""
        generate_ca_certificate(driver.ca_cert_path, driver.private_key_path, "dockyard", 1024)
        driver.cloud_init = True
        rivet = FakeRivet()

        with patch.object(RivetDriver, "get_api", return_value=rivet.api()):
            driver.create()

        user_data = rivet.requests[0].url.params["userdata"]
        assert base64.b64decode(user_data).startswith(b"#cloud-config\n")
