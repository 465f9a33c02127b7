"""Tests for machine CLI commands."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner, Result

from dockyard.cli.main import cli, main
from dockyard.core.host import Host
from dockyard.core.store import FilesystemStore
from dockyard.drivers.registry import DriverRegistry
from dockyard.models.state import State


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def invoke(
    runner: CliRunner,
    temp_config_file: Path,
    store_dir: Path,
    registry: DriverRegistry,
) -> Callable[..., Result]:
    """Run the CLI against the temporary store with the fake driver registered."""

    def _invoke(*args: str, input: str | None = None) -> Result:
        with patch("dockyard.cli.context.default_registry", return_value=registry):
            return runner.invoke(
                cli,
                ["--config", str(temp_config_file), "--storage-path", str(store_dir), *args],
                input=input,
            )

    return _invoke


class TestLs:
    """Tests for 'dockyard ls'."""

    def test_empty(self, invoke: Callable[..., Result]) -> None:
        result = invoke("ls")

        assert result.exit_code == 0
        assert "No machines found" in result.output

    def test_table(
        self,
        invoke: Callable[..., Result],
        store: FilesystemStore,
        add_host: Callable[..., Host],
    ) -> None:
        """Each machine is listed with its driver and state."""
        add_host("web-1")
        add_host("db-1", state=State.STOPPED)
        store.set_active("web-1")

        result = invoke("ls")

        assert result.exit_code == 0
        assert "NAME" in result.output
        assert "web-1" in result.output
        assert "db-1" in result.output
        assert "Running" in result.output
        assert "Stopped" in result.output
        assert "tcp://10.0.0.5:2376" in result.output

    def test_quiet(self, invoke: Callable[..., Result], add_host: Callable[..., Host]) -> None:
        add_host("web-2")
        add_host("web-1")

        result = invoke("ls", "-q")

        assert result.exit_code == 0
        assert result.output.splitlines() == ["web-1", "web-2"]

    def test_json(self, invoke: Callable[..., Result], add_host: Callable[..., Host]) -> None:
        add_host("web-1")

        result = invoke("ls", "--format", "json")

        assert result.exit_code == 0
        assert '"name": "web-1"' in result.output
        assert '"driver": "fake"' in result.output


class TestActive:
    """Tests for 'dockyard active'."""

    def test_print_active(
        self,
        invoke: Callable[..., Result],
        store: FilesystemStore,
        add_host: Callable[..., Host],
    ) -> None:
        add_host("web-1")
        store.set_active("web-1")

        result = invoke("active")

        assert result.exit_code == 0
        assert result.output.strip() == "web-1"

    def test_set_active(
        self,
        invoke: Callable[..., Result],
        store: FilesystemStore,
        add_host: Callable[..., Host],
    ) -> None:
        add_host("web-1")
        add_host("web-2")

        result = invoke("active", "web-2")

        assert result.exit_code == 0
        assert store.is_active("web-2")

    def test_set_missing(self, invoke: Callable[..., Result]) -> None:
        result = invoke("active", "ghost")

        assert result.exit_code == 1
        assert "does not exist" in result.output


class TestClientHelpers:
    """Tests for 'dockyard config', 'env', 'ip', 'url' and 'inspect'."""

    def test_env(
        self, invoke: Callable[..., Result], store_dir: Path, add_host: Callable[..., Host]
    ) -> None:
        add_host("web-1")

        result = invoke("env", "web-1")

        assert result.exit_code == 0
        assert result.output.splitlines() == [
            "export DOCKER_TLS_VERIFY=yes",
            f"export DOCKER_CERT_PATH={store_dir / '.client'}",
            "export DOCKER_HOST=tcp://10.0.0.5:2376",
        ]

    def test_config_uses_active(
        self,
        invoke: Callable[..., Result],
        store: FilesystemStore,
        add_host: Callable[..., Host],
    ) -> None:
        """Without a name the active machine is used."""
        add_host("web-1", ip_address="10.0.0.8")
        store.set_active("web-1")

        result = invoke("config")

        assert result.exit_code == 0
        assert result.output.startswith("--tls --tlscacert=")
        assert result.output.strip().endswith('-H="tcp://10.0.0.8:2376"')

    def test_no_active(self, invoke: Callable[..., Result]) -> None:
        result = invoke("env")

        assert result.exit_code == 1
        assert "No active host" in result.output

    def test_ip(self, invoke: Callable[..., Result], add_host: Callable[..., Host]) -> None:
        add_host("web-1", ip_address="10.0.0.9")

        result = invoke("ip", "web-1")

        assert result.exit_code == 0
        assert result.output.strip() == "10.0.0.9"

    def test_url_not_running(
        self, invoke: Callable[..., Result], add_host: Callable[..., Host]
    ) -> None:
        add_host("web-1", state=State.STOPPED)

        result = invoke("url", "web-1")

        assert result.exit_code == 1
        assert "host is not running" in result.output

    def test_inspect(self, invoke: Callable[..., Result], add_host: Callable[..., Host]) -> None:
        add_host("web-1")

        result = invoke("inspect", "web-1")

        assert result.exit_code == 0
        assert '"driver_name": "fake"' in result.output
        assert '"ip_address": "10.0.0.5"' in result.output


class TestLifecycle:
    """Tests for start/stop/restart/kill/upgrade."""

    def test_stop(
        self,
        invoke: Callable[..., Result],
        store: FilesystemStore,
        add_host: Callable[..., Host],
    ) -> None:
        add_host("web-1")

        result = invoke("stop", "web-1", "--timeout", "5")

        assert result.exit_code == 0
        assert "stop complete" in result.output
        assert store.load("web-1").driver.state == State.STOPPED

    def test_start(
        self,
        invoke: Callable[..., Result],
        store: FilesystemStore,
        add_host: Callable[..., Host],
    ) -> None:
        add_host("web-1", state=State.STOPPED)

        result = invoke("start", "web-1")

        assert result.exit_code == 0
        assert store.load("web-1").driver.state == State.RUNNING

    def test_missing_machine(self, invoke: Callable[..., Result]) -> None:
        result = invoke("kill", "ghost")

        assert result.exit_code == 1
        assert "does not exist" in result.output

    def test_upgrade_deferred(
        self, invoke: Callable[..., Result], add_host: Callable[..., Host]
    ) -> None:
        add_host("web-1")

        result = invoke("upgrade", "web-1")

        assert result.exit_code == 1
        assert "centralized upgrade" in result.output


class TestRm:
    """Tests for 'dockyard rm'."""

    def test_rm(
        self,
        invoke: Callable[..., Result],
        store: FilesystemStore,
        add_host: Callable[..., Host],
    ) -> None:
        add_host("web-1")
        add_host("web-2")

        result = invoke("rm", "web-1", "web-2")

        assert result.exit_code == 0
        assert store.names() == []

    def test_rm_failure_continues(
        self,
        invoke: Callable[..., Result],
        store: FilesystemStore,
        add_host: Callable[..., Host],
    ) -> None:
        """A failed removal does not stop the others, but the exit code is 1."""
        add_host("broken", fail_remove=True)
        add_host("web-1")

        result = invoke("rm", "broken", "web-1")

        assert result.exit_code == 1
        assert "Error removing machine broken" in result.output
        assert "error removing a machine" in result.output
        assert store.names() == ["broken"]

    def test_rm_force(
        self,
        invoke: Callable[..., Result],
        store: FilesystemStore,
        add_host: Callable[..., Host],
    ) -> None:
        add_host("broken", fail_remove=True)

        result = invoke("rm", "-f", "broken")

        assert result.exit_code == 0
        assert store.names() == []


class TestSsh:
    def test_execs_ssh(self, invoke: Callable[..., Result], add_host: Callable[..., Host]) -> None:
        """The process is replaced by ssh to the machine."""
        add_host("web-1")

        with patch("dockyard.cli.machines.os.execvp") as mock_exec:
            result = invoke("ssh", "web-1", "docker", "ps")

        assert result.exit_code == 0
        program, args = mock_exec.call_args.args
        assert program == "ssh"
        assert args[-3:] == ["root@10.0.0.5", "docker", "ps"]


class TestRegenerateCerts:
    def test_cancelled(self, invoke: Callable[..., Result], add_host: Callable[..., Host]) -> None:
        add_host("web-1")

        with patch.object(Host, "configure_auth") as mock_auth:
            result = invoke("regenerate-certs", "web-1", input="n\n")

        assert result.exit_code == 0
        assert "Cancelled" in result.output
        mock_auth.assert_not_called()

    def test_confirmed(self, invoke: Callable[..., Result], add_host: Callable[..., Host]) -> None:
        add_host("web-1")

        with patch.object(Host, "configure_auth") as mock_auth:
            result = invoke("regenerate-certs", "-y", "web-1")

        assert result.exit_code == 0
        mock_auth.assert_called_once()


class TestMain:
    """Tests for the error mapping in main()."""

    def test_usage_error(self) -> None:
        with (
            patch.object(sys, "argv", ["dockyard", "no-such-command"]),
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 2

    def test_dockyard_error(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """Errors from dockyard print one line and exit 1."""
        bad_config = tmp_path / "bad.yaml"
        bad_config.write_text("{ invalid yaml content")

        with (
            patch.object(sys, "argv", ["dockyard", "--config", str(bad_config), "ls"]),
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 1
        assert "Invalid YAML" in capsys.readouterr().err
