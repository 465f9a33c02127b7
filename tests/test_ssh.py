"""Tests for SSH connection management."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import paramiko
import pytest

from dockyard.core.exceptions import SSHAuthenticationError, SSHTimeoutError
from dockyard.core.ssh import SSHManager, SSHResult, generate_ssh_key, ssh_command_args
from dockyard.models.ssh import SSHTarget, ssh_target_from_driver

from conftest import FakeDriver


def connected_client(mock_client_class: MagicMock) -> MagicMock:
    """Configure the patched SSHClient class to return an active client."""
    mock_client = MagicMock()
    mock_client_class.return_value = mock_client
    mock_transport = MagicMock()
    mock_transport.is_active.return_value = True
    mock_client.get_transport.return_value = mock_transport
    return mock_client


def channel_output(stdout: bytes, exit_code: int = 0, stderr: bytes = b"") -> tuple:
    mock_stdout = MagicMock()
    mock_stdout.read.return_value = stdout
    mock_stdout.channel.recv_exit_status.return_value = exit_code
    mock_stderr = MagicMock()
    mock_stderr.read.return_value = stderr
    return MagicMock(), mock_stdout, mock_stderr


class TestSSHResult:
    """Tests for SSHResult dataclass."""

    def test_success_property(self) -> None:
        """Test the success property."""
        success_result = SSHResult(
            stdout="output", stderr="", exit_code=0, host="web-1", command="echo test"
        )
        assert success_result.success is True

        failure_result = SSHResult(
            stdout="", stderr="error", exit_code=1, host="web-1", command="false"
        )
        assert failure_result.success is False

    def test_output_property(self) -> None:
        """Test the combined output property."""
        result = SSHResult(
            stdout="stdout content",
            stderr="stderr content",
            exit_code=0,
            host="web-1",
            command="test",
        )
        assert result.output == "stdout content\nstderr content"

    def test_output_empty(self) -> None:
        result = SSHResult(stdout="", stderr="", exit_code=0, host="web-1", command="test")
        assert result.output == ""


class TestSSHTarget:
    """Tests for SSHTarget and building one from a driver."""

    def test_from_driver(self, tmp_path: Path) -> None:
        driver = FakeDriver(machine_name="web-1", ip_address="10.0.0.9")
        driver.set_store_path(tmp_path / "web-1")

        target = ssh_target_from_driver(driver)

        assert target.name == "web-1"
        assert target.hostname == "10.0.0.9"
        assert target.username == "root"
        assert target.port == 22
        assert target.ssh_key == str(tmp_path / "web-1" / "id_rsa")
        assert target.pool_key == "root@10.0.0.9:22"

    def test_expands_key_path(self) -> None:
        target = SSHTarget(name="web-1", hostname="10.0.0.9", ssh_key="~/id_rsa")

        assert target.ssh_key == str(Path.home() / "id_rsa")


class TestHelpers:
    def test_ssh_command_args(self) -> None:
        """Interactive argv disables host key checks and uses the machine key."""
        target = SSHTarget(
            name="web-1", hostname="10.0.0.9", username="ubuntu", port=2222, ssh_key="/k/id_rsa"
        )

        args = ssh_command_args(target, ["uptime"])

        assert args[0] == "ssh"
        assert "StrictHostKeyChecking=no" in args
        assert args[args.index("-p") + 1] == "2222"
        assert args[args.index("-i") + 1] == "/k/id_rsa"
        assert args[-2:] == ["ubuntu@10.0.0.9", "uptime"]

    def test_generate_ssh_key(self, tmp_path: Path) -> None:
        key_path = tmp_path / "web-1" / "id_rsa"

        public = generate_ssh_key(key_path, bits=1024)

        assert public.startswith(b"ssh-rsa ")
        assert key_path.stat().st_mode & 0o777 == 0o600
        assert (tmp_path / "web-1" / "id_rsa.pub").read_bytes().strip() == public


class TestSSHManager:
    """Tests for SSHManager."""

    @pytest.fixture
    def ssh_manager(self) -> SSHManager:
        """Create an SSH manager for testing."""
        return SSHManager(default_timeout=10, pool_max_age=60)

    @pytest.fixture
    def target(self) -> SSHTarget:
        """Create a test endpoint."""
        return SSHTarget(name="web-1", hostname="192.168.1.100", username="admin", port=22)

    def test_init(self, ssh_manager: SSHManager) -> None:
        """Test SSHManager initialization."""
        assert ssh_manager.default_timeout == 10
        assert ssh_manager.pool_max_age == 60
        assert ssh_manager.active_connections == []

    @patch("paramiko.SSHClient")
    def test_create_client_success(
        self,
        mock_client_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """Test successful client creation."""
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client

        client = ssh_manager._create_client(target)

        assert client == mock_client
        mock_client.connect.assert_called_once()

    @patch("paramiko.SSHClient")
    def test_create_client_auth_failure(
        self,
        mock_client_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """Test authentication failure."""
        mock_client = MagicMock()
        mock_client.connect.side_effect = paramiko.AuthenticationException()
        mock_client_class.return_value = mock_client

        with pytest.raises(SSHAuthenticationError) as exc_info:
            ssh_manager._create_client(target)

        assert target.hostname in str(exc_info.value)
        mock_client.close.assert_called_once()

    @patch("paramiko.SSHClient")
    def test_create_client_timeout(
        self,
        mock_client_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """Test connection timeout."""
        mock_client = MagicMock()
        mock_client.connect.side_effect = TimeoutError()
        mock_client_class.return_value = mock_client

        with pytest.raises(SSHTimeoutError) as exc_info:
            ssh_manager._create_client(target, timeout=5)

        assert "5s" in str(exc_info.value)

    def test_dry_run_mode(self, ssh_manager: SSHManager, target: SSHTarget) -> None:
        """Test dry-run mode doesn't execute commands."""
        result = ssh_manager.run(target, "sudo service docker stop", dry_run=True)

        assert result.success is True
        assert "dry-run" in result.stdout.lower()

    @patch("paramiko.SSHClient")
    def test_run_command_success(
        self,
        mock_client_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """Test running a command successfully."""
        mock_client = connected_client(mock_client_class)
        mock_client.exec_command.return_value = channel_output(b"ID=ubuntu\n")

        result = ssh_manager.run(target, "cat /etc/os-release")

        assert result.success is True
        assert result.stdout == "ID=ubuntu"
        assert result.host == "web-1"

    @patch("paramiko.SSHClient")
    def test_run_command_failure(
        self,
        mock_client_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """A non-zero exit is returned, not raised."""
        mock_client = connected_client(mock_client_class)
        mock_client.exec_command.return_value = channel_output(b"", 127, b"not found")

        result = ssh_manager.run(target, "docker version")

        assert result.exit_code == 127
        assert result.stderr == "not found"

    @patch("paramiko.SSHClient")
    def test_write_file(
        self,
        mock_client_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """Contents go over stdin; the path is quoted and the mode applied."""
        mock_client = connected_client(mock_client_class)
        stdin, stdout, stderr = channel_output(b"")
        mock_client.exec_command.return_value = (stdin, stdout, stderr)
        data = b"EXTRA_ARGS='--tlsverify'\n"

        result = ssh_manager.write_file(target, "/etc/my docker/profile", data, mode=0o600)

        assert result.success
        command = mock_client.exec_command.call_args.args[0]
        assert command == (
            "sudo tee '/etc/my docker/profile' > /dev/null "
            "&& sudo chmod 600 '/etc/my docker/profile'"
        )
        stdin.write.assert_called_once_with(data)
        stdin.channel.shutdown_write.assert_called_once()

    @patch("paramiko.SSHClient")
    def test_connection_pooling(
        self,
        mock_client_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """Test that connections are pooled."""
        mock_client = connected_client(mock_client_class)

        client1 = ssh_manager.get_client(target)
        client2 = ssh_manager.get_client(target)

        assert client1 is client2
        assert mock_client.connect.call_count == 1

    @patch("paramiko.SSHClient")
    def test_close_connection(
        self,
        mock_client_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """Test closing a specific connection."""
        mock_client = connected_client(mock_client_class)

        ssh_manager.get_client(target)
        assert target.pool_key in ssh_manager.active_connections

        ssh_manager.close(target)
        assert target.pool_key not in ssh_manager.active_connections
        mock_client.close.assert_called()

    @patch("paramiko.SSHClient")
    def test_close_all(
        self,
        mock_client_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """Test closing all connections."""
        connected_client(mock_client_class)

        ssh_manager.get_client(target)
        ssh_manager.close_all()

        assert ssh_manager.active_connections == []

    @patch("paramiko.SSHClient")
    def test_test_connection_success(
        self,
        mock_client_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """'exit 0' succeeding means the machine is ready."""
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        mock_client.exec_command.return_value = channel_output(b"")

        success, message = ssh_manager.test_connection(target)

        assert success is True
        assert "Connected" in message
        mock_client.close.assert_called_once()

    @patch("paramiko.SSHClient")
    def test_test_connection_failure(
        self,
        mock_client_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """Test failed connection test."""
        mock_client = MagicMock()
        mock_client.connect.side_effect = paramiko.AuthenticationException()
        mock_client_class.return_value = mock_client

        success, message = ssh_manager.test_connection(target)

        assert success is False
        assert "authentication failed" in message

    def test_context_manager(self) -> None:
        """Test SSHManager as context manager."""
        with SSHManager() as manager:
            assert manager is not None
