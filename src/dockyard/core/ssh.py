"""SSH connection manager with connection pooling.

This module provides a thread-safe SSH connection manager that handles:
- Connection pooling keyed by ``user@host:port``
- Automatic reconnection on stale connections
- Retry logic with exponential backoff for command execution
- Binary-safe file upload over the channel's stdin
- Plain TCP reachability probes used before SSH is attempted
"""

from __future__ import annotations

import contextlib
import shlex
import socket
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path

import paramiko
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from dockyard.core.exceptions import (
    SSHAuthenticationError,
    SSHConnectionError,
    SSHTimeoutError,
)
from dockyard.models.ssh import SSHTarget
from dockyard.utils.logging import get_logger
from dockyard.utils.retry import retry_with_backoff

logger = get_logger("ssh")


@dataclass
class SSHResult:
    """Result from an SSH command execution.

    Args:
        stdout: Standard output from the command.
        stderr: Standard error from the command.
        exit_code: Exit code of the command.
        host: Name of the machine where the command ran.
        command: The command that was executed.
    """

    stdout: str
    stderr: str
    exit_code: int
    host: str
    command: str

    @property
    def success(self) -> bool:
        """Check if command succeeded (exit code 0)."""
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr output."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


@dataclass
class PooledConnection:
    """A pooled SSH connection with metadata.

    Args:
        client: The Paramiko SSH client.
        target: The endpoint this connection is for.
        created_at: Timestamp when connection was created.
    """

    client: paramiko.SSHClient
    target: SSHTarget
    created_at: float = field(default_factory=time.time)

    def is_active(self) -> bool:
        transport = self.client.get_transport()
        return transport is not None and transport.is_active()


def is_port_open(hostname: str, port: int, timeout: float = 5.0) -> bool:
    """Return True if a TCP connection to ``hostname:port`` succeeds."""
    try:
        with socket.create_connection((hostname, port), timeout=timeout):
            return True
    except OSError as e:
        logger.debug(f"TCP {hostname}:{port} not reachable: {e}")
        return False


def generate_ssh_key(private_key_path: str | Path, bits: int = 2048) -> bytes:
    """Generate an RSA key pair for logging into a new machine.

    The private key is written as PEM with mode 0600 and the public key in
    OpenSSH format to ``<private_key_path>.pub``.

    Returns:
        The OpenSSH public key line.
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_openssh = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )

    key_path = Path(private_key_path)
    key_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_bytes(private_pem)
    key_path.chmod(0o600)
    Path(f"{key_path}.pub").write_bytes(public_openssh + b"\n")
    return public_openssh


def ssh_command_args(target: SSHTarget, command: list[str] | None = None) -> list[str]:
    """Build an ``ssh`` argv for an interactive session with a machine.

    Args:
        target: Machine endpoint.
        command: Optional remote command words.

    Returns:
        Argument list suitable for ``os.execvp``.
    """
    args = [
        "ssh",
        "-o",
        "IdentitiesOnly=yes",
        "-o",
        "StrictHostKeyChecking=no",
        "-o",
        "UserKnownHostsFile=/dev/null",
        "-o",
        "LogLevel=quiet",
        "-p",
        str(target.port),
    ]
    if target.ssh_key:
        args.extend(["-i", target.ssh_key])
    destination = f"{target.username}@{target.hostname}" if target.username else target.hostname
    args.append(destination)
    if command:
        args.extend(command)
    return args


class SSHManager:
    """Manages SSH connections with pooling and retry logic.

    Args:
        default_timeout: Default timeout for SSH operations in seconds.
        pool_max_age: Maximum age of pooled connections in seconds.

    Example:
        >>> manager = SSHManager()
        >>> target = SSHTarget(name="web-1", hostname="10.0.0.5", username="root")
        >>> result = manager.run(target, "docker version")
        >>> print(result.stdout)
        >>> manager.close_all()
    """

    def __init__(
        self,
        default_timeout: int = 30,
        pool_max_age: int = 300,
    ) -> None:
        self._lock = threading.RLock()
        self._pool: dict[str, PooledConnection] = {}
        self.default_timeout = default_timeout
        self.pool_max_age = pool_max_age

    def _create_client(
        self,
        target: SSHTarget,
        timeout: float | None = None,
    ) -> paramiko.SSHClient:
        """Create a new SSH client connection.

        Args:
            target: Endpoint to connect to.
            timeout: Connection timeout in seconds.

        Returns:
            Connected SSH client.

        Raises:
            SSHAuthenticationError: If authentication fails.
            SSHTimeoutError: If connection times out.
            SSHConnectionError: For other connection failures.
        """
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_timeout = timeout or self.default_timeout

        key_filename = None
        if target.ssh_key:
            key_path = Path(target.ssh_key).expanduser()
            if key_path.exists():
                key_filename = str(key_path)
            else:
                logger.warning(f"SSH key not found: {target.ssh_key}")

        try:
            logger.debug(f"Connecting to {target.hostname}:{target.port} as {target.username}")
            client.connect(
                hostname=target.hostname,
                port=target.port,
                username=target.username,
                key_filename=key_filename,
                look_for_keys=key_filename is None,
                allow_agent=key_filename is None,
                timeout=connect_timeout,
            )
            logger.debug(f"Connected to {target.name}")
            return client

        except paramiko.AuthenticationException as e:
            client.close()
            raise SSHAuthenticationError(target.hostname, target.username) from e

        except TimeoutError as e:
            client.close()
            raise SSHTimeoutError(target.hostname, connect_timeout) from e

        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise SSHConnectionError(target.hostname, str(e)) from e

    def get_client(self, target: SSHTarget, force_new: bool = False) -> paramiko.SSHClient:
        """Get a pooled or new SSH client for an endpoint.

        Args:
            target: Endpoint to connect to.
            force_new: Force creating a new connection.

        Returns:
            SSH client (may be from pool or newly created).
        """
        key = target.pool_key
        with self._lock:
            if not force_new and key in self._pool:
                pooled = self._pool[key]
                age = time.time() - pooled.created_at
                if pooled.is_active() and age < self.pool_max_age:
                    logger.debug(f"Reusing pooled connection for {target.name}")
                    return pooled.client

                logger.debug(f"Removing stale connection for {target.name}")
                with contextlib.suppress(Exception):
                    pooled.client.close()
                del self._pool[key]

            client = self._create_client(target)
            self._pool[key] = PooledConnection(client=client, target=target)
            return client

    def _discard(self, target: SSHTarget) -> None:
        with self._lock:
            pooled = self._pool.pop(target.pool_key, None)
        if pooled is not None:
            with contextlib.suppress(Exception):
                pooled.client.close()

    @retry_with_backoff(
        max_attempts=3,
        base_delay=1.0,
        exceptions=(SSHConnectionError,),
    )
    def run(
        self,
        target: SSHTarget,
        command: str,
        timeout: int | None = None,
        dry_run: bool = False,
    ) -> SSHResult:
        """Execute a command on a machine.

        Args:
            target: Endpoint to run the command on.
            command: Command to execute.
            timeout: Command execution timeout.
            dry_run: If True, don't actually run the command.

        Returns:
            SSHResult with command output and exit code.

        Example:
            >>> result = manager.run(target, "cat /etc/os-release")
            >>> if result.success:
            ...     print(result.stdout)
        """
        if dry_run:
            logger.info(f"[DRY RUN] Would execute on {target.name}: {command}")
            return SSHResult(
                stdout="[dry-run mode - command not executed]",
                stderr="",
                exit_code=0,
                host=target.name,
                command=command,
            )

        logger.debug(f"Executing on {target.name}: {command}")
        exec_timeout = timeout or self.default_timeout

        try:
            client = self.get_client(target)
            _stdin, stdout, stderr = client.exec_command(command, timeout=exec_timeout)

            stdout_data = stdout.read().decode("utf-8", errors="replace")
            stderr_data = stderr.read().decode("utf-8", errors="replace")
            exit_code = stdout.channel.recv_exit_status()

        except TimeoutError as e:
            raise SSHConnectionError(
                target.hostname, f"Command timed out after {exec_timeout}s"
            ) from e

        except paramiko.SSHException as e:
            self._discard(target)
            raise SSHConnectionError(target.hostname, str(e)) from e

        result = SSHResult(
            stdout=stdout_data.strip(),
            stderr=stderr_data.strip(),
            exit_code=exit_code,
            host=target.name,
            command=command,
        )

        if result.success:
            logger.debug(f"Command succeeded on {target.name}")
        else:
            logger.debug(f"Command failed on {target.name} with exit code {exit_code}")

        return result

    def write_file(
        self,
        target: SSHTarget,
        remote_path: str,
        data: bytes,
        mode: int | None = None,
        sudo: bool = True,
        timeout: int | None = None,
    ) -> SSHResult:
        """Write ``data`` to ``remote_path`` on a machine.

        The bytes travel over the channel's stdin into ``tee``; they never
        appear on the remote command line, so any content (binary, quotes,
        newlines) arrives unchanged. The path is shell-quoted.

        Args:
            target: Endpoint to write to.
            remote_path: Absolute path on the machine (overwritten).
            data: File contents.
            mode: Optional octal permission bits applied after writing.
            sudo: Run ``tee``/``chmod`` through sudo.
            timeout: Channel timeout.

        Returns:
            SSHResult of the write (and chmod, when requested).
        """
        prefix = "sudo " if sudo else ""
        quoted = shlex.quote(remote_path)
        command = f"{prefix}tee {quoted} > /dev/null"
        if mode is not None:
            command = f"{command} && {prefix}chmod {mode:o} {quoted}"

        logger.debug(f"Writing {len(data)} bytes to {target.name}:{remote_path}")
        exec_timeout = timeout or self.default_timeout

        try:
            client = self.get_client(target)
            stdin, stdout, stderr = client.exec_command(command, timeout=exec_timeout)
            stdin.write(data)
            stdin.flush()
            stdin.channel.shutdown_write()

            stdout_data = stdout.read().decode("utf-8", errors="replace")
            stderr_data = stderr.read().decode("utf-8", errors="replace")
            exit_code = stdout.channel.recv_exit_status()

        except TimeoutError as e:
            raise SSHConnectionError(
                target.hostname, f"File transfer timed out after {exec_timeout}s"
            ) from e

        except paramiko.SSHException as e:
            self._discard(target)
            raise SSHConnectionError(target.hostname, str(e)) from e

        return SSHResult(
            stdout=stdout_data.strip(),
            stderr=stderr_data.strip(),
            exit_code=exit_code,
            host=target.name,
            command=command,
        )

    def test_connection(self, target: SSHTarget, timeout: float = 10) -> tuple[bool, str]:
        """Open a fresh connection and run ``exit 0``.

        No retries are made; callers that need to wait loop over this.

        Args:
            target: Endpoint to test.
            timeout: Connection timeout in seconds.

        Returns:
            Tuple of (success, message).
        """
        try:
            client = self._create_client(target, timeout=timeout)
        except SSHConnectionError as e:
            return False, e.message

        try:
            _stdin, stdout, _stderr = client.exec_command("exit 0", timeout=timeout)
            exit_code = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            return False, f"Connection failed: {e}"
        finally:
            client.close()

        if exit_code == 0:
            return True, f"Connected to {target.display_name}"
        return False, f"'exit 0' returned {exit_code} on {target.name}"

    def close(self, target: SSHTarget) -> None:
        """Close the pooled connection for an endpoint."""
        self._discard(target)
        logger.debug(f"Closed connection for {target.name}")

    def close_all(self) -> None:
        """Close all pooled connections."""
        with self._lock:
            for pooled in self._pool.values():
                with contextlib.suppress(Exception):
                    pooled.client.close()
            self._pool.clear()
            logger.debug("Closed all SSH connections")

    @property
    def active_connections(self) -> list[str]:
        """Pool keys of currently open connections."""
        with self._lock:
            return [key for key, pooled in self._pool.items() if pooled.is_active()]

    def __enter__(self) -> SSHManager:
        return self

    def __exit__(self, *args: object) -> None:
        self.close_all()
