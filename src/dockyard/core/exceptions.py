"""Custom exceptions for dockyard.

This module defines a hierarchy of exceptions used throughout dockyard
to provide meaningful error messages and enable proper error handling.

Exception Hierarchy:
    DockyardError (base)
    ├── ConfigurationError
    │   └── ConfigNotFoundError
    ├── InvalidInputError
    │   ├── InvalidHostNameError
    │   ├── HostExistsError
    │   └── MissingOptionError
    ├── HostNotFoundError
    ├── DriverError
    │   ├── UnknownDriverError
    │   ├── DriverAlreadyRegisteredError
    │   ├── NotSupportedError
    │   └── HostNotRunningError
    ├── SSHConnectionError
    │   ├── SSHAuthenticationError
    │   ├── SSHTimeoutError
    │   └── TooManyRetriesError
    ├── LifecycleError
    │   ├── StateTimeoutError
    │   ├── OperationCancelledError
    │   └── UpgradeDeferredError
    ├── ProvisionError
    │   ├── RemoteCommandError
    │   ├── UnknownOSError
    │   └── ProvisionerAlreadyRegisteredError
    └── CertificateError
"""

from __future__ import annotations

from typing import Any


class DockyardError(Exception):
    """Base exception for all dockyard errors.

    Args:
        message: Human-readable error message.
        details: Optional dictionary with additional error context.

    Attributes:
        message: The error message.
        details: Additional context about the error.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ConfigurationError(DockyardError):
    """Raised when there is a configuration-related error.

    Examples:
        - Invalid YAML syntax in config file
        - Missing required configuration fields
        - Invalid configuration values
    """


class ConfigNotFoundError(ConfigurationError):
    """Raised when the configuration file cannot be found.

    Args:
        path: The path where the config was expected.
    """

    def __init__(self, path: str) -> None:
        super().__init__(
            f"Configuration file not found: {path}",
            details={"path": path},
        )
        self.path = path


class InvalidInputError(DockyardError):
    """Raised when user input is rejected before any work is done."""


class InvalidHostNameError(InvalidInputError):
    """Raised when a machine name contains characters outside [a-zA-Z0-9.-].

    Args:
        name: The rejected name.
    """

    def __init__(self, name: str) -> None:
        super().__init__(
            "Invalid hostname specified. Hostnames must be comprised only of "
            'alphanumeric characters, ".", or "-".',
            details={"name": name},
        )
        self.name = name


class HostExistsError(InvalidInputError):
    """Raised when creating a machine whose name is already taken.

    Args:
        name: The machine name.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f"Machine '{name}' already exists", details={"name": name})
        self.name = name


class MissingOptionError(InvalidInputError):
    """Raised when a driver is missing a required option.

    Args:
        driver: Name of the driver.
        option: Name of the missing flag.
    """

    def __init__(self, driver: str, option: str) -> None:
        super().__init__(f"{driver} driver requires the --{option} option")
        self.driver = driver
        self.option = option


class HostNotFoundError(DockyardError):
    """Raised when a machine does not exist in the store.

    Args:
        name: The name of the machine that was not found.
    """

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Host '{name}' does not exist",
            details={"host_name": name},
        )
        self.name = name


class DriverError(DockyardError):
    """Raised when a driver or its backend reports a failure."""


class UnknownDriverError(DriverError):
    """Raised when constructing a driver name that was never registered.

    Args:
        name: The requested driver name.
        available: Names that are registered.
    """

    def __init__(self, name: str, available: list[str] | None = None) -> None:
        details: dict[str, Any] = {"driver": name}
        if available is not None:
            details["registered"] = ", ".join(available) or "(none)"
        super().__init__(f"hosts: unknown driver '{name}'", details=details)
        self.name = name
        self.available = available or []


class DriverAlreadyRegisteredError(DriverError):
    """Raised when a driver name is registered twice.

    Args:
        name: The duplicated driver name.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f"Name already registered: {name}", details={"driver": name})
        self.name = name


class NotSupportedError(DriverError):
    """Raised by a driver for an operation its backend cannot perform.

    Args:
        driver: Name of the driver.
        operation: The unsupported operation.
    """

    def __init__(self, driver: str, operation: str) -> None:
        super().__init__(
            f"{driver} driver does not support '{operation}'",
            details={"driver": driver, "operation": operation},
        )
        self.driver = driver
        self.operation = operation


class HostNotRunningError(DriverError):
    """Raised when an operation needs a running machine.

    Args:
        name: The machine name.
    """

    def __init__(self, name: str) -> None:
        super().__init__("host is not running", details={"host_name": name})
        self.name = name


class SSHConnectionError(DockyardError):
    """Raised when an SSH connection fails.

    Args:
        host: The hostname or IP address.
        message: Description of the connection failure.
    """

    def __init__(self, host: str, message: str) -> None:
        super().__init__(
            f"SSH connection to '{host}' failed: {message}",
            details={"host": host},
        )
        self.host = host


class SSHAuthenticationError(SSHConnectionError):
    """Raised when SSH authentication fails.

    Args:
        host: The hostname or IP address.
        username: The username used for authentication.
    """

    def __init__(self, host: str, username: str | None = None) -> None:
        msg = "authentication failed"
        if username:
            msg = f"authentication failed for user '{username}'"
        super().__init__(host, msg)
        self.username = username


class SSHTimeoutError(SSHConnectionError):
    """Raised when an SSH connection times out.

    Args:
        host: The hostname or IP address.
        timeout: The timeout value in seconds.
    """

    def __init__(self, host: str, timeout: float) -> None:
        super().__init__(host, f"connection timed out after {timeout}s")
        self.timeout = timeout
        self.details["timeout"] = timeout


class TooManyRetriesError(SSHConnectionError):
    """Raised when a machine never becomes reachable.

    Args:
        host: The hostname or IP address.
        attempts: Number of attempts made.
        last_error: Description of the last failure seen.
    """

    def __init__(self, host: str, attempts: int, last_error: str | None = None) -> None:
        msg = f"too many retries ({attempts})"
        if last_error:
            msg = f"{msg}. Last error: {last_error}"
        super().__init__(host, msg)
        self.attempts = attempts
        self.last_error = last_error


class LifecycleError(DockyardError):
    """Raised when a machine lifecycle operation cannot complete."""


class StateTimeoutError(LifecycleError):
    """Raised when a machine does not reach a state before the deadline.

    Args:
        name: The machine name.
        state: The awaited state.
        timeout: The deadline in seconds.
    """

    def __init__(self, name: str, state: str, timeout: float) -> None:
        super().__init__(
            f"Machine '{name}' did not reach state '{state}' within {timeout}s",
            details={"host_name": name, "state": state},
        )
        self.name = name
        self.state = state
        self.timeout = timeout


class OperationCancelledError(LifecycleError):
    """Raised when a wait is abandoned through its cancel token.

    Args:
        name: The machine name.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f"Operation on '{name}' was cancelled", details={"host_name": name})
        self.name = name


class UpgradeDeferredError(LifecycleError):
    """Raised by upgrade, which is not available in this release."""

    def __init__(self) -> None:
        super().__init__("centralized upgrade coming in the provisioner")


class ProvisionError(DockyardError):
    """Raised when provisioning a machine fails."""


class RemoteCommandError(ProvisionError):
    """Raised when a remote command exits non-zero.

    Args:
        host: Machine the command ran on.
        command: The command line.
        exit_code: The exit status.
        output: Captured stdout/stderr.
    """

    def __init__(self, host: str, command: str, exit_code: int, output: str = "") -> None:
        msg = f"Command failed on '{host}' with exit code {exit_code}: {command}"
        if output:
            msg = f"{msg}\n{output}"
        super().__init__(msg, details={"host": host, "exit_code": exit_code})
        self.host = host
        self.command = command
        self.exit_code = exit_code
        self.output = output


class UnknownOSError(ProvisionError):
    """Raised when no provisioner is compatible with the remote OS.

    Args:
        os_id: The detected os-release ID, if any.
    """

    def __init__(self, os_id: str | None = None) -> None:
        super().__init__("unable to detect OS", details={"os_id": os_id or "unknown"})
        self.os_id = os_id


class ProvisionerAlreadyRegisteredError(ProvisionError):
    """Raised when a provisioner name is registered twice.

    Args:
        name: The duplicated provisioner name.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f"Provisioner already registered: {name}")
        self.name = name


class CertificateError(DockyardError):
    """Raised when trust material cannot be generated or used.

    Examples:
        - CA key present without its certificate
        - Refusing to overwrite an existing CA
        - Unreadable PEM files
    """
