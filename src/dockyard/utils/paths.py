"""Local filesystem layout for machines and trust material.

All paths hang off a base directory, which is ``$MACHINE_DIR`` when set
and the user's home directory otherwise::

    <base>/.docker/machines/            one directory per machine
    <base>/.docker/machines/.client/    CA and client certs for the docker client
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path

CLIENT_DIR_NAME = ".client"


def get_base_dir() -> Path:
    """Root under which the .docker tree lives."""
    base_dir = os.environ.get("MACHINE_DIR")
    if base_dir:
        return Path(base_dir).expanduser()
    return Path.home()


def get_docker_dir() -> Path:
    return get_base_dir() / ".docker"


def get_machine_dir() -> Path:
    """Directory holding one sub-directory per machine."""
    return get_docker_dir() / "machines"


def get_machine_client_cert_dir() -> Path:
    """Directory holding the docker client's CA, cert and key."""
    return get_machine_dir() / CLIENT_DIR_NAME


def get_username() -> str:
    """Name of the local OS user, used as the certificate organization."""
    for var in ("USER", "USERNAME"):
        value = os.environ.get(var)
        if value:
            return value
    return "unknown"


def copy_file(src: str | Path, dst: str | Path) -> None:
    """Copy file contents from ``src`` to ``dst``, creating parent dirs.

    Args:
        src: Existing file.
        dst: Destination path (overwritten).
    """
    dst_path = Path(dst)
    dst_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(src, dst_path)
