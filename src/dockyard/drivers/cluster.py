"""Fleet driver: one machine name standing for a group of existing machines.

Lifecycle calls fan out to every member on a bounded thread pool. A member
failure is logged and never fails the aggregate call.
"""

from __future__ import annotations

import math
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from pydantic import PrivateAttr

from dockyard.core.exceptions import DockyardError, DriverError, NotSupportedError
from dockyard.drivers.base import Driver, HostLookup
from dockyard.models.options import DriverFlag, DriverOptions, FlagKind
from dockyard.models.state import State
from dockyard.utils.logging import get_logger

if TYPE_CHECKING:
    from dockyard.core.host import Host

logger = get_logger("drivers.cluster")

DEFAULT_MAX_WORKERS = 8
DEFAULT_MEMBER_TIMEOUT = 600

MemberAction = Callable[["Host", float, threading.Event], None]


def _start(host: Host, timeout: float, cancel: threading.Event) -> None:
    host.start(state_timeout=timeout, cancel=cancel)


def _stop(host: Host, timeout: float, cancel: threading.Event) -> None:
    host.stop(state_timeout=timeout, cancel=cancel)


def _kill(host: Host, timeout: float, cancel: threading.Event) -> None:
    host.kill(state_timeout=timeout, cancel=cancel)


def _upgrade(host: Host, timeout: float, cancel: threading.Event) -> None:
    host.upgrade()


def _remove(host: Host, timeout: float, cancel: threading.Event) -> None:
    host.remove()


ACTIONS: dict[str, MemberAction] = {
    "start": _start,
    "stop": _stop,
    "kill": _kill,
    "upgrade": _upgrade,
    "rm": _remove,
}

# Members already in this state are skipped for the action
SKIP_STATES = {
    "start": State.RUNNING,
    "stop": State.STOPPED,
}


class ClusterDriver(Driver):
    """A named set of machines from the same store.

    Members are resolved by name through the store bound with
    :meth:`bind_store`. The cluster has no engine or SSH endpoint of its own.
    """

    name = "cluster"
    requires_provisioning = False
    waits_for_state = False

    swarm_master: bool = False
    swarm_host: str = ""
    swarm_discovery: str = ""
    cluster_nodes: list[str] = []
    max_workers: int = DEFAULT_MAX_WORKERS
    member_timeout: int = DEFAULT_MEMBER_TIMEOUT

    _store: HostLookup | None = PrivateAttr(default=None)

    @classmethod
    def get_create_flags(cls) -> list[DriverFlag]:
        return [
            DriverFlag("cluster-node", "Cluster node (machine name)", FlagKind.STRING_SLICE),
            DriverFlag(
                "cluster-max-workers",
                "Maximum concurrent member operations",
                FlagKind.INT,
                DEFAULT_MAX_WORKERS,
            ),
            DriverFlag(
                "cluster-member-timeout",
                "Seconds allowed for one member operation",
                FlagKind.INT,
                DEFAULT_MEMBER_TIMEOUT,
            ),
        ]

    def set_config_from_flags(self, opts: DriverOptions) -> None:
        self.swarm_master = opts.get_bool("swarm-master")
        self.swarm_host = opts.get_string("swarm-host")
        self.swarm_discovery = opts.get_string("swarm-discovery")
        self.cluster_nodes = opts.get_string_slice("cluster-node")
        if not self.cluster_nodes:
            opts.require("cluster-node")
        self.max_workers = opts.get_int("cluster-max-workers", DEFAULT_MAX_WORKERS)
        self.member_timeout = opts.get_int("cluster-member-timeout", DEFAULT_MEMBER_TIMEOUT)

    def bind_store(self, store: HostLookup) -> None:
        self._store = store

    def get_members(self) -> list[Host]:
        """Resolve every member through the bound store.

        Raises:
            DriverError: If no store is bound.
            HostNotFoundError: If a member does not exist.
        """
        if self._store is None:
            raise DriverError(
                f"Cluster '{self.machine_name}' is not bound to a store",
                details={"driver": self.name},
            )
        return [self._store.get(node) for node in self.cluster_nodes]

    def pre_create_check(self) -> None:
        self.get_members()

    def create(self) -> None:
        logger.info(f"Created cluster {self.machine_name} with {len(self.cluster_nodes)} node(s)")

    def get_state(self) -> State:
        try:
            members = self.get_members()
        except DockyardError as e:
            logger.warning(f"Unable to resolve members of {self.machine_name}: {e}")
            return State.ERROR

        for member in members:
            try:
                member_state = member.get_state()
            except DockyardError as e:
                logger.debug(f"State query failed for {member.name}: {e}")
                return State.DEGRADED
            if member_state != State.RUNNING:
                return State.DEGRADED
        return State.RUNNING

    def _member_tasks(self, action: str, members: list[Host]) -> list[Host]:
        skip_state = SKIP_STATES.get(action)
        if skip_state is None:
            return members

        selected = []
        for member in members:
            try:
                member_state = member.get_state()
            except DockyardError as e:
                logger.warning(f"unable to get state for node {member.name}: {e}")
                continue
            if member_state == skip_state:
                logger.debug(f"Skipping {action} of {member.name}: already {member_state.value}")
                continue
            selected.append(member)
        return selected

    def cluster_action(self, action: str) -> dict[str, BaseException | None]:
        """Run ``action`` on every applicable member and wait for them all.

        Each member gets ``member_timeout`` seconds from the moment its
        task can first run. Tasks still running after the join deadline are
        cancelled through the shared token and abandoned.

        Args:
            action: One of ``start``, ``stop``, ``kill``, ``upgrade``, ``rm``.

        Returns:
            Member name to the exception it raised, or None on success.
        """
        func = ACTIONS[action]
        members = self._member_tasks(action, self.get_members())
        if not members:
            return {}

        workers = max(1, min(self.max_workers, len(members)))
        deadline = self.member_timeout * math.ceil(len(members) / workers)
        cancel = threading.Event()
        results: dict[str, BaseException | None] = {}

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"cluster-{action}")
        try:
            futures: dict[Future[None], Host] = {
                executor.submit(func, member, self.member_timeout, cancel): member
                for member in members
            }
            done, not_done = wait(futures, timeout=deadline)

            for future in done:
                member = futures[future]
                error = future.exception()
                results[member.name] = error
                if error is not None:
                    logger.warning(f"unable to {action} node {member.name}: {error}")

            if not_done:
                cancel.set()
                for future in not_done:
                    member = futures[future]
                    future.cancel()
                    results[member.name] = TimeoutError(
                        f"{action} did not finish within {self.member_timeout}s"
                    )
                    logger.warning(
                        f"unable to {action} node {member.name}: "
                        f"timed out after {self.member_timeout}s"
                    )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return results

    def start(self) -> None:
        self.cluster_action("start")

    def stop(self) -> None:
        self.cluster_action("stop")

    def restart(self) -> None:
        self.cluster_action("stop")
        self.cluster_action("start")

    def kill(self) -> None:
        self.cluster_action("kill")

    def upgrade(self) -> None:
        self.cluster_action("upgrade")

    def remove(self) -> None:
        self.cluster_action("rm")

    def get_ip(self) -> str:
        raise NotSupportedError(self.name, "ip")

    def get_url(self) -> str:
        raise NotSupportedError(self.name, "url")

    def get_ssh_hostname(self) -> str:
        raise NotSupportedError(self.name, "ssh")

    def get_ssh_port(self) -> int:
        raise NotSupportedError(self.name, "ssh")

    def get_ssh_username(self) -> str:
        raise NotSupportedError(self.name, "ssh")

    def get_ssh_key_path(self) -> str:
        raise NotSupportedError(self.name, "ssh")
