"""Driver for the rivet hypervisor API."""

from __future__ import annotations

from dockyard.core.exceptions import DriverError
from dockyard.core.ssh import generate_ssh_key
from dockyard.drivers.base import Driver
from dockyard.drivers.cloudinit import generate_cloud_init_base64
from dockyard.drivers.rivet_api import ApiResponse, RivetAPI
from dockyard.models.options import DriverFlag, DriverOptions, FlagKind
from dockyard.models.state import State
from dockyard.utils.logging import get_logger

logger = get_logger("drivers.rivet")

STATE_MAP = {
    "running": State.RUNNING,
    "stopped": State.STOPPED,
    "pending": State.STARTING,
}


class RivetDriver(Driver):
    """Machines backed by a rivet instance.

    The instance is created with a freshly generated SSH key; its IP is
    looked up from the API on demand and never cached.
    """

    name = "rivet"

    api_endpoint: str = ""
    auth_token: str = ""
    cpu: int = 1
    memory: int = 1024
    storage: int = 10
    image: str = ""
    env: list[str] = []
    ssh_user: str = "root"
    ssh_port: int = 22
    cloud_init: bool = False

    @classmethod
    def get_create_flags(cls) -> list[DriverFlag]:
        return [
            DriverFlag("rivet-address", "Address of rivet API endpoint", envvar="RIVET_ADDRESS"),
            DriverFlag(
                "rivet-auth-token", "Auth token for the rivet API", envvar="RIVET_AUTH_TOKEN"
            ),
            DriverFlag("rivet-cpu", "CPU for rivet instance", FlagKind.INT, 1, "RIVET_CPU"),
            DriverFlag(
                "rivet-memory",
                "Memory for rivet instance (in MB)",
                FlagKind.INT,
                1024,
                "RIVET_MEMORY",
            ),
            DriverFlag(
                "rivet-storage",
                "Storage for rivet instance (in GB)",
                FlagKind.INT,
                10,
                "RIVET_STORAGE",
            ),
            DriverFlag("rivet-image", "Image for rivet instance", envvar="RIVET_IMAGE"),
            DriverFlag("rivet-env", "Environment for rivet instance", FlagKind.STRING_SLICE),
            DriverFlag(
                "rivet-ssh-user",
                "SSH user for rivet instance",
                default="root",
                envvar="RIVET_SSH_USER",
            ),
            DriverFlag("rivet-ssh-port", "SSH port for rivet instance", FlagKind.INT, 22),
            DriverFlag(
                "rivet-cloud-init",
                "Bootstrap docker with cloud-init user data",
                FlagKind.BOOL,
                False,
            ),
        ]

    def set_config_from_flags(self, opts: DriverOptions) -> None:
        self.api_endpoint = opts.require("rivet-address")
        self.auth_token = opts.get_string("rivet-auth-token")
        self.cpu = opts.get_int("rivet-cpu", 1)
        self.memory = opts.get_int("rivet-memory", 1024)
        self.storage = opts.get_int("rivet-storage", 10)
        self.image = opts.get_string("rivet-image")
        self.env = opts.get_string_slice("rivet-env")
        self.ssh_user = opts.get_string("rivet-ssh-user", "root")
        self.ssh_port = opts.get_int("rivet-ssh-port", 22)
        self.cloud_init = opts.get_bool("rivet-cloud-init")

    def get_api(self) -> RivetAPI:
        return RivetAPI(self.api_endpoint, self.auth_token)

    def _check(self, resp: ApiResponse, action: str) -> str:
        if not resp.ok:
            raise DriverError(resp.response, details={"driver": self.name, "action": action})
        logger.debug(f"{action} {self.machine_name}: {resp.response}")
        return resp.response

    def create(self) -> None:
        logger.info("Creating Rivet Instance...")
        public_key = generate_ssh_key(self.get_ssh_key_path())
        user_data = generate_cloud_init_base64(self) if self.cloud_init else ""

        resp = self.get_api().create(
            self.machine_name,
            public_key,
            self.cpu,
            self.memory,
            self.storage,
            image=self.image,
            env=self.env,
            user_data=user_data,
        )
        self._check(resp, "create")

    def get_ip(self) -> str:
        return self._check(self.get_api().get_ip(self.machine_name), "ip")

    def get_url(self) -> str:
        return self.docker_url()

    def get_state(self) -> State:
        value = self._check(self.get_api().get_state(self.machine_name), "state")
        return STATE_MAP.get(value, State.NONE)

    def start(self) -> None:
        self._check(self.get_api().start(self.machine_name), "start")

    def stop(self) -> None:
        self._check(self.get_api().stop(self.machine_name), "stop")

    def restart(self) -> None:
        self._check(self.get_api().restart(self.machine_name), "restart")

    def kill(self) -> None:
        self._check(self.get_api().kill(self.machine_name), "kill")

    def remove(self) -> None:
        self._check(self.get_api().remove(self.machine_name), "remove")

    def get_ssh_hostname(self) -> str:
        return self.get_ip()

    def get_ssh_port(self) -> int:
        return self.ssh_port or 22

    def get_ssh_username(self) -> str:
        return self.ssh_user
