"""HTTP client for the rivet hypervisor API.

Every endpoint takes the machine name as a query parameter and answers with
``{"status_code": int, "response": str}``. An HTTP 401 carries no body and
is reported as ``Unauthorized``.
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from dockyard.core.exceptions import DriverError
from dockyard.utils.logging import get_logger

logger = get_logger("drivers.rivet_api")


class ApiResponse(BaseModel):
    """Envelope returned by every rivet endpoint."""

    status_code: int = 0
    response: str = ""

    @property
    def ok(self) -> bool:
        return self.status_code == 200


class RivetAPI:
    """Thin wrapper over the rivet endpoints.

    Args:
        endpoint: Base URL of the API (``http://rivet:8080``).
        auth_token: Sent as ``X-Auth-Token`` when non-empty.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, used to stub the API in tests.
    """

    def __init__(
        self,
        endpoint: str,
        auth_token: str = "",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        if self.auth_token:
            return {"X-Auth-Token": self.auth_token}
        return {}

    def _request(
        self,
        method: str,
        path: str,
        params: list[tuple[str, Any]],
        content: bytes | None = None,
    ) -> ApiResponse:
        url = f"{self.endpoint}{path}"
        logger.debug(f"rivet request: method={method} url={url} params={params}")

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.request(
                    method, url, params=params, content=content, headers=self._headers()
                )
        except httpx.HTTPError as e:
            raise DriverError(
                f"Failed to reach rivet API at {self.endpoint}: {e}",
                details={"driver": "rivet"},
            ) from e

        if response.status_code == 401:
            return ApiResponse(status_code=401, response="Unauthorized")

        try:
            return ApiResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise DriverError(
                f"Invalid response from rivet API ({response.status_code}): {response.text}",
                details={"driver": "rivet", "path": path},
            ) from e

    def _machine_call(self, method: str, path: str, name: str) -> ApiResponse:
        return self._request(method, path, [("name", name)])

    def create(
        self,
        name: str,
        key: bytes,
        cpu: int,
        memory: int,
        storage: int,
        image: str = "",
        env: list[str] | None = None,
        user_data: str = "",
    ) -> ApiResponse:
        """Create an instance authorized for the public ``key``."""
        params: list[tuple[str, Any]] = [
            ("name", name),
            ("cpu", cpu),
            ("memory", memory),
            ("storage", storage),
            ("image", image),
        ]
        params.extend(("env", value) for value in env or [])
        if user_data:
            params.append(("userdata", user_data))
        return self._request("POST", "/create", params, content=key)

    def get_state(self, name: str) -> ApiResponse:
        return self._machine_call("GET", "/state", name)

    def get_ip(self, name: str) -> ApiResponse:
        return self._machine_call("GET", "/ip", name)

    def start(self, name: str) -> ApiResponse:
        return self._machine_call("GET", "/start", name)

    def stop(self, name: str) -> ApiResponse:
        return self._machine_call("GET", "/stop", name)

    def restart(self, name: str) -> ApiResponse:
        return self._machine_call("GET", "/restart", name)

    def kill(self, name: str) -> ApiResponse:
        return self._machine_call("GET", "/kill", name)

    def remove(self, name: str) -> ApiResponse:
        return self._machine_call("GET", "/remove", name)
