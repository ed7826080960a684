"""HTTP client for a remote vmrobot server.

Example usage::

    async with RobotClient("http://vmhost:7778", username="ci", password="s3cret") as client:
        vm = await client.clone_vm("win10", snapshot="clean")
        try:
            await vm.execute([
                MouseMove(x=100, y=200),
                MousePress(buttons=BUTTON1_MASK),
                MouseRelease(buttons=BUTTON1_MASK),
                TypeText(text="hello"),
            ])
        finally:
            await vm.close()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import httpx

from vmrobot.domain.errors import VMRobotError
from vmrobot.domain.models import ActionModel, ActionResult
from vmrobot.hypervisor.base import ProcessResult

logger = logging.getLogger(__name__)


class RemoteError(VMRobotError):
    """Raised when the server cannot be reached or reports a failure."""


def _wire_form(action: Any) -> Any:
    """Models go out in list form; anything else is sent as given.

    Raw items are not validated here: the server reports a bad action in
    its own slot of an isolated batch, or as the batch failure otherwise.
    """
    if isinstance(action, ActionModel):
        return action.to_list()
    if isinstance(action, tuple):
        return list(action)
    return action


class RemoteVM:
    """A session living on a remote vmrobot server."""

    def __init__(self, client: RobotClient, vm_id: str, urls: dict[str, str]) -> None:
        self._client = client
        self.id = vm_id
        self._urls = urls

    async def execute(self, actions: Iterable[ActionModel | list[Any] | dict[str, Any]], isolated: bool = False) -> Any:
        """Run a batch remotely.

        Returns:
            The batch output in strict mode, or a list of ActionResult
            in isolated mode.

        Raises:
            RemoteError: If the batch failed or the request failed.
        """
        payload = {
            "actions": [_wire_form(action) for action in actions],
            "isolated": isolated,
        }
        data = (await self._client._post(self._urls["execute"], payload)).json()
        if not data.get("success"):
            raise RemoteError(str(data.get("result")), vm_id=self.id)
        if isolated:
            return [ActionResult.model_validate(item) for item in data["result"]]
        return data.get("result")

    async def run(
        self,
        command_line: list[str],
        environment: list[str] | None = None,
        timeout_ms: int = 0,
    ) -> ProcessResult:
        """Run a process inside the guest."""
        payload = {
            "commandLine": command_line,
            "environment": environment or [],
            "timeoutMs": timeout_ms,
        }
        resp = await self._client._post(self._urls["run"], payload)
        return ProcessResult.model_validate(resp.json())

    async def close(self) -> None:
        await self._client._post(self._urls["close"], {})
        logger.info("Closed remote session %s", self.id)


class RobotClient:
    """Creates and drives sessions on a vmrobot server."""

    def __init__(
        self,
        base_url: str = "http://localhost:7778",
        username: str | None = None,
        password: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(username or "", password or "") if username or password else None
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def connect(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Create the HTTP client and verify the server is reachable."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            auth=self._auth,
            transport=transport,
        )
        try:
            resp = await self._client.get("/health")
            resp.raise_for_status()
            logger.info("Connected to vmrobot server at %s", self._base_url)
        except Exception as e:
            await self._client.aclose()
            self._client = None
            raise RemoteError(f"Failed to connect to server: {e}") from e

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from vmrobot server")

    async def connect_vm(self, machine: str) -> RemoteVM:
        """Attach to a running machine on the server."""
        return await self._create({"connect": machine})

    async def clone_vm(self, machine: str, snapshot: str | None = None) -> RemoteVM:
        """Clone and launch a machine on the server."""
        return await self._create({"clone": machine, "snapshot": snapshot})

    async def _create(self, payload: dict[str, Any]) -> RemoteVM:
        data = (await self._post("/", payload)).json()
        logger.info("Created remote session %s", data["id"])
        return RemoteVM(self, data["id"], data)

    async def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        if self._client is None:
            raise RemoteError("Not connected to server")
        try:
            resp = await self._client.post(url, json=payload)
            resp.raise_for_status()
            return resp
        except httpx.HTTPError as e:
            raise RemoteError(f"HTTP request to {url} failed: {e}") from e

    async def __aenter__(self) -> RobotClient:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.disconnect()
