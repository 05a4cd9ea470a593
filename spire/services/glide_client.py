"""Outbound client for Glide node agents.

Every call is bearer-authenticated with the node secret and expects the
agent's ``{success, data, error}`` envelope. Failures raise NodeAgentError;
nothing here retries.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from spire.core.config import settings
from spire.core.exceptions import NodeAgentError
from spire.core.security import decrypt_secret
from spire.models.node import Node

logger = logging.getLogger("spire.glide")

CONTAINER_ACTIONS = ("start", "stop", "restart")


class GlideClient:
    """Async HTTP client for node agent APIs."""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = settings.NODE_REQUEST_TIMEOUT_S,
    ):
        self.transport = transport
        self.timeout = timeout

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            timeout=timeout if timeout is not None else self.timeout,
        )

    # ---- Registration checks ----

    async def check_health(self, connection_url: str) -> bool:
        """True when ``/health`` answers OK, i.e. the URL is a Glide node."""
        try:
            async with self._client() as client:
                res = await client.get(f"{connection_url.rstrip('/')}/health")
        except httpx.HTTPError:
            return False
        return res.is_success

    async def check_secret(self, connection_url: str, secret: str) -> bool:
        """True when the node accepts ``secret`` on its root endpoint."""
        try:
            async with self._client() as client:
                res = await client.get(
                    f"{connection_url.rstrip('/')}/",
                    headers={"Authorization": f"Bearer {secret}"},
                )
        except httpx.HTTPError:
            return False
        return res.is_success

    # ---- Enveloped calls ----

    async def _call(
        self,
        node: Node,
        method: str,
        path: str,
        failure_message: str,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> Any:
        url = f"{node.connection_url.rstrip('/')}{path}"
        headers = {"Authorization": f"Bearer {decrypt_secret(node.secret_encrypted)}"}
        try:
            async with self._client(timeout) as client:
                res = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Node '%s' %s %s failed: %s", node.name, method, path, e)
            raise NodeAgentError(f"Node '{node.name}' is unreachable", status_code=500)

        try:
            body = res.json()
        except ValueError:
            raise NodeAgentError(failure_message, {"status": res.status_code})

        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else None
            raise NodeAgentError(error or failure_message)
        data = body.get("data")
        if data is None:
            raise NodeAgentError(failure_message)
        return data

    async def health(self, node: Node, timeout_ms: int) -> Dict[str, Any]:
        return await self._call(
            node, "GET", "/health", "Failed to get node health", timeout=timeout_ms / 1000
        )

    async def create_container(self, node: Node, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(node, "POST", "/containers", "Failed to create server", json=payload)

    async def container_status(self, node: Node, container_id: str) -> Dict[str, Any]:
        return await self._call(
            node, "GET", f"/containers/{container_id}/status", "Failed to get server status"
        )

    async def container_action(self, node: Node, container_id: str, action: str) -> Dict[str, Any]:
        if action not in CONTAINER_ACTIONS:
            raise ValueError(f"Unknown container action '{action}'")
        return await self._call(
            node,
            "POST",
            f"/containers/{container_id}/status/{action}",
            f"Failed to {action} server",
            json={},
        )

    async def delete_container(self, node: Node, container_id: str) -> Dict[str, Any]:
        return await self._call(
            node, "DELETE", f"/containers/{container_id}", "Failed to delete server"
        )

    async def send_command(self, node: Node, container_id: str, command: str) -> Any:
        return await self._call(
            node,
            "POST",
            f"/containers/{container_id}/command",
            "Failed to execute command",
            json={"command": command},
        )

    async def list_files(self, node: Node, container_id: str, path: str = "/") -> Any:
        try:
            return await self._call(
                node,
                "GET",
                f"/containers/{container_id}/files",
                "Failed to get server files",
                params={"path": path or "/"},
            )
        except NodeAgentError as e:
            if e.status_code == 500:
                raise
            raise NodeAgentError("No such file or directory was found")

    async def container_logs(self, node: Node, container_id: str) -> Any:
        return await self._call(
            node, "GET", f"/containers/{container_id}/logs", "Failed to get server logs"
        )


glide_client = GlideClient()


def get_glide_client() -> GlideClient:
    """FastAPI dependency returning the node agent client."""
    return glide_client
