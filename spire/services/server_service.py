"""Server service: game server lifecycle proxied to Glide nodes."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from spire.core.exceptions import BadRequest, NodeAgentError, NotFound
from spire.models.server import Server
from spire.services.glide_client import GlideClient
from spire.services.node_service import node_service

logger = logging.getLogger("spire.servers")


def server_to_dict(server: Server) -> Dict[str, Any]:
    return {
        "id": server.id,
        "name": server.name,
        "version": server.version,
        "type": server.type,
        "port": server.port,
        "memory": server.memory,
        "modpack_id": server.modpack_id,
        "node_id": server.node_id,
        "user_ids": server.user_ids,
        "created_at": server.created_at,
        "updated_at": server.updated_at,
    }


def _container_id(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        value = data.get("id") or data.get("_id") or data.get("containerId")
        return str(value) if value else None
    return None


class ServerService:
    """Create, inspect, operate and delete game servers."""

    @staticmethod
    def get_server(db: Session, server_id: str) -> Server:
        server = db.query(Server).filter(Server.id == server_id).first()
        if not server:
            raise NotFound("Server not found")
        return server

    @staticmethod
    def list_servers(db: Session, user_id: Optional[str] = None) -> List[Server]:
        """All servers, or only those shared with ``user_id`` when given."""
        servers = db.query(Server).order_by(Server.created_at, Server.id).all()
        if user_id is None:
            return servers
        return [s for s in servers if user_id in s.user_ids]

    @staticmethod
    async def create_server(
        db: Session,
        client: GlideClient,
        node_id: int,
        payload: Dict[str, Any],
        user_ids: List[str],
    ) -> Server:
        """Create the container remotely, then record it locally.

        If the local upsert fails the remote container is deleted again so
        no orphan is left behind on the node.
        """
        node = node_service.get_node(db, node_id)
        if node.port_allocations and payload["port"] not in node.port_allocations:
            raise BadRequest(
                "Port is not allocated on this node",
                {"port": payload["port"], "portAllocations": node.port_allocations},
            )

        created = await client.create_container(node, payload)
        container_id = _container_id(created)
        if not container_id:
            raise BadRequest("Node did not return a container id")

        try:
            server = db.query(Server).filter(Server.id == container_id).first()
            if server is None:
                server = Server(id=container_id)
                db.add(server)
            server.name = payload["name"]
            server.version = payload["version"]
            server.type = payload["type"]
            server.port = payload["port"]
            server.memory = payload["memory"]
            server.modpack_id = str(payload["modpackId"]) if payload.get("modpackId") is not None else None
            server.node_id = node.id
            server.user_ids = user_ids
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Saving server %s failed (%s); deleting remote container", container_id, e)
            try:
                await client.delete_container(node, container_id)
            except NodeAgentError as cleanup_error:
                logger.error("Could not delete orphaned container %s: %s", container_id, cleanup_error)
            raise BadRequest("Failed to save server", {"containerId": container_id})

        db.refresh(server)
        logger.info("Created server '%s' (%s) on node '%s'", server.name, server.id, node.name)
        return server

    @staticmethod
    async def get_server_with_status(db: Session, client: GlideClient, server_id: str) -> Dict[str, Any]:
        server = ServerService.get_server(db, server_id)
        status = await client.container_status(server.node, server.id)
        return {**server_to_dict(server), "status": status}

    @staticmethod
    async def list_servers_with_status(client: GlideClient, servers: List[Server]) -> List[Dict[str, Any]]:
        """Enrich each server with its live status; one call per server, concurrently."""
        statuses = await asyncio.gather(
            *(client.container_status(s.node, s.id) for s in servers)
        )
        return [{**server_to_dict(s), "status": st} for s, st in zip(servers, statuses)]

    @staticmethod
    async def delete_server(db: Session, client: GlideClient, server_id: str) -> Any:
        """Delete remotely first; the local record goes only on remote success."""
        server = ServerService.get_server(db, server_id)
        result = await client.delete_container(server.node, server.id)
        db.delete(server)
        db.commit()
        logger.info("Deleted server %s", server_id)
        return result

    @staticmethod
    async def run_action(db: Session, client: GlideClient, server_id: str, action: str) -> Any:
        server = ServerService.get_server(db, server_id)
        return await client.container_action(server.node, server.id, action)

    @staticmethod
    async def send_command(db: Session, client: GlideClient, server_id: str, command: str) -> Any:
        server = ServerService.get_server(db, server_id)
        return await client.send_command(server.node, server.id, command)

    @staticmethod
    async def list_files(db: Session, client: GlideClient, server_id: str, path: str = "/") -> Any:
        server = ServerService.get_server(db, server_id)
        return await client.list_files(server.node, server.id, path)

    @staticmethod
    async def get_logs(db: Session, client: GlideClient, server_id: str) -> Any:
        server = ServerService.get_server(db, server_id)
        return await client.container_logs(server.node, server.id)


server_service = ServerService()
