"""Node service: Glide node registry and health polling."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from spire.core.config import settings
from spire.core.exceptions import ActionsError, NotFound
from spire.core.security import encrypt_secret
from spire.models.node import Node
from spire.services.glide_client import GlideClient

logger = logging.getLogger("spire.nodes")

MIN_PORT = 1024
MAX_PORT = 65535

# Health metric fields reported by the agent, mapped to Spire's names
HEALTH_METRICS = {
    "memoryUsageMB": "memory_usage_mb",
    "memoryUsagePercent": "memory_usage_percent",
    "memoryUsageTotal": "memory_usage_total",
    "memoryUsageFree": "memory_usage_free",
    "totalMemory": "total_memory",
    "cpuUsagePercent": "cpu_usage_percent",
    "uptime": "uptime",
    "storageFreeSpace": "storage_free_space",
    "storageUsedSpace": "storage_used_space",
    "storageTotalSpace": "storage_total_space",
    "storageUsedPercent": "storage_used_percent",
    "cpuCores": "cpu_cores",
}


def invalid_ports(ports: Iterable[int]) -> List[int]:
    return [p for p in ports if not MIN_PORT <= p <= MAX_PORT]


def parse_port_allocations(spec: str) -> List[int]:
    """Parse ``"25565, 25570-25575"`` into a sorted list of unique ports."""
    ports: List[int] = []
    for chunk in (s.strip() for s in spec.split(",")):
        if not chunk:
            continue
        if "-" in chunk:
            start_str, _, end_str = chunk.partition("-")
            try:
                start, end = int(start_str), int(end_str)
            except ValueError:
                raise ValueError(f"Invalid port range '{chunk}'")
            if start > end:
                raise ValueError("Start port must be less than or equal to end port")
            ports.extend(range(start, end + 1))
        else:
            try:
                ports.append(int(chunk))
            except ValueError:
                raise ValueError(f"Invalid port number: {chunk}")
    bad = invalid_ports(ports)
    if bad:
        raise ValueError(
            f"Invalid port numbers: {', '.join(map(str, bad))}. "
            f"Ports must be between {MIN_PORT} and {MAX_PORT}."
        )
    return sorted(set(ports))


def node_to_dict(node: Node) -> Dict[str, Any]:
    """Public view of a node; the secret is never exposed."""
    return {
        "id": node.id,
        "name": node.name,
        "connection_url": node.connection_url,
        "port_allocations": node.port_allocations,
        "created_at": node.created_at,
        "updated_at": node.updated_at,
    }


class NodeService:
    """Registry of Glide nodes."""

    @staticmethod
    async def check_new_node(client: GlideClient, connection_url: str, secret: str) -> bool:
        """Confirm the URL is a Glide node and that it accepts the secret.

        Raises:
            ActionsError: If either check fails.
        """
        if not await client.check_health(connection_url):
            raise ActionsError("Server is not a Glide node")
        if not await client.check_secret(connection_url, secret):
            raise ActionsError("Invalid node secret")
        return True

    @staticmethod
    def create_node(
        db: Session,
        connection_url: str,
        name: str,
        secret: str,
        port_allocations: Optional[List[int]] = None,
    ) -> Node:
        """Register a node; name and connection URL must both be unused."""
        bad = invalid_ports(port_allocations or [])
        if bad:
            raise ActionsError(
                "Invalid node data",
                {"portAllocations": [f"Port allocations must be between {MIN_PORT} and {MAX_PORT}"]},
            )
        existing = db.query(Node).filter(
            or_(Node.connection_url == connection_url, Node.name == name)
        ).first()
        if existing:
            raise ActionsError("Node already exists", {"nodeExists": node_to_dict(existing)})

        node = Node(
            name=name,
            connection_url=connection_url,
            secret_encrypted=encrypt_secret(secret),
        )
        node.port_allocations = port_allocations or []
        db.add(node)
        db.commit()
        db.refresh(node)
        logger.info("Registered node '%s' at %s", name, connection_url)
        return node

    @staticmethod
    def update_node(db: Session, node_id: int, changes: Dict[str, Any]) -> Node:
        node = NodeService.get_node(db, node_id)
        if "port_allocations" in changes and changes["port_allocations"] is not None:
            if invalid_ports(changes["port_allocations"]):
                raise ActionsError(
                    "Invalid node data",
                    {"portAllocations": [f"Port allocations must be between {MIN_PORT} and {MAX_PORT}"]},
                )
            node.port_allocations = changes["port_allocations"]

        for field, column in (("name", Node.name), ("connection_url", Node.connection_url)):
            value = changes.get(field)
            if value is None or value == getattr(node, field):
                continue
            clash = db.query(Node).filter(column == value, Node.id != node.id).first()
            if clash:
                raise ActionsError("Node already exists", {"nodeExists": node_to_dict(clash)})
            setattr(node, field, value)

        if changes.get("secret"):
            node.secret_encrypted = encrypt_secret(changes["secret"])
        db.commit()
        db.refresh(node)
        return node

    @staticmethod
    def get_node(db: Session, node_id: int) -> Node:
        node = db.query(Node).filter(Node.id == node_id).first()
        if not node:
            raise NotFound("Node not found")
        return node

    @staticmethod
    def list_nodes(db: Session) -> List[Node]:
        return db.query(Node).order_by(Node.id).all()

    @staticmethod
    async def probe_node(client: GlideClient, node: Node, timeout_ms: int) -> Dict[str, Any]:
        """Health of one node; any failure or timeout reports it offline."""
        try:
            data = await asyncio.wait_for(client.health(node, timeout_ms), timeout_ms / 1000)
        except Exception as e:  # probe failures never escape the poll
            logger.warning("Node '%s' health probe failed: %r", node.name, e)
            return {"id": node.id, "online": False}

        data = data if isinstance(data, dict) else {}
        status = node_to_dict(node)
        for source, target in HEALTH_METRICS.items():
            status[target] = data.get(source) or 0
        status["cpu_model"] = data.get("cpuModel") or ""
        status["last_seen"] = data.get("lastSeen") or datetime.now(timezone.utc).isoformat()
        status["online"] = True
        return status

    @staticmethod
    async def list_node_statuses(
        nodes: List[Node],
        client: GlideClient,
        timeout_ms: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Probe every node concurrently, each under its own timeout."""
        timeout_ms = timeout_ms or settings.NODE_HEALTH_TIMEOUT_MS
        return list(
            await asyncio.gather(
                *(NodeService.probe_node(client, node, timeout_ms) for node in nodes)
            )
        )


node_service = NodeService()
