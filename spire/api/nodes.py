"""Nodes API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from spire.core.exceptions import ActionsError, BadRequest
from spire.core.middleware import EnvelopeRoute
from spire.core.permissions import Nodes, Permission, require_all, require_any
from spire.core.security import Authorize, RequestContext
from spire.schemas.schemas import NodeCreate, NodeOut, NodeTestRequest, NodeTestResponse, NodeUpdate
from spire.services.glide_client import GlideClient, get_glide_client
from spire.services.node_service import node_service

router = APIRouter(prefix="/nodes", tags=["nodes"], route_class=EnvelopeRoute)

can_write_nodes = Authorize(lambda params: require_any(Nodes.MANAGE, Nodes.WRITE))


@router.get("")
async def list_nodes(
    include_status: bool = Query(False, alias="includeStatus"),
    timeout: Optional[int] = Query(None, ge=1, le=60000, description="Probe timeout in ms"),
    ctx: RequestContext = Depends(Authorize(lambda params: require_all(Nodes.READ))),
    client: GlideClient = Depends(get_glide_client),
):
    """List nodes, optionally with live health from every node."""
    nodes = node_service.list_nodes(ctx.db)
    if include_status:
        return await node_service.list_node_statuses(nodes, client, timeout)
    return [NodeOut.model_validate(node) for node in nodes]


@router.post("", response_model=NodeOut)
async def create_node(
    body: NodeCreate,
    ctx: RequestContext = Depends(can_write_nodes),
    client: GlideClient = Depends(get_glide_client),
):
    """Register a node after confirming it is a Glide node accepting the secret."""
    try:
        await node_service.check_new_node(client, body.connection_url, body.secret)
        node = node_service.create_node(
            ctx.db, body.connection_url, body.name, body.secret, body.port_allocations
        )
    except ActionsError as e:
        raise BadRequest(e.message, e.details)
    return NodeOut.model_validate(node)


@router.post("/test", response_model=NodeTestResponse)
async def test_node(
    body: NodeTestRequest,
    ctx: RequestContext = Depends(can_write_nodes),
    client: GlideClient = Depends(get_glide_client),
):
    """Test a prospective node's URL and, when given, its secret."""
    online = await client.check_health(body.connection_url)
    secret_valid = None
    if body.secret is not None:
        secret_valid = online and await client.check_secret(body.connection_url, body.secret)
    return NodeTestResponse(online=online, secret_valid=secret_valid)


@router.get("/{node_id}", response_model=NodeOut)
async def get_node(
    node_id: int,
    ctx: RequestContext = Depends(Authorize(
        lambda params: require_any(Permission.scoped(Nodes.READ, params["node_id"]), Nodes.READ)
    )),
):
    """Get a single node."""
    return NodeOut.model_validate(node_service.get_node(ctx.db, node_id))


@router.patch("/{node_id}", response_model=NodeOut)
async def update_node(
    node_id: int,
    body: NodeUpdate,
    ctx: RequestContext = Depends(Authorize(
        lambda params: require_any(
            Nodes.MANAGE, Nodes.WRITE, Permission.scoped(Nodes.WRITE, params["node_id"])
        )
    )),
):
    """Update a node's name, URL, secret or port allocations."""
    try:
        node = node_service.update_node(ctx.db, node_id, body.model_dump(exclude_unset=True))
    except ActionsError as e:
        raise BadRequest(e.message, e.details)
    return NodeOut.model_validate(node)
