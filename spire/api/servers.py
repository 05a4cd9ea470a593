"""Servers API router: lifecycle, console, files and logs."""

from fastapi import APIRouter, Depends, Query

from spire.core.middleware import EnvelopeRoute
from spire.core.permissions import Permission, Servers, require_all, require_any
from spire.core.security import Authorize, RequestContext
from spire.schemas.schemas import CommandRequest, ServerCreate, ServerOut, paginate
from spire.services.glide_client import CONTAINER_ACTIONS, GlideClient, get_glide_client
from spire.services.role_service import role_service
from spire.services.server_service import server_service, server_to_dict

router = APIRouter(prefix="/servers", tags=["servers"], route_class=EnvelopeRoute)


def scoped_or(base: Servers, *fallbacks: Servers):
    """Requirement factory: ``<base>:<server_id>`` OR any of the fallbacks."""
    return Authorize(
        lambda params: require_any(Permission.scoped(base, params["server_id"]), *fallbacks)
    )


@router.get("")
async def list_servers(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    ctx: RequestContext = Depends(Authorize(lambda params: require_any(Servers.READ, Servers.SELF))),
    client: GlideClient = Depends(get_glide_client),
):
    """List servers with live status; without servers:read only the caller's own."""
    sees_all = role_service.is_user_allowed(
        ctx.db, ctx.identity, ctx.identity.role, require_all(Servers.READ)
    )
    servers = server_service.list_servers(ctx.db, None if sees_all else ctx.user_id)
    result = paginate(servers, page, page_size)
    result["data"] = await server_service.list_servers_with_status(client, result["data"])
    return result


@router.post("", response_model=ServerOut)
async def create_server(
    body: ServerCreate,
    ctx: RequestContext = Depends(Authorize(lambda params: require_all(Servers.CREATE))),
    client: GlideClient = Depends(get_glide_client),
):
    """Create a server container on a node and record it."""
    payload = {
        "name": body.name,
        "version": body.version,
        "type": body.type,
        "port": body.port,
        "memory": body.memory,
    }
    if body.modpack_id is not None:
        payload["modpackId"] = body.modpack_id
    user_ids = [ctx.user_id, *body.user_ids]
    server = await server_service.create_server(ctx.db, client, body.node_id, payload, user_ids)
    return ServerOut(**server_to_dict(server))


@router.get("/{server_id}", response_model=ServerOut)
async def get_server(
    server_id: str,
    ctx: RequestContext = Depends(scoped_or(Servers.READ, Servers.READ)),
    client: GlideClient = Depends(get_glide_client),
):
    """Get a server with its live container status."""
    return await server_service.get_server_with_status(ctx.db, client, server_id)


@router.delete("/{server_id}")
async def delete_server(
    server_id: str,
    ctx: RequestContext = Depends(scoped_or(Servers.DELETE, Servers.DELETE)),
    client: GlideClient = Depends(get_glide_client),
):
    """Delete the container on its node, then the local record."""
    return await server_service.delete_server(ctx.db, client, server_id)


@router.post("/{server_id}/command")
async def send_command(
    server_id: str,
    body: CommandRequest,
    ctx: RequestContext = Depends(scoped_or(Servers.RCON, Servers.RCON)),
    client: GlideClient = Depends(get_glide_client),
):
    """Run a console command on the server."""
    return await server_service.send_command(ctx.db, client, server_id, body.command)


def _register_action(action: str, permission: Servers) -> None:
    async def run_action(
        server_id: str,
        ctx: RequestContext = Depends(scoped_or(permission, permission, Servers.MANAGE)),
        client: GlideClient = Depends(get_glide_client),
    ):
        return await server_service.run_action(ctx.db, client, server_id, action)

    run_action.__name__ = f"{action}_server"
    run_action.__doc__ = f"{action.capitalize()} the server container."
    router.add_api_route(f"/{{server_id}}/{action}", run_action, methods=["POST"])


for _action in CONTAINER_ACTIONS:
    _register_action(_action, Servers(f"servers:{_action}"))


@router.get("/{server_id}/files")
async def list_files(
    server_id: str,
    path: str = Query("/"),
    ctx: RequestContext = Depends(scoped_or(Servers.FILES_READ, Servers.FILES_READ)),
    client: GlideClient = Depends(get_glide_client),
):
    """List files at ``path`` inside the server container."""
    return await server_service.list_files(ctx.db, client, server_id, path)


@router.get("/{server_id}/logs")
async def get_logs(
    server_id: str,
    ctx: RequestContext = Depends(scoped_or(Servers.READ, Servers.READ)),
    client: GlideClient = Depends(get_glide_client),
):
    """Historical log lines of the server."""
    return await server_service.get_logs(ctx.db, client, server_id)
