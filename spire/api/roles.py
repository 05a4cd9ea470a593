"""Roles API router."""

from typing import List

from fastapi import APIRouter, Depends

from spire.core.exceptions import ActionsError, BadRequest, NotFound
from spire.core.middleware import EnvelopeRoute
from spire.core.permissions import Profile, Requirement, Roles, require_all
from spire.core.security import Authorize, RequestContext
from spire.schemas.schemas import (
    PermissionCheckRequest, PermissionCheckResponse, RoleOut, RoleUpsert,
)
from spire.services.role_service import role_service

router = APIRouter(prefix="/roles", tags=["roles"], route_class=EnvelopeRoute)


@router.get("", response_model=List[RoleOut])
async def list_roles(
    ctx: RequestContext = Depends(Authorize(lambda params: require_all(Roles.READ))),
):
    """List all roles."""
    return [RoleOut.model_validate(role) for role in role_service.get_roles(ctx.db)]


@router.put("/{name}", response_model=RoleOut)
async def upsert_role(
    name: str,
    body: RoleUpsert,
    ctx: RequestContext = Depends(Authorize(lambda params: require_all(Roles.WRITE))),
):
    """Create or update a role by name."""
    try:
        role = role_service.create_role(
            ctx.db, name, body.order, body.permissions, body.inherit_children
        )
    except ActionsError as e:
        raise BadRequest(e.message, e.details)
    return RoleOut.model_validate(role)


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permissions(
    body: PermissionCheckRequest,
    ctx: RequestContext = Depends(Authorize(lambda params: require_all(Profile.SELF))),
):
    """Check the caller against a named target role."""
    if not role_service.is_role_valid(ctx.db, body.role):
        raise NotFound(f"Role '{body.role}' not found")
    requirement = Requirement.of(body.behaviour, *body.permissions)
    allowed = role_service.is_user_allowed(ctx.db, ctx.identity, body.role, requirement)
    return PermissionCheckResponse(role=body.role, allowed=allowed)
