"""Users API router: listing users and assigning roles."""

from fastapi import APIRouter, Depends, Query

from spire.core.exceptions import BadRequest
from spire.core.middleware import EnvelopeRoute
from spire.core.permissions import Permission, Users, require_all, require_any
from spire.core.security import Authorize, RequestContext
from spire.schemas.schemas import PageMeta, UserOut, UserRoleUpdate
from spire.services.identity_service import IdentityProvider, get_identity_provider
from spire.services.role_service import role_service

router = APIRouter(prefix="/users", tags=["users"], route_class=EnvelopeRoute)


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    ctx: RequestContext = Depends(Authorize(lambda params: require_all(Users.READ))),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """List users known to the identity provider, one page at a time."""
    users = provider.list_users(limit=page_size, offset=(page - 1) * page_size)
    total = provider.count_users()
    meta = PageMeta(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=-(-total // page_size),
    )
    return {
        "data": [UserOut.model_validate(u).model_dump() for u in users],
        "meta": meta.model_dump(),
    }


@router.patch("/{user_id}/roles", response_model=UserOut)
async def update_user_role(
    user_id: str,
    body: UserRoleUpdate,
    ctx: RequestContext = Depends(Authorize(
        lambda params: require_any(Users.WRITE, Permission.scoped(Users.WRITE, params["user_id"]))
    )),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """Set a user's role claim to an existing role."""
    if not role_service.is_role_valid(ctx.db, body.role):
        raise BadRequest("Invalid role", {"role": [f"Role '{body.role}' does not exist"]})
    return UserOut.model_validate(provider.update_role(user_id, body.role))
