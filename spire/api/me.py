"""Profile API router: the caller's identity and effective permissions."""

from fastapi import APIRouter, Depends

from spire.core.middleware import EnvelopeRoute
from spire.core.permissions import Profile, require_all
from spire.core.security import Authorize, RequestContext
from spire.schemas.schemas import ProfileOut
from spire.services.role_service import role_service

router = APIRouter(prefix="/me", tags=["profile"], route_class=EnvelopeRoute)


@router.get("", response_model=ProfileOut)
async def get_me(
    ctx: RequestContext = Depends(Authorize(lambda params: require_all(Profile.SELF))),
):
    """Get the current user's profile and the permissions shown to the client."""
    return ProfileOut(
        **ctx.identity.to_dict(),
        permissions=role_service.get_user_permissions(ctx.db, ctx.identity),
    )
