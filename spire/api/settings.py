"""Panel settings API router."""

from fastapi import APIRouter, Depends

from spire.core.middleware import EnvelopeRoute
from spire.core.permissions import SettingsPermissions, require_all, require_any
from spire.core.security import Authorize, RequestContext
from spire.schemas.schemas import ApiKeyOut, SettingsOut, SettingsUpdate
from spire.services.settings_service import settings_service

router = APIRouter(prefix="/settings", tags=["settings"], route_class=EnvelopeRoute)


@router.get("", response_model=SettingsOut)
async def get_settings(
    ctx: RequestContext = Depends(Authorize(lambda params: require_any(SettingsPermissions.READ))),
):
    return SettingsOut.model_validate(settings_service.get_settings(ctx.db))


@router.put("", response_model=SettingsOut)
async def update_settings(
    body: SettingsUpdate,
    ctx: RequestContext = Depends(Authorize(lambda params: require_any(SettingsPermissions.WRITE))),
):
    """Partially update settings. Onboarding cannot be marked incomplete again."""
    record = settings_service.update_settings(
        ctx.db, onboarding_complete=body.onboarding_complete, api_key=body.api_key
    )
    return SettingsOut.model_validate(record)


@router.post("/api-key", response_model=ApiKeyOut)
async def rotate_api_key(
    ctx: RequestContext = Depends(Authorize(lambda params: require_all(SettingsPermissions.WRITE))),
):
    """Replace the panel API key; the new key is returned only here."""
    return ApiKeyOut(api_key=settings_service.rotate_api_key(ctx.db))
