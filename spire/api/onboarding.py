"""Onboarding API router."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spire.core.middleware import EnvelopeRoute
from spire.core.security import authenticate
from spire.db.session import get_db
from spire.schemas.schemas import NodeOut, OnboardingRequest, OnboardingResult, OnboardingStatus
from spire.services.glide_client import GlideClient, get_glide_client
from spire.services.identity_service import Identity, IdentityProvider, get_identity_provider
from spire.services.onboarding_service import onboarding_service

router = APIRouter(prefix="/onboarding", tags=["onboarding"], route_class=EnvelopeRoute)


@router.get("", response_model=OnboardingStatus)
async def get_status(db: Session = Depends(get_db)):
    """Whether first-run setup has been completed. Public."""
    return OnboardingStatus(onboarding_complete=onboarding_service.is_complete(db))


@router.post("", response_model=OnboardingResult)
async def complete_onboarding(
    body: OnboardingRequest,
    identity: Identity = Depends(authenticate),
    db: Session = Depends(get_db),
    client: GlideClient = Depends(get_glide_client),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """Register the first node and make the caller an admin.

    The generated API key is only ever returned by this response.
    """
    result = await onboarding_service.complete(
        db,
        client,
        provider,
        identity,
        body.node_name,
        body.node_connection_url,
        body.node_secret,
        body.port_allocations,
    )
    return OnboardingResult(**{**result, "node": NodeOut.model_validate(result["node"])})
