"""Onboarding service: first-run setup of node, roles, admin and API key."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from spire.core.config import settings
from spire.core.exceptions import ActionsError, BadRequest
from spire.db.seeds.seed_roles import seed_roles
from spire.services.glide_client import GlideClient
from spire.services.identity_service import Identity, IdentityProvider
from spire.services.node_service import node_service
from spire.services.settings_service import generate_api_key, settings_service

logger = logging.getLogger("spire.onboarding")


class OnboardingService:

    @staticmethod
    def is_complete(db: Session) -> bool:
        return bool(settings_service.get_settings(db).onboarding_complete)

    @staticmethod
    async def complete(
        db: Session,
        client: GlideClient,
        provider: IdentityProvider,
        identity: Identity,
        node_name: str,
        node_connection_url: str,
        node_secret: str,
        port_allocations: Optional[List[int]] = None,
    ) -> Dict[str, Any]:
        """Run first-time setup for the calling user.

        Order: verify and register the node, upsert the default roles, make
        the caller an admin, then mark onboarding complete with a new API key.
        Any failure before the last step leaves onboarding incomplete.
        """
        if OnboardingService.is_complete(db):
            raise BadRequest("Onboarding already complete")

        try:
            await node_service.check_new_node(client, node_connection_url, node_secret)
            node = node_service.create_node(
                db, node_connection_url, node_name, node_secret, port_allocations
            )
        except ActionsError as e:
            raise BadRequest(e.message, e.details)

        seed_roles(db)
        if not identity.is_api_key:
            provider.update_role(identity.id, settings.ADMIN_ROLE)
            identity.role = settings.ADMIN_ROLE

        api_key = generate_api_key()
        settings_service.update_settings(db, onboarding_complete=True, api_key=api_key)
        logger.info("Onboarding completed by %s with node '%s'", identity.id, node.name)
        return {
            "onboarding_complete": True,
            "api_key": api_key,
            "node": node,
            "role": settings.ADMIN_ROLE,
        }


onboarding_service = OnboardingService()
