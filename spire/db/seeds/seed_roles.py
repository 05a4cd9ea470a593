"""Seed default roles into the database."""

from typing import List

from sqlalchemy.orm import Session

from spire.core.config import settings
from spire.core.permissions import WILDCARD, Profile, Servers
from spire.models.role import Role
from spire.services.role_service import role_service


def default_roles() -> list:
    return [
        {
            "name": settings.DEFAULT_ROLE,
            "order": 0,
            "permissions": [Profile.SELF.value, Servers.SELF.value],
        },
        {
            "name": settings.ADMIN_ROLE,
            "order": 1,
            "permissions": [WILDCARD],
        },
    ]


def seed_roles(db: Session) -> List[Role]:
    """Upsert the default roles; running it again leaves them unchanged."""
    return [
        role_service.create_role(db, data["name"], data["order"], data["permissions"])
        for data in default_roles()
    ]
