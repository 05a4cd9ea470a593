"""Role service: role store access and permission checks against it."""

import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from spire.core.config import settings
from spire.core.exceptions import ActionsError
from spire.core.permissions import (
    Permission,
    Requirement,
    effective_permissions,
    evaluate,
)
from spire.models.role import Role
from spire.services.identity_service import Identity

logger = logging.getLogger("spire.roles")


def validate_permissions(permissions: Iterable[str]) -> List[str]:
    """Return the tokens unchanged, or raise ActionsError naming the bad ones."""
    permissions = list(permissions)
    invalid = []
    for token in permissions:
        try:
            if not Permission.parse(token).is_known:
                invalid.append(token)
        except ValueError:
            invalid.append(token)
    if invalid:
        raise ActionsError("Invalid permissions", {"permissions": invalid})
    return permissions


class RoleService:
    """Role store plus the store-backed authorization entry points."""

    @staticmethod
    def create_role(
        db: Session,
        name: str,
        order: int,
        permissions: Iterable[str],
        inherit_children: Optional[bool] = None,
    ) -> Role:
        """Upsert a role keyed by name."""
        permissions = validate_permissions(permissions)
        role = db.query(Role).filter(Role.name == name).first()
        if role is None:
            role = Role(name=name, inherit_children=bool(inherit_children))
            db.add(role)
        elif inherit_children is not None:
            role.inherit_children = inherit_children
        role.order = order
        role.permissions = permissions
        db.commit()
        db.refresh(role)
        logger.info("Upserted role '%s' (order %s, %d permissions)", name, order, len(permissions))
        return role

    @staticmethod
    def get_roles(db: Session) -> List[Role]:
        return db.query(Role).order_by(Role.id).all()

    @staticmethod
    def get_role(db: Session, name: str) -> Optional[Role]:
        return db.query(Role).filter(Role.name == name).first()

    @staticmethod
    def is_role_valid(db: Session, name: str) -> bool:
        return RoleService.get_role(db, name) is not None

    @staticmethod
    def is_user_allowed(
        db: Session,
        identity: Optional[Identity],
        target_role: str,
        requirement: Requirement,
    ) -> bool:
        """Check ``requirement`` for the identity's role against ``target_role``."""
        role_claim = identity.role if identity else None
        if not role_claim:
            return False
        allowed = evaluate(role_claim, target_role, requirement, RoleService.get_roles(db))
        logger.debug(
            "Permission check %s as '%s' via '%s': %s",
            requirement.as_dict(), role_claim, target_role, allowed,
        )
        return allowed

    @staticmethod
    def get_user_permissions(db: Session, identity: Optional[Identity]) -> List[str]:
        if identity is None or not identity.role:
            return []
        return effective_permissions(identity.role, RoleService.get_roles(db), settings.ADMIN_ROLE)


role_service = RoleService()
