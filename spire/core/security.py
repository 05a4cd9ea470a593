"""Authentication and permission-gating dependencies, plus secret encryption."""

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from spire.core.config import settings
from spire.core.exceptions import InternalServerError, Unauthorized
from spire.core.permissions import Requirement
from spire.db.session import get_db
from spire.services.identity_service import Identity, IdentityProvider, get_identity_provider
from spire.services.role_service import role_service
from spire.services.settings_service import settings_service

logger = logging.getLogger("spire.security")

# Bearer scheme shared by session tokens and the panel API key
security_scheme = HTTPBearer(auto_error=False)

API_KEY_USER_ID = "api-key"


def _fernet() -> Fernet:
    digest = hashlib.sha256(settings.SECRET_KEY.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_secret(secret: str) -> str:
    """Encrypt a node secret for storage."""
    return _fernet().encrypt(secret.encode("utf-8")).decode("utf-8")


def decrypt_secret(token: str) -> str:
    """Decrypt a stored node secret."""
    try:
        return _fernet().decrypt(token.encode("utf-8")).decode("utf-8")
    except InvalidToken:
        logger.error("Stored node secret cannot be decrypted; was SECRET_KEY changed?")
        raise InternalServerError("Node secret cannot be decrypted")


@dataclass
class RequestContext:
    """What an authorized handler receives: who, where to read, and route params."""

    identity: Identity
    db: Session
    params: Dict[str, str] = field(default_factory=dict)

    @property
    def user_id(self) -> str:
        return self.identity.id


def authenticate(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    db: Session = Depends(get_db),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Identity:
    """Resolve the caller's identity from the bearer token."""
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Unauthorized, no auth token")
    token = credentials.credentials

    panel = settings_service.get_settings(db)
    if panel.api_key and secrets.compare_digest(token.encode("utf-8"), panel.api_key.encode("utf-8")):
        return Identity(id=API_KEY_USER_ID, role=settings.API_KEY_ROLE, is_api_key=True)

    user_id = provider.verify_session_token(token)
    if not user_id:
        raise Unauthorized("Unauthorized, invalid auth token")
    identity = provider.get_user(user_id)
    if identity is None:
        raise Unauthorized("Unauthorized, unknown user")
    return identity


class Authorize:
    """Dependency that gates a route on a permission requirement.

    ``requirement`` receives the route's path parameters, so scoped
    permissions such as ``servers:read:<id>`` can be built per call.
    """

    def __init__(self, requirement: Callable[[Dict[str, str]], Requirement]):
        self.requirement = requirement

    def __call__(
        self,
        request: Request,
        identity: Identity = Depends(authenticate),
        db: Session = Depends(get_db),
        provider: IdentityProvider = Depends(get_identity_provider),
    ) -> RequestContext:
        if not identity.role:
            logger.info("User %s has no role; assigning '%s'", identity.id, settings.DEFAULT_ROLE)
            provider.update_role(identity.id, settings.DEFAULT_ROLE)
            identity.role = settings.DEFAULT_ROLE

        params = dict(request.path_params)
        requirement = self.requirement(params)
        if not role_service.is_user_allowed(db, identity, identity.role, requirement):
            raise Unauthorized(
                "Unauthorized, missing required permissions",
                {"required": requirement.as_dict()},
            )
        return RequestContext(identity=identity, db=db, params=params)
