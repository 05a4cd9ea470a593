"""Identity provider port and its Clerk adapter.

Users, sessions and the ``role`` claim live in an external identity
provider. Spire only reads identities and writes the role claim, so the
provider is modelled as an injected port that tests replace with a fake.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

import httpx
from jose import JWTError, jwt

from spire.core.config import settings
from spire.core.exceptions import InternalServerError, NotFound

logger = logging.getLogger("spire.identity")


@dataclass
class Identity:
    """A user as seen through the identity provider."""

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None
    role: Optional[str] = None
    is_api_key: bool = field(default=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("is_api_key")
        return data


class IdentityProvider(ABC):
    """Port to the external identity provider.

    Adapters must implement every method; an incomplete one cannot be created.
    """

    @abstractmethod
    def verify_session_token(self, token: str) -> Optional[str]:
        """Return the user id of a valid session token, else None."""
        ...

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[Identity]:
        ...

    @abstractmethod
    def list_users(self, limit: int = 100, offset: int = 0) -> List[Identity]:
        ...

    @abstractmethod
    def count_users(self) -> int:
        ...

    @abstractmethod
    def update_role(self, user_id: str, role: str) -> Identity:
        """Set the user's ``role`` claim and return the updated identity."""
        ...


class ClerkIdentityProvider(IdentityProvider):
    """Identity provider backed by the Clerk backend API."""

    def __init__(
        self,
        api_url: str = settings.CLERK_API_URL,
        secret_key: str = settings.CLERK_SECRET_KEY,
        jwt_key: str = settings.CLERK_JWT_KEY,
        jwt_algorithm: str = settings.CLERK_JWT_ALGORITHM,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.jwt_key = jwt_key
        self.jwt_algorithm = jwt_algorithm
        self._client = httpx.Client(
            base_url=api_url.rstrip("/"),
            headers={"Authorization": f"Bearer {secret_key}"},
            timeout=10.0,
            transport=transport,
        )

    def verify_session_token(self, token: str) -> Optional[str]:
        if not self.jwt_key:
            logger.warning("CLERK_JWT_KEY is not configured; rejecting session token")
            return None
        try:
            payload = jwt.decode(
                token,
                self.jwt_key,
                algorithms=[self.jwt_algorithm],
                options={"verify_aud": False},
            )
        except JWTError:
            return None
        return payload.get("sub")

    def _request(self, method: str, path: str, **kwargs) -> Optional[Any]:
        try:
            res = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Identity provider unreachable: %s", e)
            raise InternalServerError("Identity provider unreachable")
        if res.status_code == 404:
            return None
        if res.is_error:
            logger.error("Identity provider %s %s -> %s", method, path, res.status_code)
            raise InternalServerError("Identity provider request failed")
        return res.json()

    @staticmethod
    def _to_identity(user: Dict[str, Any]) -> Identity:
        emails = user.get("email_addresses") or []
        metadata = user.get("public_metadata") or {}
        return Identity(
            id=user["id"],
            email=emails[0].get("email_address") if emails else None,
            first_name=user.get("first_name"),
            last_name=user.get("last_name"),
            image_url=user.get("image_url"),
            role=metadata.get("role"),
        )

    def get_user(self, user_id: str) -> Optional[Identity]:
        user = self._request("GET", f"/users/{user_id}")
        return self._to_identity(user) if user else None

    def list_users(self, limit: int = 100, offset: int = 0) -> List[Identity]:
        users = self._request("GET", "/users", params={"limit": limit, "offset": offset}) or []
        return [self._to_identity(u) for u in users]

    def count_users(self) -> int:
        body = self._request("GET", "/users/count") or {}
        return int(body.get("total_count", 0))

    def update_role(self, user_id: str, role: str) -> Identity:
        user = self._request(
            "PATCH",
            f"/users/{user_id}/metadata",
            json={"public_metadata": {"role": role}},
        )
        if not user:
            raise NotFound("User not found")
        logger.info("Assigned role '%s' to user %s", role, user_id)
        return self._to_identity(user)


_provider: Optional[IdentityProvider] = None


def get_identity_provider() -> IdentityProvider:
    """FastAPI dependency returning the process-wide identity provider."""
    global _provider
    if _provider is None:
        _provider = ClerkIdentityProvider()
    return _provider
