"""Permission tokens, requirements and the role evaluation engine.

A permission is either the wildcard ``*``, a bare token such as
``nodes:read`` / ``servers:files:read``, or a token scoped to one resource,
``servers:read:<id>``. Tokens compare by exact string; only the wildcard
grants anything beyond itself.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple, Union

logger = logging.getLogger("spire.permissions")

WILDCARD = "*"


class Behaviour(str, enum.Enum):
    AND = "AND"
    OR = "OR"


class Nodes(str, enum.Enum):
    MANAGE = "nodes:manage"
    READ = "nodes:read"
    WRITE = "nodes:write"


class Servers(str, enum.Enum):
    MANAGE = "servers:manage"
    READ = "servers:read"
    WRITE = "servers:write"
    SELF = "servers:self"
    CREATE = "servers:create"
    START = "servers:start"
    STOP = "servers:stop"
    RESTART = "servers:restart"
    DELETE = "servers:delete"
    FILES = "servers:files"
    FILES_READ = "servers:files:read"
    FILES_WRITE = "servers:files:write"
    FILES_DELETE = "servers:files:delete"
    FILES_CREATE = "servers:files:create"
    RCON = "servers:rcon"


class SettingsPermissions(str, enum.Enum):
    READ = "settings:read"
    WRITE = "settings:write"


class Roles(str, enum.Enum):
    READ = "roles:read"
    WRITE = "roles:write"


class Profile(str, enum.Enum):
    SELF = "profile:self"
    MANAGE = "profile:manage"
    READ = "profile:read"
    WRITE = "profile:write"


class Users(str, enum.Enum):
    READ = "users:read"
    WRITE = "users:write"


CATEGORIES = (Nodes, Servers, SettingsPermissions, Roles, Users, Profile)


def all_permissions() -> List[str]:
    """Every grantable token, wildcard first."""
    return [WILDCARD] + [member.value for category in CATEGORIES for member in category]


_CATALOGUE = frozenset(all_permissions()[1:])

PermissionLike = Union["Permission", enum.Enum, str]


@dataclass(frozen=True, eq=False)
class Permission:
    """A single grantable capability, optionally scoped to one resource id."""

    base: str
    scope: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "Permission":
        """Parse ``*`` or ``category:action[:...][:resourceId]``.

        The base is the longest catalogue token prefixing ``text``; anything
        after it is the resource scope. Unknown tokens split after the
        action segment.
        """
        if text == WILDCARD:
            return cls(WILDCARD)
        parts = text.split(":")
        if len(parts) < 2 or any(not part for part in parts):
            raise ValueError(f"Invalid permission '{text}'")
        for n in range(len(parts), 0, -1):
            candidate = ":".join(parts[:n])
            if candidate in _CATALOGUE:
                return cls(candidate, ":".join(parts[n:]) or None)
        return cls(":".join(parts[:2]), ":".join(parts[2:]) or None)

    @classmethod
    def scoped(cls, base: PermissionLike, resource_id: object) -> "Permission":
        return cls(str(as_permission(base)), str(resource_id))

    @property
    def is_wildcard(self) -> bool:
        return self.base == WILDCARD

    @property
    def category(self) -> str:
        return self.base.split(":", 1)[0]

    @property
    def is_known(self) -> bool:
        """True for the wildcard and for tokens whose base is catalogued."""
        return self.is_wildcard or self.base in _CATALOGUE

    def __str__(self) -> str:
        if self.scope is None:
            return self.base
        return f"{self.base}:{self.scope}"

    def __repr__(self) -> str:
        return f"Permission({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Permission):
            return str(self) == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(str(self))


def as_permission(value: PermissionLike) -> Permission:
    if isinstance(value, Permission):
        return value
    if isinstance(value, enum.Enum):
        return Permission.parse(value.value)
    return Permission.parse(value)


def _grants(values: Iterable[str]) -> frozenset:
    """Parse stored grants, skipping tokens that do not parse."""
    granted = set()
    for value in values:
        try:
            granted.add(as_permission(value))
        except ValueError:
            logger.warning("Ignoring malformed stored permission %r", value)
    return frozenset(granted)


@dataclass(frozen=True)
class Requirement:
    """The access requirement of one route invocation."""

    behaviour: Behaviour
    permissions: Tuple[Permission, ...]

    def __post_init__(self):
        if not self.permissions:
            raise ValueError("A requirement needs at least one permission")

    @classmethod
    def of(cls, behaviour: Union[Behaviour, str], *permissions: PermissionLike) -> "Requirement":
        return cls(Behaviour(behaviour), tuple(as_permission(p) for p in permissions))

    def satisfied_by(self, granted: frozenset) -> bool:
        if self.behaviour is Behaviour.AND:
            return all(p in granted for p in self.permissions)
        return any(p in granted for p in self.permissions)

    def as_dict(self) -> dict:
        return {
            "behaviour": self.behaviour.value,
            "permissions": [str(p) for p in self.permissions],
        }


def require_all(*permissions: PermissionLike) -> Requirement:
    return Requirement.of(Behaviour.AND, *permissions)


def require_any(*permissions: PermissionLike) -> Requirement:
    return Requirement.of(Behaviour.OR, *permissions)


class RoleLike(Protocol):
    name: str
    order: int
    inherit_children: bool

    @property
    def permissions(self) -> List[str]: ...


def find_role(roles: Sequence[RoleLike], name: Optional[str]) -> Optional[RoleLike]:
    if not name:
        return None
    return next((role for role in roles if role.name == name), None)


def lower_ranked(roles: Sequence[RoleLike], acting: RoleLike, exclude: str) -> List[RoleLike]:
    """Roles other than ``exclude`` that ``acting`` strictly outranks, in store order."""
    return [r for r in roles if r.name != exclude and acting.order > r.order]


def evaluate(
    acting_role: Optional[str],
    target_role: Optional[str],
    requirement: Requirement,
    roles: Sequence[RoleLike],
) -> bool:
    """Decide whether ``acting_role`` satisfies ``requirement`` via ``target_role``.

    Every failure path denies. When the target role inherits, lower-ranked
    roles are folded into an accumulated grant set one at a time and the
    first satisfying step allows; an exhausted search denies even when the
    target's own permissions already satisfied the requirement.
    """
    if not acting_role or not roles:
        return False
    acting = find_role(roles, acting_role)
    target = find_role(roles, target_role)
    if acting is None or target is None:
        return False

    granted = _grants(target.permissions)
    if any(p.is_wildcard for p in granted):
        return True

    base_result = requirement.satisfied_by(granted)
    if not target.inherit_children:
        return base_result

    # TODO: confirm with product whether an exhausted inheritance search
    # should fall back to base_result instead of denying.
    for child in lower_ranked(roles, acting, exclude=target.name):
        granted = granted | _grants(child.permissions)
        if requirement.satisfied_by(granted):
            return True
    return False


def effective_permissions(
    role_claim: Optional[str],
    roles: Sequence[RoleLike],
    admin_role: str = "admin",
) -> List[str]:
    """Flattened permissions shown to a client for display gating.

    Returns the union of every stored role's permissions, de-duplicated in
    order of first appearance, with the bare wildcard removed unless the
    claim is the admin role. A wildcard-bearing own role returns ``["*"]``.
    """
    if not role_claim or not roles:
        return []
    own = find_role(roles, role_claim)
    if own is None:
        return []
    if WILDCARD in own.permissions:
        return [WILDCARD]

    # TODO: confirm with product whether only the role's own permissions
    # (plus inherited lower-ranked ones) should be reported instead of the
    # union over every stored role.
    union = list(dict.fromkeys(p for role in roles for p in role.permissions))
    if role_claim != admin_role:
        union = [p for p in union if p != WILDCARD]
    return union
