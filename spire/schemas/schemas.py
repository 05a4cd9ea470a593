"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any, Union
from datetime import datetime

from spire.core.permissions import Behaviour, Permission
from spire.services.node_service import invalid_ports, parse_port_allocations, MIN_PORT, MAX_PORT


def _check_ports(value):
    if value is None:
        return value
    if isinstance(value, str):
        return parse_port_allocations(value)
    bad = invalid_ports(value)
    if bad:
        raise ValueError(f"Port allocations must be between {MIN_PORT} and {MAX_PORT}")
    return sorted(set(value))


# ---- Profile / Users ----
class ProfileOut(BaseModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None
    role: Optional[str] = None
    permissions: List[str] = []

class UserOut(BaseModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None
    role: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class UserRoleUpdate(BaseModel):
    role: str = Field(..., min_length=1)


# ---- Roles ----
class RoleOut(BaseModel):
    name: str
    order: int
    permissions: List[str]
    inherit_children: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class RoleUpsert(BaseModel):
    order: int = 0
    permissions: List[str]
    inherit_children: Optional[bool] = None

class PermissionCheckRequest(BaseModel):
    role: str = Field(..., min_length=1)
    behaviour: Behaviour = Behaviour.AND
    permissions: List[str] = Field(..., min_length=1)

    @field_validator("permissions")
    @classmethod
    def _parse_permissions(cls, value):
        for token in value:
            Permission.parse(token)
        return value

class PermissionCheckResponse(BaseModel):
    role: str
    allowed: bool


# ---- Nodes ----
class NodeCreate(BaseModel):
    name: str = Field(..., min_length=1)
    connection_url: str = Field(..., min_length=1)
    secret: str = Field(..., min_length=1)
    port_allocations: Optional[Union[List[int], str]] = None

    @field_validator("port_allocations")
    @classmethod
    def _validate_ports(cls, value):
        return _check_ports(value)

class NodeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    connection_url: Optional[str] = Field(None, min_length=1)
    secret: Optional[str] = Field(None, min_length=1)
    port_allocations: Optional[Union[List[int], str]] = None

    @field_validator("port_allocations")
    @classmethod
    def _validate_ports(cls, value):
        return _check_ports(value)

class NodeTestRequest(BaseModel):
    connection_url: str = Field(..., min_length=1)
    secret: Optional[str] = None

class NodeTestResponse(BaseModel):
    online: bool
    secret_valid: Optional[bool] = None

class NodeOut(BaseModel):
    id: int
    name: str
    connection_url: str
    port_allocations: List[int] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ---- Servers ----
class ServerCreate(BaseModel):
    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    port: int = Field(..., ge=MIN_PORT, le=MAX_PORT)
    memory: str = Field(..., min_length=1)
    modpack_id: Optional[Union[str, int]] = None
    node_id: int
    user_ids: List[str] = []

class ServerOut(BaseModel):
    id: str
    name: str
    version: str
    type: str
    port: int
    memory: str
    modpack_id: Optional[str] = None
    node_id: int
    user_ids: List[str] = []
    status: Optional[Any] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class CommandRequest(BaseModel):
    command: str = Field(..., min_length=1)


# ---- Settings ----
class SettingsOut(BaseModel):
    onboarding_complete: bool
    api_key: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class SettingsUpdate(BaseModel):
    onboarding_complete: Optional[bool] = None
    api_key: Optional[str] = Field(None, min_length=16)

class ApiKeyOut(BaseModel):
    api_key: str


# ---- Onboarding ----
class OnboardingStatus(BaseModel):
    onboarding_complete: bool

class OnboardingRequest(BaseModel):
    node_name: str = Field(..., min_length=1)
    node_connection_url: str = Field(..., min_length=1)
    node_secret: str = Field(..., min_length=1)
    port_allocations: Optional[Union[List[int], str]] = None

    @field_validator("port_allocations")
    @classmethod
    def _validate_ports(cls, value):
        return _check_ports(value)

class OnboardingResult(BaseModel):
    onboarding_complete: bool
    api_key: str
    node: NodeOut
    role: str


# ---- Pagination ----
class PageMeta(BaseModel):
    total: int
    page: int
    page_size: int
    total_pages: int


def paginate(items: List[Any], page: int, page_size: int) -> Dict[str, Any]:
    """Slice ``items`` into one page with a ``meta`` block."""
    total = len(items)
    start = (page - 1) * page_size
    return {
        "data": items[start:start + page_size],
        "meta": PageMeta(
            total=total,
            page=page,
            page_size=page_size,
            total_pages=-(-total // page_size) if page_size else 0,
        ).model_dump(),
    }
