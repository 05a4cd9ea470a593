"""Role model for RBAC."""

import json

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, func
from spire.db.base import Base


class Role(Base):
    """Ranked bundle of permission strings; higher order is more senior."""
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), unique=True, nullable=False, index=True)
    order = Column(Integer, nullable=False, default=0)
    permissions_json = Column(Text, nullable=False, default="[]")  # JSON list of permission strings
    inherit_children = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def permissions(self) -> list:
        # fresh list per access; stored JSON is never aliased
        return list(json.loads(self.permissions_json or "[]"))

    @permissions.setter
    def permissions(self, value) -> None:
        self.permissions_json = json.dumps(list(dict.fromkeys(value)))
