"""Glide node model."""

import json

from sqlalchemy import Column, Integer, String, Text, DateTime, func
from spire.db.base import Base


class Node(Base):
    """A registered remote Glide agent."""
    __tablename__ = "nodes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    connection_url = Column(String(500), unique=True, nullable=False)
    secret_encrypted = Column(Text, nullable=False)  # Fernet token of the bearer secret
    port_allocations_json = Column(Text, nullable=False, default="[]")
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def port_allocations(self) -> list:
        return list(json.loads(self.port_allocations_json or "[]"))

    @port_allocations.setter
    def port_allocations(self, value) -> None:
        self.port_allocations_json = json.dumps(sorted(set(value)))
