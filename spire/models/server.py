"""Game server model."""

import json

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from spire.db.base import Base


class Server(Base):
    """A game server container; the id is assigned by the node agent."""
    __tablename__ = "servers"

    id = Column(String(128), primary_key=True)
    name = Column(String(255), nullable=False)
    version = Column(String(50), nullable=False)
    type = Column(String(50), nullable=False)  # vanilla, paper, forge, fabric, ...
    port = Column(Integer, nullable=False)
    memory = Column(String(32), nullable=False)  # e.g. "4G"
    modpack_id = Column(String(100), nullable=True)
    node_id = Column(Integer, ForeignKey("nodes.id"), nullable=False)
    user_ids_json = Column(Text, nullable=False, default="[]")
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    node = relationship("Node", lazy="joined")

    @property
    def user_ids(self) -> list:
        return list(json.loads(self.user_ids_json or "[]"))

    @user_ids.setter
    def user_ids(self, value) -> None:
        self.user_ids_json = json.dumps(list(dict.fromkeys(value)))
