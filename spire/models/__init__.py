"""Models package: import all models so create_all can discover them."""

from spire.models.role import Role
from spire.models.node import Node
from spire.models.server import Server
from spire.models.settings import SpireSettings

__all__ = ["Role", "Node", "Server", "SpireSettings"]
