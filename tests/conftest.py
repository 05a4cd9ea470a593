from __future__ import annotations

import dataclasses
import json
import os
from typing import Any, Dict, List, Optional

# Point the app at an in-memory database before anything imports spire.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import httpx
import pytest
from fastapi.testclient import TestClient

from spire.core.exceptions import NotFound
from spire.db.base import Base
from spire.db.session import SessionLocal, engine, get_db, init_db
from spire.main import app
from spire.services.glide_client import GlideClient, get_glide_client
from spire.services.identity_service import Identity, IdentityProvider, get_identity_provider
from spire.services.role_service import role_service


class FakeIdentityProvider(IdentityProvider):
    """In-memory users; the session token of a user is ``token-<id>``."""

    def __init__(self):
        self.users: Dict[str, Identity] = {}
        self.role_updates: List[tuple] = []

    def add_user(self, user_id: str, role: Optional[str] = None, **fields) -> str:
        self.users[user_id] = Identity(id=user_id, role=role, **fields)
        return f"token-{user_id}"

    def verify_session_token(self, token: str) -> Optional[str]:
        if token.startswith("token-") and token[len("token-"):] in self.users:
            return token[len("token-"):]
        return None

    def get_user(self, user_id: str) -> Optional[Identity]:
        user = self.users.get(user_id)
        return dataclasses.replace(user) if user else None

    def list_users(self, limit: int = 100, offset: int = 0) -> List[Identity]:
        return [dataclasses.replace(u) for u in list(self.users.values())[offset:offset + limit]]

    def count_users(self) -> int:
        return len(self.users)

    def update_role(self, user_id: str, role: str) -> Identity:
        if user_id not in self.users:
            raise NotFound("User not found")
        self.users[user_id].role = role
        self.role_updates.append((user_id, role))
        return dataclasses.replace(self.users[user_id])


class FakeGlideNode:
    """Simulates node agents behind ``httpx.MockTransport``.

    Hosts listed in ``down`` refuse connections, ``secrets`` maps host to the
    accepted bearer secret, and ``fail`` maps ``(method, path)`` to an error.
    """

    def __init__(self):
        self.secrets: Dict[str, str] = {}
        self.down: set = set()
        self.fail: Dict[tuple, str] = {}
        self.containers: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.next_id = 1

    def add_node(self, host: str, secret: str = "node-secret") -> str:
        self.secrets[host] = secret
        return f"http://{host}"

    @staticmethod
    def ok(data: Any) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": data})

    @staticmethod
    def error(message: str, status_code: int = 400) -> httpx.Response:
        return httpx.Response(status_code, json={"success": False, "error": message})

    def handler(self, request: httpx.Request) -> httpx.Response:
        host, method, path = request.url.host, request.method, request.url.path
        self.calls.append((method, host, path))
        if host in self.down or host not in self.secrets:
            raise httpx.ConnectError("connection refused", request=request)
        if path == "/health":
            return self.ok({"cpuUsagePercent": 12.5, "cpuModel": "Fake CPU", "cpuCores": 4})
        if request.headers.get("authorization") != f"Bearer {self.secrets[host]}":
            return self.error("Unauthorized", 401)
        if (method, path) in self.fail:
            return self.error(self.fail[(method, path)])
        if path == "/":
            return self.ok({"name": "glide"})

        parts = path.strip("/").split("/")
        if parts == ["containers"] and method == "POST":
            container_id = f"c{self.next_id}"
            self.next_id += 1
            self.containers[container_id] = json.loads(request.content)
            return self.ok({"id": container_id})

        container_id = parts[1] if len(parts) > 1 else None
        if container_id not in self.containers:
            return self.error("Container not found", 404)
        rest = parts[2:]
        if method == "DELETE" and not rest:
            del self.containers[container_id]
            return self.ok({"deleted": True})
        if rest == ["status"]:
            return self.ok({"state": "running"})
        if rest[:1] == ["status"] and method == "POST":
            return self.ok({"action": rest[1]})
        if rest == ["command"]:
            return self.ok({"output": f"ran {json.loads(request.content)['command']}"})
        if rest == ["files"]:
            if request.url.params.get("path") != "/":
                return self.error("ENOENT", 404)
            return self.ok([{"name": "server.properties", "type": "file"}])
        if rest == ["logs"]:
            return self.ok(["line one", "line two"])
        return self.error("Not found", 404)


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    init_db(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def glide():
    return FakeGlideNode()


@pytest.fixture
def glide_client(glide):
    return GlideClient(transport=httpx.MockTransport(glide.handler))


@pytest.fixture
def seeded_roles(db):
    role_service.create_role(db, "user", 0, ["profile:self", "servers:self"])
    role_service.create_role(db, "admin", 1, ["*"])
    return role_service.get_roles(db)


@pytest.fixture
def client(db, identity_provider, glide_client):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    app.dependency_overrides[get_glide_client] = lambda: glide_client
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
