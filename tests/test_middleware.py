from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.testclient import TestClient

from spire.core.middleware import EnvelopeRoute, envelope
from spire.services.settings_service import settings_service
from spire.main import app

from conftest import auth


def test_missing_token_is_unauthorized(client, seeded_roles):
    res = client.get("/api/v1/me")
    assert res.status_code == 401
    assert res.json() == {"success": False, "error": "Unauthorized, no auth token"}


def test_invalid_token_is_unauthorized(client, seeded_roles):
    res = client.get("/api/v1/me", headers=auth("forged"))
    assert res.status_code == 401
    assert res.json()["success"] is False


def test_success_is_wrapped_in_envelope(client, identity_provider, seeded_roles):
    token = identity_provider.add_user("u1", role="user", email="u1@example.com")
    res = client.get("/api/v1/me", headers=auth(token))
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["data"]["id"] == "u1"
    assert body["data"]["email"] == "u1@example.com"
    assert body["data"]["permissions"] == ["profile:self", "servers:self"]
    assert "meta" not in body
    assert "X-Request-Id" in res.headers


def test_user_without_role_gets_default_role(client, identity_provider, seeded_roles):
    token = identity_provider.add_user("new")
    res = client.get("/api/v1/me", headers=auth(token))
    assert res.status_code == 200
    assert res.json()["data"]["role"] == "user"
    assert identity_provider.role_updates == [("new", "user")]
    assert identity_provider.users["new"].role == "user"


def test_missing_permission_reports_requirement(client, identity_provider, seeded_roles):
    token = identity_provider.add_user("u1", role="user")
    res = client.get("/api/v1/nodes", headers=auth(token))
    assert res.status_code == 401
    assert res.json() == {
        "success": False,
        "error": "Unauthorized, missing required permissions",
        "details": {"required": {"behaviour": "AND", "permissions": ["nodes:read"]}},
    }


def test_every_check_denies_when_no_roles_exist(client, identity_provider):
    token = identity_provider.add_user("a1", role="admin")
    assert client.get("/api/v1/me", headers=auth(token)).status_code == 401


def test_api_key_acts_as_admin(client, db, seeded_roles):
    key = settings_service.rotate_api_key(db)
    res = client.get("/api/v1/roles", headers=auth(key))
    assert res.status_code == 200
    assert res.json()["success"] is True


def test_validation_errors_list_fields(client, identity_provider, seeded_roles):
    token = identity_provider.add_user("a1", role="admin")
    res = client.post(
        "/api/v1/nodes",
        json={"name": "n1", "secret": "s", "port_allocations": [80]},
        headers=auth(token),
    )
    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert body["error"] == "Invalid request data"
    assert "connection_url" in body["details"]
    assert "port_allocations" in body["details"]
    assert body["details"]["availableFields"] == (
        "name (required), connection_url (required), secret (required), port_allocations (optional)"
    )


def test_unknown_route_uses_failure_shape(client):
    res = client.get("/api/v1/nope")
    assert res.status_code == 404
    assert res.json() == {"success": False, "error": "Not Found"}


def test_data_meta_body_is_lifted():
    router = APIRouter(route_class=EnvelopeRoute)

    @router.get("/_paged")
    async def paged():
        return {"data": [1, 2], "meta": {"total": 2}}

    @router.get("/_boom")
    async def boom():
        raise RuntimeError("secret detail")

    app.include_router(router)
    try:
        local = TestClient(app)
        assert local.get("/_paged").json() == {"success": True, "data": [1, 2], "meta": {"total": 2}}
        res = local.get("/_boom")
        assert res.status_code == 500
        assert res.json() == {"success": False, "error": "Internal server error"}
    finally:
        app.router.routes = [r for r in app.router.routes if getattr(r, "path", "") not in ("/_paged", "/_boom")]


def test_envelope_passes_non_json_through():
    from starlette.responses import PlainTextResponse

    response = PlainTextResponse("hi")
    assert envelope(response) is response


def test_wrong_api_key_is_rejected(client, db, seeded_roles):
    key = settings_service.rotate_api_key(db)
    assert client.get("/api/v1/roles", headers=auth(key[:-1] + "x")).status_code == 401
