from __future__ import annotations

import pytest

from spire.core.exceptions import ActionsError
from spire.services.identity_service import Identity
from spire.services.role_service import role_service
from spire.core.permissions import require_all

from conftest import auth


def test_create_role_is_an_idempotent_upsert(db):
    first = role_service.create_role(db, "mod", 1, ["servers:read", "servers:read", "servers:rcon"])
    again = role_service.create_role(db, "mod", 1, ["servers:read", "servers:rcon"])
    assert first.id == again.id
    assert again.permissions == ["servers:read", "servers:rcon"]
    assert [r.name for r in role_service.get_roles(db)] == ["mod"]


def test_upsert_keeps_inherit_flag_unless_given(db):
    role_service.create_role(db, "lead", 2, ["nodes:read"], inherit_children=True)
    role = role_service.create_role(db, "lead", 3, ["nodes:read"])
    assert role.inherit_children is True
    assert role.order == 3


def test_create_role_rejects_unknown_permissions(db):
    with pytest.raises(ActionsError) as exc:
        role_service.create_role(db, "bad", 0, ["servers:read", "servers:fly", "nope"])
    assert exc.value.details == {"permissions": ["servers:fly", "nope"]}
    assert role_service.get_role(db, "bad") is None


def test_scoped_permissions_are_accepted(db):
    role = role_service.create_role(db, "owner", 0, ["servers:read:abc123"])
    assert role.permissions == ["servers:read:abc123"]


def test_is_user_allowed_end_to_end(db, seeded_roles):
    admin = Identity(id="a", role="admin")
    requirement = require_all("servers:create")
    assert role_service.is_user_allowed(db, admin, "admin", requirement)
    assert not role_service.is_user_allowed(db, admin, "user", requirement)
    assert not role_service.is_user_allowed(db, Identity(id="x"), "admin", requirement)
    assert not role_service.is_user_allowed(db, None, "admin", requirement)


def test_roles_api(client, identity_provider, seeded_roles):
    admin = identity_provider.add_user("a1", role="admin")
    user = identity_provider.add_user("u1", role="user")

    res = client.get("/api/v1/roles", headers=auth(admin))
    assert res.status_code == 200
    assert [r["name"] for r in res.json()["data"]] == ["user", "admin"]

    res = client.put(
        "/api/v1/roles/mod",
        json={"order": 0, "permissions": ["servers:read"]},
        headers=auth(admin),
    )
    assert res.status_code == 200
    assert res.json()["data"]["permissions"] == ["servers:read"]

    res = client.put(
        "/api/v1/roles/mod",
        json={"order": 0, "permissions": ["servers:fly"]},
        headers=auth(admin),
    )
    assert res.status_code == 400
    assert res.json() == {
        "success": False,
        "error": "Invalid permissions",
        "details": {"permissions": ["servers:fly"]},
    }

    assert client.get("/api/v1/roles", headers=auth(user)).status_code == 401


def test_permission_check_against_named_role(client, identity_provider, seeded_roles):
    admin = identity_provider.add_user("a1", role="admin")
    body = {"role": "user", "behaviour": "AND", "permissions": ["servers:create"]}

    res = client.post("/api/v1/roles/check", json=body, headers=auth(admin))
    assert res.json()["data"] == {"role": "user", "allowed": False}

    res = client.post("/api/v1/roles/check", json={**body, "role": "admin"}, headers=auth(admin))
    assert res.json()["data"] == {"role": "admin", "allowed": True}

    res = client.post("/api/v1/roles/check", json={**body, "role": "ghost"}, headers=auth(admin))
    assert res.status_code == 404
