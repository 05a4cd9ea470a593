from __future__ import annotations

from spire.models.settings import SpireSettings
from spire.services.settings_service import settings_service

from conftest import auth


def test_get_settings_creates_once(db):
    first = settings_service.get_settings(db)
    assert first.onboarding_complete is False
    assert first.api_key is None

    second = settings_service.get_settings(db)
    assert second.id == first.id
    assert db.query(SpireSettings).count() == 1


def test_onboarding_never_reverts(db):
    settings_service.update_settings(db, onboarding_complete=True)
    record = settings_service.update_settings(db, onboarding_complete=False)
    assert record.onboarding_complete is True


def test_update_keeps_api_key_unless_given(db):
    settings_service.update_settings(db, api_key="spire_first_key_value")
    record = settings_service.update_settings(db, onboarding_complete=True)
    assert record.api_key == "spire_first_key_value"


def test_rotate_api_key(db):
    first = settings_service.rotate_api_key(db)
    second = settings_service.rotate_api_key(db)
    assert first.startswith("spire_")
    assert first != second
    assert settings_service.get_settings(db).api_key == second


def test_settings_api(client, identity_provider, seeded_roles):
    admin = identity_provider.add_user("a1", role="admin")
    user = identity_provider.add_user("u1", role="user")

    res = client.get("/api/v1/settings", headers=auth(admin))
    assert res.json()["data"]["onboarding_complete"] is False

    res = client.put("/api/v1/settings", json={"onboarding_complete": True}, headers=auth(admin))
    assert res.json()["data"]["onboarding_complete"] is True

    res = client.post("/api/v1/settings/api-key", headers=auth(admin))
    key = res.json()["data"]["api_key"]
    assert client.get("/api/v1/settings", headers=auth(key)).json()["data"]["api_key"] == key

    assert client.get("/api/v1/settings", headers=auth(user)).status_code == 401
    res = client.put("/api/v1/settings", json={"api_key": "short"}, headers=auth(admin))
    assert res.status_code == 400
