from __future__ import annotations

from spire.core.permissions import effective_permissions
from spire.services.identity_service import Identity
from spire.services.role_service import role_service

from test_authorization import ADMIN, USER, FakeRole


def test_no_claim_or_no_roles_gives_nothing():
    assert effective_permissions(None, [USER, ADMIN]) == []
    assert effective_permissions("user", []) == []
    assert effective_permissions("ghost", [USER, ADMIN]) == []


def test_wildcard_role_reports_only_wildcard():
    assert effective_permissions("admin", [USER, ADMIN]) == ["*"]


def test_reports_union_of_all_roles_without_wildcard():
    # Pinned: the union covers roles unrelated to the claim.
    viewer = FakeRole("viewer", 0, ["servers:read"])
    support = FakeRole("support", 1, ["users:read", "servers:read"])
    root = FakeRole("root", 2, ["*"])
    assert effective_permissions("viewer", [viewer, support, root]) == [
        "servers:read",
        "users:read",
    ]


def test_admin_claim_keeps_wildcard_in_union():
    owner = FakeRole("admin", 1, ["settings:read"])
    root = FakeRole("root", 2, ["*"])
    assert effective_permissions("admin", [owner, root]) == ["settings:read", "*"]


def test_role_service_reads_the_store(db, seeded_roles):
    user = Identity(id="u1", role="user")
    assert role_service.get_user_permissions(db, user) == ["profile:self", "servers:self"]
    assert role_service.get_user_permissions(db, Identity(id="u2", role="admin")) == ["*"]
    assert role_service.get_user_permissions(db, Identity(id="u3")) == []
