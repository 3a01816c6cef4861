from __future__ import annotations

from types import SimpleNamespace

import pytest

from defect_tracker.auth import (
    ROLE_PERMISSIONS,
    UI_PERMISSION_KEYS,
    get_current_identity,
    get_role_permissions,
    require_admin,
)
from defect_tracker.domain_errors import Forbidden, Unauthorized
from defect_tracker.identity import Identity
from defect_tracker.schemas import UserRecord


@pytest.mark.parametrize(
    ("role", "expected"),
    [
        (
            "admin",
            {
                "canViewDashboard": True,
                "canViewDefects": True,
                "canViewProjects": True,
                "canViewAnalytics": True,
                "canCreateDefects": True,
                "canManageUsers": True,
            },
        ),
        (
            "manager",
            {
                "canViewDashboard": True,
                "canViewDefects": True,
                "canViewProjects": True,
                "canViewAnalytics": True,
                "canCreateDefects": True,
                "canManageUsers": False,
            },
        ),
        (
            "engineer",
            {
                "canViewDashboard": True,
                "canViewDefects": True,
                "canViewProjects": True,
                "canViewAnalytics": True,
                "canCreateDefects": True,
                "canManageUsers": False,
            },
        ),
        (
            "observer",
            {
                "canViewDashboard": True,
                "canViewDefects": True,
                "canViewProjects": True,
                "canViewAnalytics": True,
                "canCreateDefects": False,
                "canManageUsers": False,
            },
        ),
    ],
)
def test_role_permissions_matrix_is_stable(role: str, expected: dict[str, bool]) -> None:
    assert get_role_permissions(role) == expected


def test_role_permissions_has_exact_keyset_for_each_role() -> None:
    expected_keys = set(UI_PERMISSION_KEYS)
    for role in ROLE_PERMISSIONS:
        assert set(get_role_permissions(role).keys()) == expected_keys


def test_unknown_role_denies_all_permissions() -> None:
    permissions = get_role_permissions("unknown-role")
    assert set(permissions.keys()) == set(UI_PERMISSION_KEYS)
    assert all(value is False for value in permissions.values())


class _ProviderStub:
    def __init__(self, identity=None, error: Exception | None = None) -> None:
        self._identity = identity
        self._error = error

    def verify_token(self, token: str):
        if self._error is not None:
            raise self._error
        return self._identity


def test_current_identity_requires_credentials() -> None:
    with pytest.raises(Unauthorized):
        get_current_identity(credentials=None, provider=_ProviderStub())


def test_current_identity_provider_failure_is_unauthorized() -> None:
    credentials = SimpleNamespace(credentials="token")
    with pytest.raises(Unauthorized):
        get_current_identity(credentials=credentials, provider=_ProviderStub(error=RuntimeError("down")))


def test_current_identity_resolves_token() -> None:
    identity = Identity(id="u1", email="a@b.c")
    credentials = SimpleNamespace(credentials="token")
    assert get_current_identity(credentials=credentials, provider=_ProviderStub(identity)) is identity


class _RepoStub:
    def __init__(self, user: UserRecord | None) -> None:
        self._user = user

    def get_user(self, user_id: str):
        return self._user


@pytest.mark.parametrize("role", ["observer", "engineer", "manager"])
def test_require_admin_rejects_other_roles(role: str) -> None:
    identity = Identity(id="u1", email="a@b.c", user_metadata={"role": "admin"})
    user = UserRecord(id="u1", email="a@b.c", name="A", role=role)
    with pytest.raises(Forbidden, match="Admin access required"):
        require_admin(identity=identity, repo=_RepoStub(user))


def test_require_admin_rejects_caller_without_user_record() -> None:
    with pytest.raises(Forbidden):
        require_admin(identity=Identity(id="u1", email="a@b.c"), repo=_RepoStub(None))


def test_require_admin_returns_admin_profile() -> None:
    user = UserRecord(id="u1", email="a@b.c", name="A", role="admin")
    assert require_admin(identity=Identity(id="u1", email="a@b.c"), repo=_RepoStub(user)) is user
