from __future__ import annotations

import time
from types import SimpleNamespace

import pytest
from jose import jwt

from defect_tracker import identity as identity_module
from defect_tracker.config import Settings
from defect_tracker.identity import (
    Identity,
    IdentityError,
    InvalidCredentials,
    LocalIdentityProvider,
    SupabaseIdentityProvider,
    build_identity_provider,
    get_password_hash,
    verify_password,
)


def _token(provider: LocalIdentityProvider, **claims) -> str:
    config = provider._config
    now = int(time.time())
    payload = {"sub": "u1", "iat": now, "exp": now + 60, "type": "access"}
    payload.update(claims)
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def test_password_hash_round_trip() -> None:
    hashed = get_password_hash("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed) is True
    assert verify_password("other", hashed) is False


def test_verify_password_with_corrupted_hash_is_false() -> None:
    assert verify_password("secret123", "not-a-hash") is False


def test_local_provider_signup_and_sign_in(provider) -> None:
    created = provider.create_user(email="A@Example.com", password="secret123", user_metadata={"name": "A"})

    token = provider.sign_in(email="a@example.com", password="secret123")
    resolved = provider.verify_token(token)

    assert resolved == Identity(id=created.id, email="A@Example.com", user_metadata={"name": "A"})


def test_local_provider_rejects_duplicate_email_case_insensitively(provider) -> None:
    provider.create_user(email="a@example.com", password="secret123", user_metadata={})
    with pytest.raises(IdentityError, match="already been registered"):
        provider.create_user(email="A@EXAMPLE.COM", password="secret123", user_metadata={})


@pytest.mark.parametrize(("email", "password"), [("a@example.com", "wrong"), ("nobody@example.com", "secret123")])
def test_local_provider_sign_in_rejects_bad_credentials(provider, email, password) -> None:
    provider.create_user(email="a@example.com", password="secret123", user_metadata={})
    with pytest.raises(InvalidCredentials):
        provider.sign_in(email=email, password=password)


def test_local_provider_rejects_unusable_tokens(provider) -> None:
    created = provider.create_user(email="a@example.com", password="secret123", user_metadata={})
    now = int(time.time())

    assert provider.verify_token(_token(provider, sub=created.id)) is not None
    assert provider.verify_token(_token(provider, sub=created.id, exp=now - 3600)) is None
    assert provider.verify_token(_token(provider, sub=created.id, iat=now + 3600)) is None
    assert provider.verify_token(_token(provider, sub=created.id, type="refresh")) is None
    assert provider.verify_token(_token(provider, sub="unknown")) is None
    assert provider.verify_token("not-a-jwt") is None


def test_local_provider_accepts_expiry_within_leeway(provider) -> None:
    created = provider.create_user(email="a@example.com", password="secret123", user_metadata={})
    token = _token(provider, sub=created.id, exp=int(time.time()) - 5)

    assert provider.verify_token(token) is not None


def test_local_provider_rejects_token_signed_with_other_secret(store) -> None:
    issuer = LocalIdentityProvider(store, Settings(JWT_SECRET_KEY="issuer-secret"))
    verifier = LocalIdentityProvider(store, Settings(JWT_SECRET_KEY="verifier-secret"))
    created = issuer.create_user(email="a@example.com", password="secret123", user_metadata={})

    assert verifier.verify_token(issuer.create_access_token(created)) is None


def test_local_provider_update_metadata(provider) -> None:
    created = provider.create_user(email="a@example.com", password="secret123", user_metadata={"role": "observer"})

    provider.update_user_metadata(created.id, {"role": "admin"})

    token = provider.sign_in(email="a@example.com", password="secret123")
    assert provider.verify_token(token).user_metadata == {"role": "admin"}
    with pytest.raises(IdentityError):
        provider.update_user_metadata("missing", {"role": "admin"})


def test_build_identity_provider_requires_supabase_credentials(store) -> None:
    with pytest.raises(RuntimeError, match="SUPABASE_URL"):
        build_identity_provider(Settings(IDENTITY_PROVIDER="supabase"), store)
    with pytest.raises(RuntimeError, match="IDENTITY_PROVIDER"):
        build_identity_provider(Settings(IDENTITY_PROVIDER="ldap"), store)


def _response(status_code: int, payload: dict) -> SimpleNamespace:
    return SimpleNamespace(status_code=status_code, json=lambda: payload)


class _RequestsStub:
    def __init__(self, response: SimpleNamespace) -> None:
        self.response = response
        self.calls: list[tuple[str, str, dict]] = []
        self.RequestException = identity_module.requests.RequestException

    def _record(self, method: str, url: str, **kwargs):
        self.calls.append((method, url, kwargs))
        return self.response

    def get(self, url, **kwargs):
        return self._record("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._record("POST", url, **kwargs)

    def put(self, url, **kwargs):
        return self._record("PUT", url, **kwargs)


def _supabase(monkeypatch, response) -> tuple[SupabaseIdentityProvider, _RequestsStub]:
    stub = _RequestsStub(response)
    monkeypatch.setattr(identity_module, "requests", stub)
    return SupabaseIdentityProvider("https://auth.example.com/", "service-key"), stub


def test_supabase_verify_token_uses_caller_token(monkeypatch) -> None:
    provider, stub = _supabase(
        monkeypatch, _response(200, {"id": "u1", "email": "a@b.c", "user_metadata": {"role": "admin"}})
    )

    identity = provider.verify_token("user-token")

    assert identity == Identity(id="u1", email="a@b.c", user_metadata={"role": "admin"})
    method, url, kwargs = stub.calls[0]
    assert (method, url) == ("GET", "https://auth.example.com/auth/v1/user")
    assert kwargs["headers"]["Authorization"] == "Bearer user-token"


def test_supabase_verify_token_rejected(monkeypatch) -> None:
    provider, _ = _supabase(monkeypatch, _response(401, {"msg": "invalid JWT"}))
    assert provider.verify_token("bad") is None


def test_supabase_create_user_confirms_email(monkeypatch) -> None:
    provider, stub = _supabase(monkeypatch, _response(200, {"id": "u1", "email": "a@b.c", "user_metadata": {}}))

    provider.create_user(email="a@b.c", password="secret123", user_metadata={"role": "observer"})

    method, url, kwargs = stub.calls[0]
    assert (method, url) == ("POST", "https://auth.example.com/auth/v1/admin/users")
    assert kwargs["json"]["email_confirm"] is True
    assert kwargs["headers"]["apikey"] == "service-key"


def test_supabase_create_user_error_message(monkeypatch) -> None:
    provider, _ = _supabase(monkeypatch, _response(422, {"msg": "User already registered"}))

    with pytest.raises(IdentityError, match="User already registered"):
        provider.create_user(email="a@b.c", password="secret123", user_metadata={})


def test_supabase_metadata_update_failure_is_not_raised(monkeypatch) -> None:
    provider, stub = _supabase(monkeypatch, _response(500, {"message": "db down"}))

    provider.update_user_metadata("u1", {"role": "admin"})

    assert stub.calls[0][1] == "https://auth.example.com/auth/v1/admin/users/u1"


def test_supabase_sign_in(monkeypatch) -> None:
    provider, stub = _supabase(monkeypatch, _response(200, {"access_token": "jwt"}))

    assert provider.sign_in(email="a@b.c", password="secret123") == "jwt"
    assert stub.calls[0][2]["params"] == {"grant_type": "password"}


def test_supabase_sign_in_bad_credentials(monkeypatch) -> None:
    provider, _ = _supabase(monkeypatch, _response(400, {"error_description": "Invalid login credentials"}))

    with pytest.raises(InvalidCredentials, match="Invalid login credentials"):
        provider.sign_in(email="a@b.c", password="wrong")
