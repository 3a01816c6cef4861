"""Identity providers (the authenticator behind every handler).

A provider resolves bearer tokens to identities, creates identities at signup,
stores per-identity metadata and exchanges credentials for access tokens.
"""
from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import requests
from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import Settings, settings
from .kv_store import KeyValueStore, get_store
from .schemas import utc_now_iso

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


@dataclass
class Identity:
    id: str
    email: str
    user_metadata: dict[str, Any] = field(default_factory=dict)


class IdentityError(Exception):
    """The identity provider rejected a request."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidCredentials(IdentityError):
    def __init__(self, message: str = "Invalid login credentials") -> None:
        super().__init__(message, status_code=401)


class IdentityProvider(ABC):
    @abstractmethod
    def verify_token(self, token: str) -> Identity | None:
        """Resolve a bearer token, or None when it is not acceptable."""

    @abstractmethod
    def create_user(self, *, email: str, password: str, user_metadata: dict[str, Any]) -> Identity:
        ...

    @abstractmethod
    def update_user_metadata(self, user_id: str, user_metadata: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def sign_in(self, *, email: str, password: str) -> str:
        """Return an access token for valid credentials."""


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception:
        # Invalid/corrupted hash should not crash login flow.
        logger.exception("Password verification failed due to invalid hash format")
        return False


def get_password_hash(password: str) -> str:
    """Hash password."""
    return pwd_context.hash(password)


class LocalIdentityProvider(IdentityProvider):
    """Self-hosted identities kept in the key-value store, JWT access tokens."""

    def __init__(self, store: KeyValueStore, config: Settings) -> None:
        self._store = store
        self._config = config

    @staticmethod
    def _identity_key(user_id: str) -> str:
        return f"auth:identity:{user_id}"

    @staticmethod
    def _email_key(email: str) -> str:
        return f"auth:email:{email.strip().lower()}"

    def _load(self, user_id: str) -> dict[str, Any] | None:
        return self._store.get(self._identity_key(user_id))

    @staticmethod
    def _to_identity(doc: dict[str, Any]) -> Identity:
        return Identity(id=doc["id"], email=doc["email"], user_metadata=dict(doc.get("userMetadata") or {}))

    def create_user(self, *, email: str, password: str, user_metadata: dict[str, Any]) -> Identity:
        if self._store.get(self._email_key(email)) is not None:
            raise IdentityError("A user with this email address has already been registered")
        user_id = str(uuid.uuid4())
        doc = {
            "id": user_id,
            "email": email,
            "passwordHash": get_password_hash(password),
            "userMetadata": dict(user_metadata),
            "createdAt": utc_now_iso(),
        }
        self._store.set(self._identity_key(user_id), doc)
        self._store.set(self._email_key(email), {"id": user_id})
        return self._to_identity(doc)

    def update_user_metadata(self, user_id: str, user_metadata: dict[str, Any]) -> None:
        doc = self._load(user_id)
        if doc is None:
            raise IdentityError("User not found", status_code=404)
        doc["userMetadata"] = dict(user_metadata)
        self._store.set(self._identity_key(user_id), doc)

    def create_access_token(self, identity: Identity) -> str:
        """Create JWT access token."""
        now = int(time.time())
        payload = {
            "sub": identity.id,
            "email": identity.email,
            "user_metadata": identity.user_metadata,
            "iat": now,
            "exp": now + int(self._config.JWT_ACCESS_TOKEN_EXPIRE_MINUTES) * 60,
            "type": "access",
        }
        return jwt.encode(payload, self._config.JWT_SECRET_KEY, algorithm=self._config.JWT_ALGORITHM)

    def _decode(self, token: str) -> dict[str, Any] | None:
        try:
            payload = jwt.decode(
                token,
                self._config.JWT_SECRET_KEY,
                algorithms=[self._config.JWT_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError:
            return None

        leeway = int(self._config.JWT_LEEWAY_SECONDS)
        now = int(time.time())
        try:
            exp = int(payload["exp"])
            iat = int(payload.get("iat", now))
        except (KeyError, TypeError, ValueError):
            return None
        if now > exp + leeway:
            return None
        # Reject tokens issued far in the future (clock skew / malicious tokens).
        if iat > now + leeway:
            return None
        if payload.get("type") != "access":
            return None
        return payload

    def verify_token(self, token: str) -> Identity | None:
        payload = self._decode(token)
        if payload is None or not payload.get("sub"):
            return None
        doc = self._load(str(payload["sub"]))
        if doc is None:
            return None
        return self._to_identity(doc)

    def sign_in(self, *, email: str, password: str) -> str:
        index = self._store.get(self._email_key(email))
        doc = self._load(index["id"]) if index else None
        if doc is None or not verify_password(password, doc.get("passwordHash", "")):
            raise InvalidCredentials()
        return self.create_access_token(self._to_identity(doc))


class SupabaseIdentityProvider(IdentityProvider):
    """Managed identity service reached over its REST auth API."""

    def __init__(self, base_url: str, service_role_key: str, timeout: int = 10) -> None:
        self._base_url = base_url.rstrip("/")
        self._service_role_key = service_role_key
        self._timeout = timeout

    def _admin_headers(self) -> dict[str, str]:
        return {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {self._service_role_key}",
        }

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        for field_name in ("msg", "message", "error_description", "error"):
            if data.get(field_name):
                return str(data[field_name])
        return f"HTTP {response.status_code}"

    @staticmethod
    def _to_identity(data: dict[str, Any]) -> Identity:
        return Identity(id=data["id"], email=data.get("email", ""), user_metadata=data.get("user_metadata") or {})

    def verify_token(self, token: str) -> Identity | None:
        try:
            response = requests.get(
                f"{self._base_url}/auth/v1/user",
                headers={"apikey": self._service_role_key, "Authorization": f"Bearer {token}"},
                timeout=self._timeout,
            )
        except requests.RequestException:
            logger.exception("Auth verification error")
            return None
        if response.status_code != 200:
            return None
        return self._to_identity(response.json())

    def create_user(self, *, email: str, password: str, user_metadata: dict[str, Any]) -> Identity:
        response = requests.post(
            f"{self._base_url}/auth/v1/admin/users",
            headers=self._admin_headers(),
            json={
                "email": email,
                "password": password,
                "user_metadata": user_metadata,
                # No mail server is configured, so confirm immediately.
                "email_confirm": True,
            },
            timeout=self._timeout,
        )
        if response.status_code >= 400:
            raise IdentityError(self._error_message(response))
        data = response.json()
        return self._to_identity(data.get("user", data))

    def update_user_metadata(self, user_id: str, user_metadata: dict[str, Any]) -> None:
        response = requests.put(
            f"{self._base_url}/auth/v1/admin/users/{user_id}",
            headers=self._admin_headers(),
            json={"user_metadata": user_metadata},
            timeout=self._timeout,
        )
        if response.status_code >= 400:
            # The profile record is already written; the metadata copy is best effort.
            logger.warning(
                "Failed to update identity metadata user=%s status=%s: %s",
                user_id,
                response.status_code,
                self._error_message(response),
            )

    def sign_in(self, *, email: str, password: str) -> str:
        response = requests.post(
            f"{self._base_url}/auth/v1/token",
            params={"grant_type": "password"},
            headers={"apikey": self._service_role_key},
            json={"email": email, "password": password},
            timeout=self._timeout,
        )
        if response.status_code in (400, 401):
            raise InvalidCredentials(self._error_message(response))
        if response.status_code >= 400:
            raise IdentityError(self._error_message(response), status_code=response.status_code)
        return response.json()["access_token"]


def build_identity_provider(config: Settings, store: KeyValueStore) -> IdentityProvider:
    kind = config.IDENTITY_PROVIDER.lower()
    if kind == "supabase":
        if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_ROLE_KEY:
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for the supabase provider")
        return SupabaseIdentityProvider(
            config.SUPABASE_URL,
            config.SUPABASE_SERVICE_ROLE_KEY,
            timeout=config.SUPABASE_TIMEOUT_SECONDS,
        )
    if kind == "local":
        return LocalIdentityProvider(store, config)
    raise RuntimeError(f"Unknown IDENTITY_PROVIDER: {config.IDENTITY_PROVIDER!r}")


@lru_cache()
def get_identity_provider() -> IdentityProvider:
    """FastAPI dependency: process-wide identity provider."""
    return build_identity_provider(settings, get_store())
