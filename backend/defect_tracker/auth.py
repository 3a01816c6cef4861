"""Authentication and authorization."""
import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .domain_errors import Forbidden, Unauthorized
from .identity import Identity, IdentityProvider, get_identity_provider
from .kv_store import KeyValueStore, get_store
from .repository import RecordRepository
from .schemas import Role, UserRecord

logger = logging.getLogger(__name__)

# Bearer token scheme; a missing header is reported as our own 401.
security = HTTPBearer(auto_error=False)


def get_repository(store: KeyValueStore = Depends(get_store)) -> RecordRepository:
    return RecordRepository(store)


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Identity:
    """Resolve the bearer token to an identity or reject with 401."""
    if credentials is None or not credentials.credentials:
        raise Unauthorized()
    try:
        identity = provider.verify_token(credentials.credentials)
    except Exception:
        logger.exception("Auth verification error")
        identity = None
    if identity is None:
        raise Unauthorized()
    return identity


def require_admin(
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
) -> UserRecord:
    """Admin gate: the caller's own User record must carry the admin role."""
    profile = repo.get_user(identity.id)
    if profile is None or profile.role != Role.ADMIN.value:
        raise Forbidden("Forbidden: Admin access required")
    return profile


# Role permissions matrix (UI capabilities; handlers enforce only the admin gate).
ROLE_PERMISSIONS = {
    "admin": {
        "canViewDashboard": True,
        "canViewDefects": True,
        "canViewProjects": True,
        "canViewAnalytics": True,
        "canCreateDefects": True,
        "canManageUsers": True,
    },
    "manager": {
        "canViewDashboard": True,
        "canViewDefects": True,
        "canViewProjects": True,
        "canViewAnalytics": True,
        "canCreateDefects": True,
        "canManageUsers": False,
    },
    "engineer": {
        "canViewDashboard": True,
        "canViewDefects": True,
        "canViewProjects": True,
        "canViewAnalytics": True,
        "canCreateDefects": True,
        "canManageUsers": False,
    },
    "observer": {
        "canViewDashboard": True,
        "canViewDefects": True,
        "canViewProjects": True,
        "canViewAnalytics": True,
        "canCreateDefects": False,
        "canManageUsers": False,
    },
}

UI_PERMISSION_KEYS = tuple(ROLE_PERMISSIONS["admin"].keys())


def get_role_permissions(role: str) -> dict[str, bool]:
    """Permission flags for a role; unknown roles get everything denied."""
    permissions = ROLE_PERMISSIONS.get(role, {})
    return {key: bool(permissions.get(key, False)) for key in UI_PERMISSION_KEYS}

