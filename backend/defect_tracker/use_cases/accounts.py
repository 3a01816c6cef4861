"""Signup, login and user-role use-cases."""
from __future__ import annotations

import logging
from typing import Any

from ..domain_errors import DomainError, NotFound, Unauthorized, ValidationError
from ..identity import Identity, IdentityError, IdentityProvider, InvalidCredentials
from ..repository import RecordRepository
from ..schemas import (
    VALID_ROLES,
    LoginRequest,
    Role,
    SignupRequest,
    UserRecord,
    utc_now_iso,
)

logger = logging.getLogger(__name__)


def signup_use_case(*, repo: RecordRepository, provider: IdentityProvider, data: SignupRequest) -> Identity:
    """Create an identity and its User record. The requested role is ignored."""
    role = Role.OBSERVER.value
    try:
        identity = provider.create_user(
            email=data.email,
            password=data.password,
            user_metadata={"name": data.name, "role": role},
        )
    except IdentityError as exc:
        logger.info("Signup rejected by identity provider: %s", exc.message)
        raise ValidationError(exc.message) from exc

    repo.save_user(
        UserRecord(
            id=identity.id,
            email=data.email,
            name=data.name,
            role=role,
            created_at=utc_now_iso(),
        )
    )
    logger.info("user.signup id=%s", identity.id)
    return identity


def profile_for_identity(*, repo: RecordRepository, identity: Identity) -> UserRecord:
    """User record of an identity, or one synthesized from identity metadata."""
    profile = repo.get_user(identity.id)
    if profile is not None:
        return profile
    metadata = identity.user_metadata or {}
    return UserRecord(
        id=identity.id,
        email=identity.email,
        name=metadata.get("name") or identity.email,
        role=metadata.get("role") or Role.OBSERVER.value,
    )


def login_use_case(
    *,
    repo: RecordRepository,
    provider: IdentityProvider,
    data: LoginRequest,
) -> tuple[str, UserRecord]:
    try:
        token = provider.sign_in(email=data.email, password=data.password)
    except InvalidCredentials as exc:
        raise Unauthorized(exc.message) from exc
    except IdentityError as exc:
        raise DomainError(code="IDENTITY_ERROR", http_status=exc.status_code, message=exc.message) from exc

    identity = provider.verify_token(token)
    if identity is None:
        raise Unauthorized()
    return token, profile_for_identity(repo=repo, identity=identity)


def update_user_role_use_case(
    *,
    repo: RecordRepository,
    provider: IdentityProvider,
    user_id: str,
    role: Any,
) -> UserRecord:
    """Set a user's role in the User record and in identity metadata (two writes)."""
    if not isinstance(role, str) or role not in VALID_ROLES:
        raise ValidationError("Invalid role")

    profile = repo.get_user(user_id)
    if profile is None:
        raise NotFound("User not found")

    updated = profile.model_copy(update={"role": role, "updated_at": utc_now_iso()})
    repo.save_user(updated)

    metadata = profile.model_dump(by_alias=True, mode="json", exclude_none=True)
    metadata["role"] = role
    provider.update_user_metadata(user_id, metadata)
    logger.info("user.role_updated id=%s role=%s", user_id, role)
    return updated
