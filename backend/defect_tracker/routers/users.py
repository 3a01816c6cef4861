"""User endpoints."""
from fastapi import APIRouter, Depends, Request

from ..auth import get_current_identity, get_repository, require_admin
from ..domain_errors import ValidationError, handler_boundary
from ..identity import Identity, IdentityProvider, get_identity_provider
from ..repository import RecordRepository
from ..schemas import RoleUpdateRequest, UserEnvelope, UserRecord, UsersEnvelope
from ..use_cases.accounts import update_user_role_use_case

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=UsersEnvelope)
def get_users(
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    """Get all users. Open to every authenticated caller."""
    with handler_boundary("fetching users"):
        return UsersEnvelope(users=repo.list_users())


async def read_role_update(
    request: Request,
    admin: UserRecord = Depends(require_admin),
) -> RoleUpdateRequest:
    """Role update body, read only after the admin gate has passed."""
    try:
        return RoleUpdateRequest.model_validate(await request.json())
    except ValueError as exc:
        # Malformed JSON and non-object bodies alike.
        raise ValidationError("Invalid role") from exc


@router.put("/{user_id}/role", response_model=UserEnvelope)
def update_user_role(
    user_id: str,
    data: RoleUpdateRequest = Depends(read_role_update),
    repo: RecordRepository = Depends(get_repository),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """Change a user's role (admin only)."""
    with handler_boundary("updating user role"):
        user = update_user_role_use_case(repo=repo, provider=provider, user_id=user_id, role=data.role)
    return UserEnvelope(user=user)
