"""Signup, login and current-user endpoints."""
from fastapi import APIRouter, Depends

from ..auth import get_current_identity, get_repository, get_role_permissions
from ..domain_errors import handler_boundary
from ..identity import Identity, IdentityProvider, get_identity_provider
from ..repository import RecordRepository
from ..schemas import (
    IdentityResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    SignupRequest,
    SignupResponse,
)
from ..use_cases.accounts import login_use_case, profile_for_identity, signup_use_case

router = APIRouter(tags=["auth"])


@router.post("/signup", response_model=SignupResponse)
def signup(
    data: SignupRequest,
    repo: RecordRepository = Depends(get_repository),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """Register a new user. Every new account starts as an observer."""
    with handler_boundary("signing up"):
        identity = signup_use_case(repo=repo, provider=provider, data=data)
    return SignupResponse(
        user=IdentityResponse(id=identity.id, email=identity.email, user_metadata=identity.user_metadata)
    )


@router.post("/auth/login", response_model=LoginResponse)
def login(
    data: LoginRequest,
    repo: RecordRepository = Depends(get_repository),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """Exchange email and password for a bearer token."""
    with handler_boundary("logging in"):
        token, profile = login_use_case(repo=repo, provider=provider, data=data)
    return LoginResponse(access_token=token, user=profile)


@router.get("/auth/me", response_model=MeResponse)
def get_me(
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    """Caller's profile and UI permissions."""
    with handler_boundary("fetching current user"):
        profile = profile_for_identity(repo=repo, identity=identity)
    return MeResponse(user=profile, permissions=get_role_permissions(profile.role))
