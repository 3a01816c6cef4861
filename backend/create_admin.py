#!/usr/bin/env python3
"""Create the first administrator account.

Signup always yields an observer, so the first admin has to be promoted
outside the API. Usage:

    python create_admin.py admin@example.com 'secret-password' 'Администратор'
"""
import argparse
import sys

from defect_tracker.domain_errors import DomainError
from defect_tracker.identity import get_identity_provider
from defect_tracker.kv_store import get_store, init_store
from defect_tracker.repository import RecordRepository
from defect_tracker.schemas import Role, SignupRequest
from defect_tracker.use_cases.accounts import signup_use_case, update_user_role_use_case


def create_admin(email: str, password: str, name: str) -> str:
    """Register an identity and promote it to admin. Returns the new user id."""
    store = get_store()
    init_store(store)
    repo = RecordRepository(store)
    provider = get_identity_provider()

    identity = signup_use_case(
        repo=repo,
        provider=provider,
        data=SignupRequest(email=email, password=password, name=name),
    )
    update_user_role_use_case(repo=repo, provider=provider, user_id=identity.id, role=Role.ADMIN.value)
    return identity.id


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("name", nargs="?", default="Администратор")
    args = parser.parse_args(argv)

    print("🚀 Creating administrator...")
    try:
        user_id = create_admin(args.email, args.password, args.name)
    except DomainError as exc:
        print(f"❌ Error creating administrator: {exc.message}")
        return 1
    print(f"✅ Administrator created: {args.email} (id {user_id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
