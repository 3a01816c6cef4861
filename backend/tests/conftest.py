from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from defect_tracker.config import Settings
from defect_tracker.database import build_engine
from defect_tracker.identity import LocalIdentityProvider, get_identity_provider
from defect_tracker.kv_store import SqlKeyValueStore, get_store
from defect_tracker.main import app
from defect_tracker.repository import RecordRepository

API = "/api/v1"


@pytest.fixture
def store() -> SqlKeyValueStore:
    engine = build_engine("sqlite://")
    kv = SqlKeyValueStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))
    kv.create_schema()
    return kv


@pytest.fixture
def repo(store) -> RecordRepository:
    return RecordRepository(store)


@pytest.fixture
def provider(store) -> LocalIdentityProvider:
    return LocalIdentityProvider(store, Settings(JWT_SECRET_KEY="test-secret"))


@pytest.fixture
def client(store, provider):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_identity_provider] = lambda: provider
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def signup_and_login(client: TestClient, email: str, name: str = "Тестовый пользователь") -> tuple[str, dict[str, str]]:
    """Register an account and return (user id, auth headers)."""
    response = client.post(f"{API}/signup", json={"email": email, "password": "secret123", "name": name})
    assert response.status_code == 200, response.text
    user_id = response.json()["user"]["id"]
    response = client.post(f"{API}/auth/login", json={"email": email, "password": "secret123"})
    assert response.status_code == 200, response.text
    return user_id, {"Authorization": f"Bearer {response.json()['accessToken']}"}


def promote(repo: RecordRepository, user_id: str, role: str) -> None:
    user = repo.get_user(user_id)
    repo.save_user(user.model_copy(update={"role": role}))
