import os

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("RATE_LIMIT", "10000/minute")

from types import SimpleNamespace

import pytest
from fastapi import Security
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient

from app.config import settings
from app.database.supabase_client import get_supabase, get_user_supabase, security
from app.main import app
from app.modules.auth.service import clear_auth_cache
from tests.fakes import FakeSupabase


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(settings, "rpc_retry_base_delay", 0)


@pytest.fixture(autouse=True)
def fresh_auth_cache():
    clear_auth_cache()
    yield
    clear_auth_cache()


@pytest.fixture
def fake():
    return FakeSupabase()


@pytest.fixture
def client(fake):
    def user_supabase(credentials: HTTPAuthorizationCredentials = Security(security)):
        return fake.for_token(credentials.credentials)

    app.dependency_overrides[get_supabase] = lambda: fake
    app.dependency_overrides[get_user_supabase] = user_supabase
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(fake):
    """Factory for signed-in users: id, email, headers and a client acting as them."""
    def _make(email: str, full_name: str = None):
        user = fake.auth.create_user(email, full_name=full_name)
        token = fake.auth.issue_token(user)
        return SimpleNamespace(
            id=user.id,
            email=email,
            token=token,
            headers={"Authorization": f"Bearer {token}"},
            data={"id": user.id, "email": email, "user_metadata": user.user_metadata},
            db=fake.as_user(user.id),
        )
    return _make


@pytest.fixture
def alice(make_user):
    return make_user("alice@example.com", "Alice Smith")


@pytest.fixture
def bob(make_user):
    return make_user("bob@example.com", "Bob Jones")


@pytest.fixture
def carol(make_user):
    return make_user("carol@example.com")


@pytest.fixture
def family_of(fake):
    """Factory: a family created by `admin` with the given extra members."""
    def _make(admin, name: str = "Smiths", members=()):
        family = fake.seed("families", name=name, created_by=admin.id)
        fake.seed("family_members", family_id=family["id"], user_id=admin.id,
                  email=admin.email, name=admin.email.split("@")[0], role="admin")
        for member, role in members:
            fake.seed("family_members", family_id=family["id"], user_id=member.id,
                      email=member.email, name=member.email.split("@")[0], role=role)
        return family
    return _make
