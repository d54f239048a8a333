"""Pytest configuration and shared fixtures."""
import os

# Must be set before app.core.config is imported
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-with-at-least-32-characters"
os.environ["SUPER_ADMIN_EMAIL"] = "root@tradingacademy.io"
os.environ["SESSION_REGISTRY_ENABLED"] = "false"

import pytest
from unittest.mock import Mock
from fastapi.testclient import TestClient

from app.core.policy import default_policy
from app.core.session import SessionResolver
from app.core.tokens import TokenCodec
from app.domain.principal import Principal, Role, StudentDetails, TokenClaims
from app.infrastructure.redis import SessionRegistry
from app.infrastructure.store import DocumentStore
from app.services.accounts import AccountService
from app.services.community import CommunityService
from app.services.tasks import TaskService

TEST_SECRET = os.environ["JWT_SECRET_KEY"]
SUPER_ADMIN_EMAIL = os.environ["SUPER_ADMIN_EMAIL"]


class RecordingPublisher:
    """Keeps published events in memory, in order."""

    def __init__(self):
        self.events = []

    def publish(self, channel, event, payload):
        self.events.append((channel, event, payload))


@pytest.fixture
def codec():
    return TokenCodec(secret=TEST_SECRET)


@pytest.fixture
def policy():
    return default_policy(SUPER_ADMIN_EMAIL)


@pytest.fixture
def store():
    store = DocumentStore()
    store.seed_rooms()
    return store


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def mock_redis():
    """Dict-backed Redis double supporting get/setex/delete."""
    data = {}
    client = Mock()
    client.setex.side_effect = lambda key, ttl, value: data.__setitem__(key, value) or True
    client.get.side_effect = lambda key: data.get(key)
    client.delete.side_effect = lambda key: 1 if data.pop(key, None) is not None else 0
    client.data = data
    return client


@pytest.fixture
def registry(mock_redis):
    return SessionRegistry(redis_client=mock_redis, ttl_days=7)


@pytest.fixture
def account_service(store, codec, policy):
    return AccountService(store, codec, policy, super_admin_email=SUPER_ADMIN_EMAIL, bcrypt_rounds=4)


@pytest.fixture
def task_service(store, policy, publisher):
    return TaskService(store, policy, publisher)


@pytest.fixture
def community_service(store, policy, publisher):
    return CommunityService(store, policy, publisher)


@pytest.fixture
def make_principal():
    """Factory for principals with sensible defaults."""
    def _make(user_id, role=Role.STUDENT, **kwargs):
        return Principal(id=user_id, email=f"{user_id}@tradingacademy.io", role=role, **kwargs)
    return _make


@pytest.fixture
def student(make_principal):
    return make_principal("student_a", student_details=StudentDetails(onboarding_completed=True))


@pytest.fixture
def other_student(make_principal):
    return make_principal("student_b", student_details=StudentDetails(onboarding_completed=True))


@pytest.fixture
def instructor(make_principal):
    return make_principal("instructor_a", Role.INSTRUCTOR)


@pytest.fixture
def other_instructor(make_principal):
    return make_principal("instructor_b", Role.INSTRUCTOR)


@pytest.fixture
def admin(make_principal):
    return make_principal("admin_a", Role.ADMIN)


@pytest.fixture
def superadmin(make_principal):
    return make_principal("root", Role.SUPERADMIN)


@pytest.fixture
def bearer(codec):
    """Build an Authorization header for a principal."""
    def _bearer(principal):
        token = codec.issue(TokenClaims(sub=principal.id, email=principal.email, role=principal.role))
        return {"Authorization": f"Bearer {token}"}
    return _bearer


@pytest.fixture
def test_client(codec, policy, account_service, task_service, community_service):
    """FastAPI test client wired to the per-test services."""
    from main import app
    from app.api.dependencies import get_account_service, get_community_service, get_task_service
    from app.core.auth import get_policy, get_session_resolver

    app.dependency_overrides[get_session_resolver] = lambda: SessionResolver(codec)
    app.dependency_overrides[get_policy] = lambda: policy
    app.dependency_overrides[get_account_service] = lambda: account_service
    app.dependency_overrides[get_task_service] = lambda: task_service
    app.dependency_overrides[get_community_service] = lambda: community_service

    yield TestClient(app)

    app.dependency_overrides.clear()
