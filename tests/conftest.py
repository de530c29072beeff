"""Common test fixtures for study-partner tests."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from studypartner.api.deps import get_store
from studypartner.api.main import app
from studypartner.core.config import Settings, get_settings
from studypartner.dialogue.proactive import ProactiveSuggestionEngine
from studypartner.sessions import SessionLifecycleManager, SessionStore


# Test secret for HS256 access tokens
TEST_SECRET = "test-secret-key-for-testing-only"
TEST_AUDIENCE = "authenticated"

BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def create_test_token(
    user_id: str,
    secret: str = TEST_SECRET,
    audience: str = TEST_AUDIENCE,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Create an HS256 access token shaped like the ones Supabase issues."""
    payload = {
        "sub": user_id,
        "aud": audience,
        "email": f"{user_id}@example.com",
        "role": "authenticated",
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def settings():
    """Default settings, independent of the environment."""
    return Settings()


@pytest.fixture
def clock():
    """Fixed clock starting at BASE_TIME."""
    return FixedClock()


@pytest.fixture
def store(tmp_path):
    """Create a session store on a temp database file."""
    return SessionStore(tmp_path / "partner.db")


@pytest.fixture
def manager(store, clock, settings):
    """Lifecycle manager wired to the temp store and fixed clock."""
    return SessionLifecycleManager(store, clock=clock, settings=settings)


@pytest.fixture
def engine(clock, settings):
    """Suggestion engine wired to the fixed clock."""
    return ProactiveSuggestionEngine(settings=settings, clock=clock)


@pytest.fixture
def mock_settings(monkeypatch):
    """Mock settings for testing."""
    monkeypatch.setenv("SUPABASE_JWT_SECRET", TEST_SECRET)
    # Clear cached settings to pick up new env var
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def client(store, mock_settings):
    """Create test client with overridden dependencies."""

    def override_get_store():
        yield store

    app.dependency_overrides[get_store] = override_get_store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Auth headers for user-1."""
    return {"Authorization": f"Bearer {create_test_token('user-1')}"}


@pytest.fixture
def other_auth_headers():
    """Auth headers for a different user (for ownership tests)."""
    return {"Authorization": f"Bearer {create_test_token('user-2')}"}
