# tests/conftest.py
"""
Shared fixtures for the RoofGuard test suite.

Provides a controllable clock, fresh rate limiters and a TestClient bound to
the application with isolated state.
"""

import os
import tempfile

# Keep test runs from writing into the project's logs/ folder
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="roofguard-logs-"))

import pytest
from fastapi.testclient import TestClient
from typing import Optional

from roofguard.services.auth_service import AuthenticatedUser
from roofguard.services.rate_limit_store import MemoryRateLimitStore
from roofguard.core.security.rate_limiter import RateLimiter


class FakeClock:
    """Manually advanced clock returning epoch seconds"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAuthenticator:
    """In-memory credential and session check standing in for the auth backend"""

    def __init__(self, users=None, sessions=None):
        # email -> (password, user)
        self.users = users or {}
        # bearer token -> user
        self.sessions = sessions or {}
        self.calls = 0

    async def authenticate(self, email: str, password: str) -> Optional[AuthenticatedUser]:
        self.calls += 1
        entry = self.users.get(email)
        if entry is None or entry[0] != password:
            return None
        return entry[1]

    async def get_user(self, token: str) -> Optional[AuthenticatedUser]:
        return self.sessions.get(token)


ADMIN_USER = AuthenticatedUser(
    id="c73bcdcc-2669-4bf6-81d3-e4ae73fb11fd",
    email="admin@roofguard.test",
    role="admin",
    full_name="Alice Admin",
)
CLIENT_USER = AuthenticatedUser(
    id="9b2e4f0a-1c3d-4e5f-8a7b-6c5d4e3f2a1b",
    email="client@roofguard.test",
    role="client",
    full_name="Bruno Client",
)
SUSPENDED_USER = AuthenticatedUser(
    id="0f1e2d3c-4b5a-4978-8695-a4b3c2d1e0f9",
    email="suspended@roofguard.test",
    role="client",
    is_active=False,
)
VALID_PASSWORD = "Str0ng!Passw0rd"
ADMIN_TOKEN = "admin-session-token"
CLIENT_TOKEN = "client-session-token"
SUSPENDED_TOKEN = "suspended-session-token"


@pytest.fixture
def clock():
    """Frozen clock, advance it explicitly"""
    return FakeClock()


@pytest.fixture
def memory_store():
    return MemoryRateLimitStore()


@pytest.fixture
def limiter(memory_store, clock):
    """Rate limiter on a fresh memory store and the fake clock"""
    return RateLimiter(memory_store, clock=clock)


@pytest.fixture
def authenticator():
    return FakeAuthenticator({
        ADMIN_USER.email: (VALID_PASSWORD, ADMIN_USER),
        CLIENT_USER.email: (VALID_PASSWORD, CLIENT_USER),
        SUSPENDED_USER.email: (VALID_PASSWORD, SUSPENDED_USER),
    }, {
        ADMIN_TOKEN: ADMIN_USER,
        CLIENT_TOKEN: CLIENT_USER,
        SUSPENDED_TOKEN: SUSPENDED_USER,
    })


@pytest.fixture
def client(limiter, authenticator):
    """TestClient for the application with a fresh limiter and fake auth backend"""
    from roofguard.main import app

    previous_limiter = app.state.rate_limiter
    previous_authenticator = app.state.authenticator
    app.state.rate_limiter = limiter
    app.state.authenticator = authenticator

    yield TestClient(app)

    app.state.rate_limiter = previous_limiter
    app.state.authenticator = previous_authenticator
