"""Shared pytest fixtures for garage API tests."""
import os
import sys

import pytest

# Add project root to path
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _PROJECT_ROOT)

# ---------------------------------------------------------------------------
# Deterministic test environment - set BEFORE any server module imports.
# ---------------------------------------------------------------------------
TEST_JWT_SECRET = "test-jwt-secret-for-pytest-32chars!"
os.environ.setdefault('TESTING', 'true')
os.environ.setdefault('ENVIRONMENT', 'testing')
os.environ.setdefault('JWT_SECRET', TEST_JWT_SECRET)

from core.audit import clear_audit_log  # noqa: E402
from core.db import DatabaseAdapter  # noqa: E402
from server.auth.authority import SessionAuthority  # noqa: E402
from server.auth.sessions import InMemorySessionStore  # noqa: E402
from server.auth.tokens import TokenIssuer  # noqa: E402
from fakes import ADMIN_PASSWORD, EMPLOYEE_PASSWORD, MANAGER_PASSWORD  # noqa: E402
from fakes import FakeClock, FakeDialect, InMemoryDirectory, make_user  # noqa: E402


# =============================================================================
# Auth fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def _clear_audit():
    clear_audit_log()
    yield
    clear_audit_log()


@pytest.fixture(scope="session")
def users():
    return [
        make_user(1, "admin@garage.com", ADMIN_PASSWORD, 3, "Ada"),
        make_user(2, "manager@garage.com", MANAGER_PASSWORD, 2, "Max"),
        make_user(3, "employee@garage.com", EMPLOYEE_PASSWORD, 1, "Eve"),
        make_user(4, "former@garage.com", EMPLOYEE_PASSWORD, 1, "Fay", active=False),
    ]


@pytest.fixture
def directory(users):
    return InMemoryDirectory(users)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def issuer():
    return TokenIssuer(TEST_JWT_SECRET)


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def authority(directory, store, issuer, clock):
    return SessionAuthority(directory, store, issuer, max_sessions=5, session_ttl=1800, clock=clock)


# =============================================================================
# Database fixtures
# =============================================================================

@pytest.fixture
def fake_dialect():
    return FakeDialect()


@pytest.fixture
def adapter(fake_dialect):
    """Adapter over the fake dialect with no backoff delay."""
    return DatabaseAdapter(fake_dialect, slow_query_threshold=1000, retries=3, retry_base_delay=0)


@pytest.fixture
def make_adapter():
    """Factory: adapter over a FakeDialect scripted with outcomes."""
    def _make(outcomes=None, fail_open=None, **kwargs):
        kwargs.setdefault("retry_base_delay", 0)
        return DatabaseAdapter(FakeDialect(outcomes, fail_open=fail_open), **kwargs)
    return _make


# =============================================================================
# Flask fixtures
# =============================================================================

@pytest.fixture
def services(adapter, authority):
    """Service container on a real background loop, scheduler disabled."""
    from config.settings import get_settings
    from server.extensions import GarageServices

    svc = GarageServices(get_settings(), adapter, authority, request_timeout=10)
    svc.start(connect_database=True, start_scheduler=False)
    yield svc
    svc.shutdown()


@pytest.fixture
def app(services):
    from server.app import create_app
    return create_app({"TESTING": True, "RATELIMIT_ENABLED": False}, services=services)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    """Log in through the API; returns the response data block."""
    def _login(email, password):
        resp = client.post("/api/login", json={"employee_email": email, "employee_password": password})
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()["data"]
    return _login


@pytest.fixture
def admin_headers(login):
    data = login("admin@garage.com", ADMIN_PASSWORD)
    return {"x-access-token": data["employee_token"], "x-session-id": data["session_id"]}


@pytest.fixture
def employee_headers(login):
    data = login("employee@garage.com", EMPLOYEE_PASSWORD)
    return {"x-access-token": data["employee_token"], "x-session-id": data["session_id"]}
