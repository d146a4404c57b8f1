"""Test doubles shared by the test modules and conftest.py."""
import os
import time

from werkzeug.security import generate_password_hash

from core.db import Dialect, QueryResult
from server.auth.directory import UserDirectory
from server.auth.types import UserRecord

TEST_JWT_SECRET = os.environ.get("JWT_SECRET", "test-jwt-secret-for-pytest-32chars!")

ADMIN_PASSWORD = "Admin#Pass1"
MANAGER_PASSWORD = "Manager#Pass2"
EMPLOYEE_PASSWORD = "Employee#Pass3"

class FakeDialect(Dialect):
    """In-memory dialect: records statements and replays scripted outcomes.

    Each outcome is either an exception (raised) or a list of row dicts.
    With no outcomes left every statement returns one row.
    """

    name = "fake"

    def __init__(self, outcomes=None, fail_open=None):
        super().__init__(host="db.test", port=3306, user="garage", password="pw",
                         database="garage_test", pool_size=5)
        self.outcomes = list(outcomes or [])
        self.fail_open = fail_open
        self.executed = []
        self.open_count = 0
        self.close_count = 0
        self._open = False

    def translate(self, sql):
        return sql

    @property
    def is_open(self):
        return self._open

    def _open_pool(self):
        if self.fail_open is not None:
            raise self.fail_open
        self._open = True
        self.open_count += 1

    def _close_pool(self):
        self._open = False
        self.close_count += 1

    def _execute_sync(self, sql, params):
        self.executed.append((sql, params))
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return QueryResult(outcome, rowcount=len(outcome))
        return QueryResult([{"result": 1}], rowcount=1)


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start=None):
        self.now = time.time() if start is None else start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class InMemoryDirectory(UserDirectory):
    """Employee directory backed by a dict."""

    def __init__(self, users=()):
        self.users = {u.email: u for u in users}

    async def get_user_by_email(self, email):
        return self.users.get(email)

    async def get_user_by_id(self, employee_id):
        for user in self.users.values():
            if user.employee_id == employee_id:
                return user
        return None


def make_user(employee_id, email, password, role, first_name="Test", active=True):
    return UserRecord(
        employee_id=employee_id,
        email=email,
        # Cheap hash so tests stay fast
        password_hash=generate_password_hash(password, method="pbkdf2:sha256:1000"),
        role=role,
        first_name=first_name,
        active=active,
    )


