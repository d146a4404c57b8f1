"""Tests for the database-backed employee directory."""

import pytest

from core.db import PostgresDialect
from server.auth.directory import EMPLOYEE_BY_EMAIL_SQL, EMPLOYEE_BY_ID_SQL, EmployeeDirectory

from fakes import EMPLOYEE_PASSWORD, make_user

ROW = {
    "employee_id": 3,
    "employee_email": "employee@garage.com",
    "employee_first_name": "Eve",
    "employee_password_hashed": "pbkdf2:sha256:1000$abc$def",
    "company_role_id": 1,
    "active_employee": 1,
    "company_role_name": "Employee",
}


class TestEmployeeDirectory:
    @pytest.mark.asyncio
    async def test_lookup_by_email(self, make_adapter):
        adapter = make_adapter([[ROW]])
        user = await EmployeeDirectory(adapter).get_user_by_email("employee@garage.com")

        assert user.employee_id == 3
        assert user.role == 1
        assert user.first_name == "Eve"
        assert user.password_hash == ROW["employee_password_hashed"]
        assert adapter.dialect.executed == [(EMPLOYEE_BY_EMAIL_SQL, ("employee@garage.com",))]

    @pytest.mark.asyncio
    async def test_lookup_by_id(self, make_adapter):
        adapter = make_adapter([[ROW]])
        user = await EmployeeDirectory(adapter).get_user_by_id(3)
        assert user.email == "employee@garage.com"
        assert adapter.dialect.executed[0][0] == EMPLOYEE_BY_ID_SQL

    @pytest.mark.asyncio
    async def test_missing_employee(self, make_adapter):
        directory = EmployeeDirectory(make_adapter([[]]))
        assert await directory.get_user_by_email("ghost@garage.com") is None

    @pytest.mark.asyncio
    async def test_verify_password(self, make_adapter):
        directory = EmployeeDirectory(make_adapter())
        user = make_user(3, "employee@garage.com", EMPLOYEE_PASSWORD, 1)
        assert await directory.verify_password(EMPLOYEE_PASSWORD, user.password_hash) is True
        assert await directory.verify_password("nope", user.password_hash) is False
        assert await directory.verify_password(EMPLOYEE_PASSWORD, "garbage") is False

    def test_queries_translate_for_postgres(self):
        dialect = PostgresDialect(host="h", port=5432, user="u", password="p", database="d")
        sql = dialect.translate(EMPLOYEE_BY_EMAIL_SQL)
        assert '"company_employees"' in sql
        assert 'ce."employee_email" = $1' in sql
        assert "`" not in sql and "?" not in sql
