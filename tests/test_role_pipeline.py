"""Tests for the role check and the Flask auth decorators."""

import pytest
from flask import jsonify

from core.audit import get_audit_log
from core.errors import AuthorizationError
from server.auth import Role, has_role, require_role, role_required, token_required
from server.auth.types import Principal

from fakes import MANAGER_PASSWORD


def _principal(role):
    return Principal(employee_id=10, email="p@garage.com", role=role)


class TestRequireRole:
    def test_allowed(self):
        assert require_role(_principal(3), [Role.ADMIN]) == 3

    def test_any_of_several(self):
        assert require_role(_principal(2), [Role.MANAGER, Role.ADMIN]) == 2

    def test_denied_names_the_roles(self):
        with pytest.raises(AuthorizationError) as exc_info:
            require_role(_principal(1), [Role.MANAGER, Role.ADMIN])
        assert exc_info.value.message == "Access denied. Required roles: Manager, Admin"
        assert exc_info.value.status_code == 403

    def test_unknown_role_number(self):
        with pytest.raises(AuthorizationError, match="Required roles: 9"):
            require_role(_principal(1), [9])


@pytest.fixture
def guarded_app(app):
    @app.route("/api/test/staff")
    @role_required(Role.MANAGER, Role.ADMIN)
    def staff_only():
        return jsonify({"is_admin": has_role(Role.ADMIN), "is_staff": has_role(Role.MANAGER, Role.ADMIN)})

    @app.route("/api/test/any")
    @token_required
    def any_employee():
        return jsonify({"ok": True})

    return app


class TestDecorators:
    def test_manager_passes_staff_check(self, guarded_app, login):
        data = login("manager@garage.com", MANAGER_PASSWORD)
        client = guarded_app.test_client()
        resp = client.get("/api/test/staff", headers={
            "x-access-token": data["employee_token"],
            "x-session-id": data["session_id"],
        })
        assert resp.status_code == 200
        assert resp.get_json() == {"is_admin": False, "is_staff": True}
        entry = get_audit_log(action="ROLE_ACCESS")[0]
        assert entry["details"]["required_roles"] == [2, 3]
        assert entry["details"]["user_role"] == 2

    def test_employee_rejected(self, guarded_app, employee_headers):
        resp = guarded_app.test_client().get("/api/test/staff", headers=employee_headers)
        assert resp.status_code == 403
        assert resp.get_json()["error"]["message"] == "Access denied. Required roles: Manager, Admin"

    def test_admin_passes(self, guarded_app, admin_headers):
        resp = guarded_app.test_client().get("/api/test/staff", headers=admin_headers)
        assert resp.get_json()["is_admin"] is True

    def test_token_only_route(self, guarded_app, employee_headers):
        resp = guarded_app.test_client().get("/api/test/any", headers={
            "x-access-token": employee_headers["x-access-token"],
        })
        assert resp.status_code == 200

    def test_role_check_runs_after_authentication(self, guarded_app):
        resp = guarded_app.test_client().get("/api/test/staff")
        assert resp.status_code == 401
        assert get_audit_log(action="ACCESS_DENIED") == []
