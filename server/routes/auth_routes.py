"""
Authentication endpoints for the garage API.

Provides login, token refresh, logout and token verification, plus admin
views of the audit trail and the live session count. Login and refresh are
rate limited (applied at registration).
"""

from flask import Blueprint, g, jsonify, request

from core.audit import AuditLevel, audit_log, get_audit_log
from core.errors import AuthenticationError, ValidationError
from server.auth import Role, role_required, token_required
from server.auth.tokens import get_session_id_from_request
from server.extensions import get_services

# Create blueprint
auth_bp = Blueprint('auth', __name__, url_prefix='/api')

MAX_EMAIL_LENGTH = 255
MAX_PASSWORD_LENGTH = 200


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return {}
    return data


def _audit(action, user_id, level, **details):
    audit_log(
        action,
        user_id=user_id,
        details=details,
        level=level,
        ip=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


# =============================================================================
# Login / Refresh / Logout
# =============================================================================

@auth_bp.route('/login', methods=['POST'])
def login():
    """
    Authenticate an employee and open a session.
    Rate limited to RATE_LIMIT_AUTH (applied at registration).
    """
    data = _json_body()
    email = data.get("employee_email")
    password = data.get("employee_password")

    # Type validation - prevent type confusion attacks
    if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
        raise ValidationError("Email and password are required")

    if len(email) > MAX_EMAIL_LENGTH or len(password) > MAX_PASSWORD_LENGTH:
        raise ValidationError("Credentials exceed maximum length")

    services = get_services()
    try:
        result = services.run(services.authority.login(email.strip(), password))
    except AuthenticationError as e:
        _audit("LOGIN_FAILURE", None, AuditLevel.HIGH, email=email, error=e.message)
        raise

    principal = services.authority.tokens.principal(result.access_token)
    _audit("LOGIN_SUCCESS", principal.employee_id, AuditLevel.MEDIUM, email=email)

    return jsonify({
        "status": "success",
        "message": "Employee logged in successfully",
        "data": {
            "employee_token": result.access_token,
            "refresh_token": result.refresh_token,
            "session_id": result.session_id,
            "expires_in": result.expires_in,
        },
    })


@auth_bp.route('/refresh', methods=['POST'])
def refresh():
    """Exchange a refresh token for a new access token."""
    data = _json_body()
    refresh_token = data.get("refresh_token")
    session_id = data.get("session_id")

    if not isinstance(refresh_token, str) or not isinstance(session_id, str) or not refresh_token or not session_id:
        raise ValidationError("Refresh token and session ID are required")

    services = get_services()
    result = services.run(services.authority.refresh(refresh_token, session_id))

    principal = services.authority.tokens.principal(result.access_token)
    _audit("TOKEN_REFRESH", principal.employee_id, AuditLevel.LOW, session_id=session_id[:8])

    return jsonify({
        "status": "success",
        "message": "Token refreshed successfully",
        "data": {
            "employee_token": result.access_token,
            "expires_in": result.expires_in,
        },
    })


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """End the caller's session. Always succeeds."""
    session_id = get_session_id_from_request()
    services = get_services()
    if session_id:
        services.run(services.authority.logout(session_id))
        _audit("LOGOUT", None, AuditLevel.LOW, session_id=session_id[:8])

    return jsonify({"status": "success", "message": "Logged out successfully"})


# =============================================================================
# Token verification / audit
# =============================================================================

@auth_bp.route('/auth/verify', methods=['GET'])
@token_required
def verify():
    """Return the verified caller."""
    principal = g.principal
    return jsonify({
        "status": "success",
        "data": {
            "employee_id": principal.employee_id,
            "employee_email": principal.email,
            "employee_role": principal.role,
            "employee_first_name": principal.first_name,
            "session_id": g.session_id,
        },
    })


@auth_bp.route('/auth/audit', methods=['GET'])
@role_required(Role.ADMIN)
def audit_trail():
    """Recent audit entries (admin only)."""
    limit = request.args.get("limit", 50, type=int)
    action = request.args.get("action")
    entries = get_audit_log(limit=max(1, min(limit, 500)), action=action)
    return jsonify({"status": "success", "data": {"entries": entries, "count": len(entries)}})


@auth_bp.route('/auth/sessions', methods=['GET'])
@role_required(Role.ADMIN)
def session_summary():
    """Number of live sessions in the store (admin only)."""
    services = get_services()
    count = services.run(services.authority.active_session_count())
    return jsonify({"status": "success", "data": {"active_sessions": count}})
