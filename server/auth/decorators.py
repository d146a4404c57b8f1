"""
Flask route decorators for authentication and authorization.

Provides:
- token_required: Require a valid access token (x-access-token)
- role_required: Require one of the given company roles
- require_role: The role check itself, usable outside Flask

Every decision is written to the audit trail.
"""
from functools import wraps
from typing import Iterable

from flask import g, request

from core.audit import AuditLevel, audit_log
from core.errors import AuthenticationError, AuthorizationError

from .config import ROLE_NAMES, Role
from .tokens import get_session_id_from_request, get_token_from_request
from .types import Principal


def _role_label(role) -> str:
    try:
        return ROLE_NAMES[Role(role)]
    except ValueError:
        return str(role)


def require_role(principal: Principal, allowed_roles: Iterable[int]) -> int:
    """Return the principal's role if allowed.

    Raises:
        AuthorizationError: "Access denied. Required roles: ..."
    """
    allowed = [int(r) for r in allowed_roles]
    if principal.role not in allowed:
        raise AuthorizationError(
            f"Access denied. Required roles: {', '.join(_role_label(r) for r in allowed)}"
        )
    return principal.role


def _audit(action: str, user_id, level: AuditLevel, **details):
    details.update(endpoint=request.path, method=request.method)
    audit_log(
        action,
        user_id=user_id,
        details=details,
        level=level,
        ip=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


def token_required(f):
    """Decorator to require a valid access token for an endpoint.

    Sets g.principal, g.employee_id, g.employee_email, g.employee_role and
    g.session_id on success.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        from server.extensions import get_services

        token = get_token_from_request()
        if not token:
            _audit("AUTH_FAILURE", None, AuditLevel.HIGH, error="No token provided")
            raise AuthenticationError("No token provided")

        session_id = get_session_id_from_request()
        services = get_services()
        try:
            principal = services.run(services.authority.verify(token, session_id))
        except AuthenticationError as e:
            _audit("AUTH_FAILURE", None, AuditLevel.HIGH, error=e.message)
            raise

        g.principal = principal
        g.employee_id = principal.employee_id
        g.employee_email = principal.email
        g.employee_role = principal.role
        g.session_id = session_id
        _audit("AUTH_SUCCESS", principal.employee_id, AuditLevel.MEDIUM)
        return f(*args, **kwargs)
    return decorated


def role_required(*allowed_roles):
    """Decorator factory to require specific company roles.

    Usage:
        @role_required(Role.ADMIN)
        def admin_only():
            ...

        @role_required(Role.MANAGER, Role.ADMIN)
        def staff_only():
            ...
    """
    def decorator(f):
        @wraps(f)
        @token_required
        def decorated(*args, **kwargs):
            principal = g.principal
            required = [int(r) for r in allowed_roles]
            try:
                require_role(principal, required)
            except AuthorizationError:
                _audit("ACCESS_DENIED", principal.employee_id, AuditLevel.HIGH,
                       required_roles=required, user_role=principal.role)
                raise
            _audit("ROLE_ACCESS", principal.employee_id, AuditLevel.MEDIUM,
                   required_roles=required, user_role=principal.role)
            return f(*args, **kwargs)
        return decorated
    return decorator


def has_role(*roles) -> bool:
    """Helper to check the current caller's role inside a route."""
    return getattr(g, "employee_role", None) in [int(r) for r in roles]
