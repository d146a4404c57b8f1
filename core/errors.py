"""
Centralized error handling for the garage API.

Error Hierarchy:
- APIError: typed errors carrying an HTTP status, a machine-readable type,
  a severity and free-form details.
  - 4xx subclasses: expected errors with messages safe to expose to clients.
  - DatabaseError / InternalError / ExternalServiceError (5xx): details and
    the real message are only exposed in development.

Usage:
    from core.errors import AuthenticationError, DatabaseError, register_error_handlers

    raise AuthenticationError("Invalid credentials")

Wire format:
    {"status": "error",
     "error": {"type", "message", "statusCode", "severity", "timestamp"[, "details"]}}
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from flask import g, jsonify, request
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ErrorType(str, Enum):
    VALIDATION = "VALIDATION"
    AUTHENTICATION = "AUTHENTICATION"
    AUTHORIZATION = "AUTHORIZATION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMIT = "RATE_LIMIT"
    DATABASE = "DATABASE"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE"
    INTERNAL = "INTERNAL"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# =============================================================================
# Exception Classes
# =============================================================================

class APIError(Exception):
    """
    Base class for typed API errors.

    Subclasses set status_code, error_type and severity as class attributes;
    instances may override status_code.
    """
    status_code = 500
    error_type = ErrorType.INTERNAL
    severity = Severity.MEDIUM
    # Message is safe to show outside development
    expose_message = True
    generic_message = "Internal server error"

    def __init__(self, message: str = None, details: dict = None, status_code: int = None):
        super().__init__(message or self.generic_message)
        self.message = message or self.generic_message
        self.details = dict(details or {})
        self.timestamp = datetime.now(timezone.utc).isoformat()
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self, include_details: bool = False) -> dict:
        """Render the error in the API wire format.

        Args:
            include_details: Expose details and non-public messages (development only)
        """
        message = self.message if (self.expose_message or include_details) else self.generic_message
        body = {
            "type": self.error_type.value,
            "message": message,
            "statusCode": self.status_code,
            "severity": self.severity.value,
            "timestamp": self.timestamp,
        }
        if include_details and self.details:
            body["details"] = self.details
        return {"status": "error", "error": body}


class ValidationError(APIError):
    """Request validation failed (400)."""
    status_code = 400
    error_type = ErrorType.VALIDATION
    generic_message = "Validation failed"


class AuthenticationError(APIError):
    """Authentication failed (401)."""
    status_code = 401
    error_type = ErrorType.AUTHENTICATION
    severity = Severity.HIGH
    generic_message = "Authentication failed"


class AuthorizationError(APIError):
    """Permission denied (403)."""
    status_code = 403
    error_type = ErrorType.AUTHORIZATION
    severity = Severity.HIGH
    generic_message = "Access denied"


class NotFoundError(APIError):
    """Resource not found (404)."""
    status_code = 404
    error_type = ErrorType.NOT_FOUND
    generic_message = "Resource not found"


class ConflictError(APIError):
    """Resource conflict (409)."""
    status_code = 409
    error_type = ErrorType.CONFLICT
    generic_message = "Resource conflict"


class RateLimitError(APIError):
    """Rate limit exceeded (429)."""
    status_code = 429
    error_type = ErrorType.RATE_LIMIT
    generic_message = "Too many requests, please try again later."


class DatabaseError(APIError):
    """Database operation failed (500). Carries SQL context for diagnosis."""
    status_code = 500
    error_type = ErrorType.DATABASE
    severity = Severity.HIGH
    expose_message = False
    generic_message = "Database operation failed"

    def __init__(
        self,
        message: str = None,
        details: dict = None,
        *,
        sql: Optional[str] = None,
        params: Any = None,
        dialect: Optional[str] = None,
        pool_stats: Optional[dict] = None,
        query_stats: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.sql = sql
        self.params = params
        self.dialect = dialect
        self.pool_stats = pool_stats
        self.query_stats = query_stats
        if sql is not None:
            self.details.update({
                "sql": sql,
                "params": list(params) if params is not None else [],
                "dialect": dialect,
                "pool_stats": pool_stats,
                "query_stats": query_stats,
            })


class ExternalServiceError(APIError):
    """Upstream dependency unavailable (503)."""
    status_code = 503
    error_type = ErrorType.EXTERNAL_SERVICE
    severity = Severity.HIGH
    expose_message = False
    generic_message = "External service unavailable"

    def __init__(self, service: str, message: str = "External service unavailable"):
        super().__init__(f"{service}: {message}", {"service": service})


class InternalError(APIError):
    """
    Unexpected internal errors (500).
    Message should NEVER be exposed to clients outside development.
    """
    status_code = 500
    error_type = ErrorType.INTERNAL
    severity = Severity.HIGH
    expose_message = False

    @classmethod
    def from_exception(cls, exc: Exception) -> "InternalError":
        return cls(str(exc) or cls.generic_message, {"original_error": type(exc).__name__})


# =============================================================================
# Flask integration
# =============================================================================

def _log_api_error(error: APIError, error_id: str):
    extra = {
        "error_id": error_id,
        "request_id": getattr(g, "request_id", None),
        "method": request.method,
        "endpoint": request.path,
        "status_code": error.status_code,
        "remote_addr": request.remote_addr,
        "user": getattr(g, "employee_email", None),
    }
    if error.severity in (Severity.HIGH, Severity.CRITICAL):
        logger.error(f"API error ({error.error_type.value}): {error.message}", extra=extra)
    else:
        logger.warning(f"API warning ({error.error_type.value}): {error.message}", extra=extra)


def register_error_handlers(app, include_details: bool = False):
    """
    Register Flask error handlers for the APIError hierarchy.

    Call this in your Flask app factory:
        from core.errors import register_error_handlers
        register_error_handlers(app, include_details=settings.is_development)
    """

    @app.errorhandler(APIError)
    def handle_api_error(e):
        """Handle all APIError subclasses."""
        error_id = str(uuid.uuid4())[:8]
        _log_api_error(e, error_id)
        return jsonify(e.to_dict(include_details=include_details)), e.status_code

    @app.errorhandler(404)
    def handle_not_found(e):
        error = NotFoundError(f"Route {request.path} not found")
        return jsonify(error.to_dict()), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(e):
        error = ValidationError(f"Method {request.method} not allowed on {request.path}", status_code=405)
        return jsonify(error.to_dict()), 405

    @app.errorhandler(429)
    def handle_rate_limit(e):
        error = RateLimitError(_rate_limit_message(e))
        return jsonify(error.to_dict()), 429

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        """Log full details, return a generic message."""
        if isinstance(e, HTTPException):
            error = APIError(e.description or e.name, status_code=e.code)
            error.error_type = ErrorType.VALIDATION if e.code < 500 else ErrorType.INTERNAL
            return jsonify(error.to_dict()), e.code

        error_id = str(uuid.uuid4())[:8]
        logger.exception(
            f"Unhandled exception: {e}",
            extra={
                "error_id": error_id,
                "request_id": getattr(g, "request_id", None),
                "method": request.method,
                "endpoint": request.path,
                "remote_addr": request.remote_addr,
            },
        )
        error = InternalError.from_exception(e)
        return jsonify(error.to_dict(include_details=include_details)), 500


def _rate_limit_message(e) -> str:
    """Message for a rate-limit rejection raised by Flask-Limiter."""
    description = getattr(e, "description", None)
    if description:
        return f"Too many requests, please try again later. ({description})"
    return RateLimitError.generic_message
